"""Retry lifecycle events and the fire-and-forget notification hub.

The executor only emits events; rendering them (toasts, status bars, logs)
is the subscriber's business. A subscriber can never slow down or break a
retry loop: synchronous subscribers that raise are logged and skipped,
coroutine subscribers are scheduled as tasks and not awaited.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal, Protocol, TypeAlias

from autoretry.http.policy import AttemptError
from autoretry.logging import get_logger

__all__ = [
    "AttemptFailedWillRetry",
    "ExhaustedRetries",
    "GaveUpNonRetryable",
    "Notification",
    "NotificationHub",
    "NotificationSink",
    "RetryEvent",
    "SucceededAfterRetry",
    "format_notification",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AttemptFailedWillRetry:
    """Attempt ``attempt`` failed; attempt ``attempt + 1`` follows after ``delay_ms``."""

    name: str
    attempt: int
    total_attempts: int
    delay_ms: float
    error: AttemptError | None = field(default=None, compare=False)

    @property
    def next_attempt(self) -> int:
        return self.attempt + 1


@dataclass(frozen=True, slots=True)
class SucceededAfterRetry:
    """The operation succeeded on attempt ``attempts`` (> 1)."""

    name: str
    attempts: int


@dataclass(frozen=True, slots=True)
class ExhaustedRetries:
    """Every allowed attempt failed."""

    name: str
    total_attempts: int
    error: AttemptError | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class GaveUpNonRetryable:
    """A non-retryable failure stopped the loop before the budget ran out."""

    name: str
    attempts: int = 1
    error: AttemptError | None = field(default=None, compare=False)


RetryEvent: TypeAlias = (
    AttemptFailedWillRetry | SucceededAfterRetry | ExhaustedRetries | GaveUpNonRetryable
)

Subscriber: TypeAlias = Callable[[RetryEvent], object]


class NotificationSink(Protocol):
    """Receiver of retry lifecycle events."""

    def emit(self, event: RetryEvent) -> None:
        """Accept ``event`` without blocking the caller."""
        ...


class NotificationHub:
    """Observer-style :class:`NotificationSink` fanning events out to subscribers.

    Examples
    --------
    >>> hub = NotificationHub()
    >>> seen = []
    >>> unsubscribe = hub.subscribe(seen.append)
    >>> hub.emit(SucceededAfterRetry(name="generate", attempts=2))
    >>> seen
    [SucceededAfterRetry(name='generate', attempts=2)]
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._pending: set[asyncio.Task[object]] = set()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register ``subscriber`` and return a callable that removes it."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def emit(self, event: RetryEvent) -> None:
        """Deliver ``event`` to every subscriber, fire-and-forget."""
        for subscriber in tuple(self._subscribers):
            try:
                result = subscriber(event)
            except Exception:
                logger.exception(
                    "Notification subscriber failed",
                    extra={"operation": event.name, "event": type(event).__name__},
                )
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event)

    def _schedule(self, awaitable: object, event: RetryEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "Dropping coroutine subscriber outside an event loop",
                extra={"operation": event.name, "event": type(event).__name__},
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(_guard(awaitable, event))  # type: ignore[arg-type]
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


async def _guard(awaitable: object, event: RetryEvent) -> None:
    try:
        await awaitable  # type: ignore[misc]
    except Exception:
        logger.exception(
            "Notification subscriber failed",
            extra={"operation": event.name, "event": type(event).__name__},
        )


@dataclass(frozen=True, slots=True)
class Notification:
    """Rendered, user-facing text for an event."""

    level: Literal["info", "success", "error"]
    title: str
    message: str


def format_notification(event: RetryEvent) -> Notification:
    """Render ``event`` as toast text.

    Parameters
    ----------
    event : RetryEvent
        Event emitted by the executor.

    Returns
    -------
    Notification
        Level, title and message for display.
    """
    if isinstance(event, AttemptFailedWillRetry):
        seconds = f"{event.delay_ms / 1000:g}"
        return Notification(
            level="info",
            title="Auto Retry",
            message=(
                f"Request to {event.name} failed. Retrying in {seconds}s... "
                f"(Attempt {event.next_attempt}/{event.total_attempts})"
            ),
        )
    if isinstance(event, SucceededAfterRetry):
        return Notification(
            level="success",
            title="Auto Retry",
            message=f"Request succeeded on attempt {event.attempts}.",
        )
    if isinstance(event, ExhaustedRetries):
        return Notification(
            level="error",
            title="Auto Retry Failed",
            message=f"Request failed after {event.total_attempts} attempts.",
        )
    return Notification(
        level="error",
        title="Auto Retry Failed",
        message=f"Request to {event.name} failed with a non-retryable error.",
    )
