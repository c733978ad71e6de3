"""Tenacity-based retry executor for asynchronous operations.

RetryExecutor drives the attempt loop around a zero-argument coroutine
function. Every hook handed to tenacity (retry decision, stop, wait, sleep,
before-sleep) reads a fresh RetryConfig snapshot, so edits made between two
attempts apply to the next decision of loops already in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import AsyncRetrying, RetryCallState
from tenacity.retry import retry_base
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from autoretry.errors import RetryCancelledError
from autoretry.http.events import (
    AttemptFailedWillRetry,
    ExhaustedRetries,
    GaveUpNonRetryable,
    NotificationSink,
    RetryEvent,
    SucceededAfterRetry,
)
from autoretry.http.policy import AttemptError, RetryConfig, RetryPolicy
from autoretry.http.types import (
    AttemptOutcome,
    RetryableFailure,
    RetryStrategy,
    Success,
    TerminalFailure,
)
from autoretry.logging import get_logger

if TYPE_CHECKING:
    from autoretry.http.types import Operation
    from autoretry.observability import RetryMetrics

__all__ = [
    "CancellationToken",
    "RetryExecutor",
]

T = TypeVar("T")

ConfigSource = Callable[[], RetryConfig]
Sleeper = Callable[[float], Awaitable[None]]

logger = get_logger(__name__)


class CancellationToken:
    """Signal that aborts a retry loop.

    Triggering the token aborts both the attempt in flight and any pending
    inter-attempt delay; the loop then raises :class:`RetryCancelledError`.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancel()
    >>> token.cancelled
    True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class _LoopState:
    """Mutable bookkeeping for one ``execute`` call."""

    name: str
    attempts: int = 0
    outcome: AttemptOutcome | None = None
    delay_ms: float = 0.0

    def record(self, outcome: AttemptOutcome) -> None:
        self.outcome = outcome


class _RetryIfRetryable(retry_base):
    """Classify the last attempt and decide whether the loop continues.

    The final allowed attempt is recorded as exhausted without consulting the
    policy; returning True hands it to the stop condition, which ends the loop.
    """

    def __init__(self, config: ConfigSource, state: _LoopState) -> None:
        self._config = config
        self._state = state

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        config = self._config()
        error = AttemptError.from_exception(outcome.exception())
        if error is None or error.cancelled:
            self._state.record(TerminalFailure(error or AttemptError(), "cancelled"))
            return False
        if retry_state.attempt_number > config.max_retries:
            self._state.record(TerminalFailure(error, "exhausted"))
            return True
        if not RetryPolicy(config).is_retryable(error):
            self._state.record(TerminalFailure(error, "non_retryable"))
            return False
        self._state.record(RetryableFailure(error))
        return True


class _StopWhenTerminal(stop_base):
    """Stop once the attempt counter has run out of budget."""

    def __init__(self, state: _LoopState) -> None:
        self._state = state

    def __call__(self, retry_state: RetryCallState) -> bool:
        return isinstance(self._state.outcome, TerminalFailure)


class _WaitFromPolicy(wait_base):
    """Delay (in seconds) taken from :meth:`RetryPolicy.delay_for_attempt`."""

    def __init__(self, config: ConfigSource, state: _LoopState) -> None:
        self._config = config
        self._state = state

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is 1-based; retry indices are 0-based
        delay_ms = RetryPolicy(self._config()).delay_for_attempt(retry_state.attempt_number - 1)
        self._state.delay_ms = delay_ms
        return delay_ms / 1000


class RetryExecutor(RetryStrategy):
    """Run asynchronous operations with policy-driven retries.

    Parameters
    ----------
    config : Callable[[], RetryConfig] | RetryConfig
        Snapshot source read at every attempt boundary (typically
        ``RetryConfigHolder.snapshot``), or a fixed config.
    sink : NotificationSink | None, optional
        Receiver of lifecycle events. Defaults to None (events dropped).
    metrics : RetryMetrics | None, optional
        Prometheus counters to update. Defaults to None.
    sleep : Callable[[float], Awaitable[None]], optional
        Coroutine function used for inter-attempt delays, in seconds.
        Defaults to :func:`asyncio.sleep`.

    Examples
    --------
    >>> executor = RetryExecutor(RetryConfig(max_retries=2, base_delay_ms=10))
    >>> async def fetch() -> str:
    ...     return "ok"
    >>> asyncio.run(executor.execute(fetch, name="fetch"))
    'ok'
    """

    def __init__(
        self,
        config: ConfigSource | RetryConfig,
        *,
        sink: NotificationSink | None = None,
        metrics: RetryMetrics | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if isinstance(config, RetryConfig):
            fixed = config
            self._config: ConfigSource = lambda: fixed
        else:
            self._config = config
        self._sink = sink
        self._metrics = metrics
        self._sleep = sleep

    def snapshot(self) -> RetryConfig:
        """Return the configuration the next decision will be made against."""
        return self._config()

    async def execute(
        self,
        operation: Operation[T],
        *,
        name: str = "operation",
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Await ``operation`` with retries and return its first success.

        Parameters
        ----------
        operation : Operation[T]
            Zero-argument coroutine function performing one attempt.
        name : str, optional
            Operation name used in events, logs and metrics.
        cancel_token : CancellationToken | None, optional
            Token aborting the loop when triggered. Defaults to None.

        Returns
        -------
        T
            Result of the first successful attempt.

        Raises
        ------
        RetryCancelledError
            If ``cancel_token`` fires during an attempt or a delay.

        Notes
        -----
        Any other failure is the last exception raised by ``operation``,
        re-raised unchanged once retries stop.
        """
        state = _LoopState(name=name)
        if not self._config().enabled:
            return await self._attempt(operation, state, cancel_token)

        retrying = self._build_retrying(state, cancel_token)
        try:
            result = await retrying(self._attempt, operation, state, cancel_token)
        except BaseException as exc:
            self._finish_failure(state, exc)
            raise
        self._finish_success(state, result)
        return result

    def _build_retrying(
        self, state: _LoopState, cancel_token: CancellationToken | None
    ) -> AsyncRetrying:
        async def _sleep(seconds: float) -> None:
            await self._cancellable(self._sleep(seconds), state, cancel_token)

        return AsyncRetrying(
            sleep=_sleep,
            retry=_RetryIfRetryable(self._config, state),
            stop=_StopWhenTerminal(state),
            wait=_WaitFromPolicy(self._config, state),
            before_sleep=lambda retry_state: self._before_sleep(state, retry_state),
            reraise=True,
        )

    async def _attempt(
        self,
        operation: Operation[T],
        state: _LoopState,
        cancel_token: CancellationToken | None,
    ) -> T:
        state.attempts += 1
        return await self._cancellable(operation(), state, cancel_token)

    @staticmethod
    async def _cancellable(
        awaitable: Awaitable[T],
        state: _LoopState,
        cancel_token: CancellationToken | None,
    ) -> T:
        if cancel_token is None:
            return await awaitable
        if cancel_token.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RetryCancelledError(state.name, state.attempts)
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
        if work in done:
            return work.result()
        raise RetryCancelledError(state.name, state.attempts)

    def _before_sleep(self, state: _LoopState, retry_state: RetryCallState) -> None:
        config = self._config()
        error = state.outcome.error if isinstance(state.outcome, RetryableFailure) else None
        attempt = retry_state.attempt_number
        logger.warning(
            "Attempt %d/%d of %s failed; retrying in %.0f ms",
            attempt,
            config.total_attempts,
            state.name,
            state.delay_ms,
            extra={
                "operation": state.name,
                "status": "retrying",
                "attempt": attempt,
                "delay_ms": state.delay_ms,
                "error": error.message if error else None,
            },
        )
        if self._metrics is not None:
            self._metrics.record_attempt(state.name, "retryable_failure")
            self._metrics.record_retry(state.name, state.delay_ms)
        self._emit(
            AttemptFailedWillRetry(
                name=state.name,
                attempt=attempt,
                total_attempts=config.total_attempts,
                delay_ms=state.delay_ms,
                error=error,
            )
        )

    def _finish_success(self, state: _LoopState, result: object) -> None:
        state.record(Success(result))
        if self._metrics is not None:
            self._metrics.record_attempt(state.name, "success")
        if state.attempts > 1:
            logger.info(
                "%s succeeded on attempt %d",
                state.name,
                state.attempts,
                extra={"operation": state.name, "attempt": state.attempts},
            )
            self._emit(SucceededAfterRetry(name=state.name, attempts=state.attempts))

    def _finish_failure(self, state: _LoopState, exc: BaseException) -> None:
        outcome = state.outcome
        if isinstance(exc, RetryCancelledError) or not isinstance(exc, Exception):
            logger.info(
                "Retry loop for %s cancelled after %d attempt(s)",
                state.name,
                state.attempts,
                extra={"operation": state.name, "status": "cancelled"},
            )
            if self._metrics is not None:
                self._metrics.record_attempt(state.name, "cancelled")
            return
        error = outcome.error if isinstance(outcome, TerminalFailure) else None
        if isinstance(outcome, TerminalFailure) and outcome.reason == "non_retryable":
            logger.error(
                "%s failed with a non-retryable error after %d attempt(s)",
                state.name,
                state.attempts,
                extra={"operation": state.name, "error_type": type(exc).__name__},
            )
            if self._metrics is not None:
                self._metrics.record_attempt(state.name, "non_retryable")
            self._emit(GaveUpNonRetryable(name=state.name, attempts=state.attempts, error=error))
            return
        logger.error(
            "%s failed after %d attempts",
            state.name,
            state.attempts,
            extra={"operation": state.name, "error_type": type(exc).__name__},
        )
        if self._metrics is not None:
            self._metrics.record_attempt(state.name, "exhausted")
        self._emit(ExhaustedRetries(name=state.name, total_attempts=state.attempts, error=error))

    def _emit(self, event: RetryEvent) -> None:
        if self._sink is not None:
            self._sink.emit(event)
