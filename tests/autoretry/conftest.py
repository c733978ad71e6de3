"""Shared fixtures for autoretry tests.

Provides:
- A fake sleep recording requested delays without waiting
- An event recorder usable as a NotificationSink
- Isolated Prometheus registries
- Scripted operations failing a fixed number of times
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

import pytest
from prometheus_client import CollectorRegistry

from autoretry.http.events import RetryEvent
from autoretry.http.executor import RetryExecutor
from autoretry.http.policy import RetryConfig
from autoretry.observability import RetryMetrics


@dataclass
class FakeSleep:
    """Async sleep double that records delays (seconds) and yields once."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)

    @property
    def delays_ms(self) -> list[float]:
        return [round(delay * 1000, 3) for delay in self.delays]


@dataclass
class EventRecorder:
    """NotificationSink collecting emitted events."""

    events: list[RetryEvent] = field(default_factory=list)

    def emit(self, event: RetryEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> list[RetryEvent]:
        return [event for event in self.events if isinstance(event, kind)]


@dataclass
class ScriptedOperation:
    """Zero-argument coroutine function raising ``failures`` before succeeding.

    With ``failures`` set to None it fails forever.
    """

    error_factory: Callable[[int], BaseException]
    failures: int | None = None
    result: object = "ok"
    calls: int = 0

    async def __call__(self) -> object:
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise self.error_factory(self.calls)
        return self.result


@pytest.fixture
def scripted() -> type[ScriptedOperation]:
    """Provide the scripted operation factory."""
    return ScriptedOperation


@pytest.fixture
def fake_sleep() -> FakeSleep:
    """Provide a recording sleep double."""
    return FakeSleep()


@pytest.fixture
def recorder() -> EventRecorder:
    """Provide an event recorder."""
    return EventRecorder()


@pytest.fixture
def registry() -> Iterator[CollectorRegistry]:
    """Provide an isolated Prometheus registry."""
    yield CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> RetryMetrics:
    """Provide metrics bound to the isolated registry."""
    return RetryMetrics(registry=registry)


@pytest.fixture
def make_executor(
    fake_sleep: FakeSleep, recorder: EventRecorder
) -> Callable[..., RetryExecutor]:
    """Build executors wired to the fake sleep and the event recorder."""

    def _make(
        config: RetryConfig | Callable[[], RetryConfig] | None = None, **kwargs: object
    ) -> RetryExecutor:
        kwargs.setdefault("sink", recorder)
        kwargs.setdefault("sleep", fake_sleep)
        return RetryExecutor(config or RetryConfig(), **kwargs)  # type: ignore[arg-type]

    return _make
