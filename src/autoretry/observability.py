"""Prometheus metrics for retry loops.

Counters live in process memory only; nothing is persisted.

Examples
--------
>>> from prometheus_client import CollectorRegistry
>>> metrics = RetryMetrics(registry=CollectorRegistry())
>>> metrics.record_attempt("generate", "success")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, TypeAlias, TypeVar, cast

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

__all__ = [
    "AttemptLabel",
    "RetryMetrics",
    "get_retry_metrics",
]

AttemptLabel: TypeAlias = Literal[
    "success", "retryable_failure", "exhausted", "non_retryable", "cancelled"
]

_DELAY_BUCKETS = (0.5, 1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0, float("inf"))

_CollectorT = TypeVar("_CollectorT", Counter, Histogram)


@dataclass(slots=True)
class RetryMetrics:
    """Attempt and retry counters labelled by operation.

    Collectors already registered under the same names are reused, so several
    instances bound to one registry share their counters.

    Parameters
    ----------
    registry : CollectorRegistry | None, optional
        Prometheus registry to register against. Defaults to the global registry.
    namespace : str, optional
        Metric name prefix. Defaults to ``"autoretry"``.

    Attributes
    ----------
    attempts_total : Counter
        Attempts by ``operation`` and ``outcome``.
    retries_total : Counter
        Scheduled retries by ``operation``.
    retry_delay_seconds : Histogram
        Computed inter-attempt delays by ``operation``.
    """

    registry: CollectorRegistry | None = None
    namespace: str = "autoretry"
    attempts_total: Counter = field(init=False, repr=False)
    retries_total: Counter = field(init=False, repr=False)
    retry_delay_seconds: Histogram = field(init=False, repr=False)

    def __post_init__(self) -> None:
        registry = self.registry if self.registry is not None else REGISTRY
        prefix = self.namespace.replace("-", "_")
        self.attempts_total = _get_or_create(
            Counter,
            registry,
            f"{prefix}_attempts_total",
            "Attempts made by retry loops, by final attempt outcome.",
            ("operation", "outcome"),
        )
        self.retries_total = _get_or_create(
            Counter,
            registry,
            f"{prefix}_retries_total",
            "Retries scheduled by retry loops.",
            ("operation",),
        )
        self.retry_delay_seconds = _get_or_create(
            Histogram,
            registry,
            f"{prefix}_retry_delay_seconds",
            "Delay applied before each retry, in seconds.",
            ("operation",),
            buckets=_DELAY_BUCKETS,
        )

    def record_attempt(self, operation: str, outcome: AttemptLabel) -> None:
        self.attempts_total.labels(operation=operation, outcome=outcome).inc()

    def record_retry(self, operation: str, delay_ms: float) -> None:
        self.retries_total.labels(operation=operation).inc()
        self.retry_delay_seconds.labels(operation=operation).observe(delay_ms / 1000)


def _existing_collector(name: str, registry: CollectorRegistry) -> object | None:
    names_to_collectors = getattr(registry, "_names_to_collectors", None)
    if isinstance(names_to_collectors, dict):
        return names_to_collectors.get(name)
    return None


def _get_or_create(
    kind: type[_CollectorT],
    registry: CollectorRegistry,
    name: str,
    documentation: str,
    labelnames: tuple[str, ...],
    **kwargs: object,
) -> _CollectorT:
    existing = _existing_collector(name, registry)
    if isinstance(existing, kind):
        return cast("_CollectorT", existing)
    return kind(name, documentation, labelnames, registry=registry, **kwargs)  # type: ignore[arg-type]


_DEFAULT: list[RetryMetrics] = []


def get_retry_metrics() -> RetryMetrics:
    """Return the process-wide metrics instance bound to the global registry."""
    if not _DEFAULT:
        _DEFAULT.append(RetryMetrics())
    return _DEFAULT[0]
