"""Retry configuration and the pure retry decisions built on it.

RetryConfig is the immutable snapshot the executor reads at every attempt
boundary; RetryPolicy answers the two questions the loop asks of it: is this
failure worth another attempt, and how long to wait before it.
"""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass, field, replace
from typing import Final

import httpx

from autoretry.errors import ConfigurationError, RetryCancelledError
from autoretry.http.errors import HttpConnectionError, HttpStatusError

__all__ = [
    "DEFAULT_ALLOW_LIST",
    "AttemptError",
    "RetryConfig",
    "RetryPolicy",
]

DEFAULT_ALLOW_LIST: Final[frozenset[int]] = frozenset({500, 503})

# Failures where no response was received at all.
_NETWORK_ERRORS: Final[tuple[type[BaseException], ...]] = (
    HttpConnectionError,
    httpx.NetworkError,
    httpx.ConnectTimeout,
    ConnectionError,
    socket.gaierror,
)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration snapshot.

    Attributes
    ----------
    enabled : bool
        When False the executor invokes the operation once and stays silent.
    max_retries : int
        Retries allowed after the first attempt (total attempts = max_retries + 1).
    base_delay_ms : int
        Delay before the first retry, in milliseconds.
    exponential_backoff : bool
        Multiply the delay by ``backoff_multiplier`` for each further retry.
    backoff_multiplier : float
        Growth factor for exponential backoff.
    retryable_status_codes : frozenset[int] | None
        None selects permissive mode (every error is retryable); a set selects
        allow-list mode.
    network_errors_always_retryable : bool
        In allow-list mode, retry failures where no response was received even
        though they carry no allow-listed status.
    """

    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 2000
    exponential_backoff: bool = True
    backoff_multiplier: float = 2.0
    retryable_status_codes: frozenset[int] | None = None
    network_errors_always_retryable: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError.with_details(field="max_retries", issue="Must be >= 0")
        if self.base_delay_ms < 0:
            raise ConfigurationError.with_details(field="base_delay_ms", issue="Must be >= 0")
        if self.exponential_backoff and self.backoff_multiplier <= 0:
            raise ConfigurationError.with_details(
                field="backoff_multiplier",
                issue="Must be > 0 when exponential_backoff is enabled",
            )
        if self.retryable_status_codes is not None:
            object.__setattr__(
                self, "retryable_status_codes", frozenset(int(c) for c in self.retryable_status_codes)
            )

    @property
    def total_attempts(self) -> int:
        """Maximum number of invocations, the first attempt included."""
        return self.max_retries + 1

    @property
    def allow_list_mode(self) -> bool:
        return self.retryable_status_codes is not None

    def with_changes(self, **changes: object) -> RetryConfig:
        """Return a validated copy with ``changes`` applied."""
        return replace(self, **changes)  # type: ignore[arg-type]


@dataclass(frozen=True)
class AttemptError:
    """Normalized view of a failed attempt.

    Attributes
    ----------
    status : int | None
        HTTP-like status code, when the failure carries one.
    message : str | None
        Error text, used for status matching in allow-list mode.
    network_failure : bool
        True when no response was received at all.
    exception : BaseException | None
        The original exception, surfaced unchanged on terminal failure.
    """

    status: int | None = None
    message: str | None = None
    network_failure: bool = False
    exception: BaseException | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(cls, exc: BaseException | None) -> AttemptError | None:
        """Normalize an exception raised by the wrapped operation.

        Parameters
        ----------
        exc : BaseException | None
            Exception from the attempt.

        Returns
        -------
        AttemptError | None
            Normalized error, or None when ``exc`` is None.
        """
        if exc is None:
            return None
        message = str(exc) or None
        return cls(
            status=_extract_status(exc),
            message=message,
            network_failure=isinstance(exc, _NETWORK_ERRORS),
            exception=exc,
        )

    @property
    def cancelled(self) -> bool:
        exc = self.exception
        return isinstance(exc, RetryCancelledError) or (
            exc is not None and not isinstance(exc, Exception)
        )


def _extract_status(exc: BaseException) -> int | None:
    if isinstance(exc, HttpStatusError):
        return exc.status
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """Pure retry decisions over a :class:`RetryConfig` snapshot.

    Parameters
    ----------
    config : RetryConfig
        Snapshot the decisions are made against.

    Examples
    --------
    >>> policy = RetryPolicy(RetryConfig(base_delay_ms=2000, backoff_multiplier=2))
    >>> [policy.delay_for_attempt(i) for i in range(3)]
    [2000.0, 4000.0, 8000.0]
    """

    config: RetryConfig

    def is_retryable(self, error: AttemptError | None) -> bool:
        """Return True when another attempt may follow ``error``.

        Parameters
        ----------
        error : AttemptError | None
            Normalized failure; None is never retryable.

        Returns
        -------
        bool
            Retry decision.
        """
        if error is None or error.cancelled:
            return False
        codes = self.config.retryable_status_codes
        if codes is None:
            return True
        if error.status is not None and error.status in codes:
            return True
        if error.message and any(_mentions_status(error.message, code) for code in codes):
            return True
        return error.network_failure and self.config.network_errors_always_retryable

    def delay_for_attempt(self, attempt_index: int) -> float:
        """Return the delay in milliseconds before retry ``attempt_index``.

        Parameters
        ----------
        attempt_index : int
            Zero-based retry index; 0 is the first retry.

        Returns
        -------
        float
            Delay in milliseconds. Uncapped, without jitter.
        """
        base = float(self.config.base_delay_ms)
        if not self.config.exponential_backoff:
            return base
        return base * self.config.backoff_multiplier**attempt_index


def _mentions_status(message: str, code: int) -> bool:
    return re.search(rf"(?<!\d){code}(?!\d)", message) is not None
