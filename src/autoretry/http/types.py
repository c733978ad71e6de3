"""Type definitions for the retry engine.

This module defines the RetryStrategy protocol that retry executors conform
to and the per-attempt outcome variants that drive loop control.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Literal, Protocol, TypeAlias, TypeVar

if TYPE_CHECKING:
    from autoretry.http.policy import AttemptError

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

Operation: TypeAlias = Callable[[], Awaitable[T]]
TerminalReason = Literal["exhausted", "non_retryable", "cancelled"]


class RetryStrategy(Protocol):
    """Protocol for retry strategies.

    Implementations await an operation with retry logic according to a
    configured policy, re-raising the final error once retries stop.
    """

    async def execute(self, operation: Operation[T], *, name: str = "operation") -> T:
        """Await ``operation`` with retries; re-raise the final error.

        Parameters
        ----------
        operation : Operation[T]
            Zero-argument coroutine function performing one attempt.
        name : str, optional
            Human-readable operation name used in events and logs.

        Returns
        -------
        T
            The result of the first successful attempt.
        """
        ...


@dataclass(frozen=True, slots=True)
class Success(Generic[T_co]):
    """Attempt completed and produced ``result``."""

    result: T_co


@dataclass(frozen=True, slots=True)
class RetryableFailure:
    """Attempt failed and the policy allows another attempt."""

    error: AttemptError


@dataclass(frozen=True, slots=True)
class TerminalFailure:
    """Attempt failed and no further attempts will be made."""

    error: AttemptError
    reason: TerminalReason


AttemptOutcome: TypeAlias = Success[object] | RetryableFailure | TerminalFailure
