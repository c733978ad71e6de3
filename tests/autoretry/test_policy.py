"""Tests for autoretry.http.policy.

Tests cover RetryConfig validation, failure normalization, both
retryability modes and the delay schedule.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from autoretry.errors import ConfigurationError, RetryCancelledError
from autoretry.http.errors import HttpConnectionError, HttpStatusError
from autoretry.http.policy import DEFAULT_ALLOW_LIST, AttemptError, RetryConfig, RetryPolicy


class _StatusError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"upstream returned {status}")
        self.status = status


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self) -> None:
        """RetryConfig uses the documented defaults."""
        config = RetryConfig()
        assert config.enabled is True
        assert config.max_retries == 3
        assert config.base_delay_ms == 2000
        assert config.exponential_backoff is True
        assert config.backoff_multiplier == 2.0
        assert config.retryable_status_codes is None
        assert config.network_errors_always_retryable is True
        assert config.total_attempts == 4
        assert config.allow_list_mode is False

    def test_negative_max_retries_rejected(self) -> None:
        """max_retries below zero raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            RetryConfig(max_retries=-1)
        assert exc_info.value.context["field"] == "max_retries"

    def test_negative_delay_rejected(self) -> None:
        """base_delay_ms below zero raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            RetryConfig(base_delay_ms=-500)

    @pytest.mark.parametrize("multiplier", [0.0, -2.0])
    def test_non_positive_multiplier_rejected(self, multiplier: float) -> None:
        """Exponential backoff requires a positive multiplier."""
        with pytest.raises(ConfigurationError, match="backoff_multiplier"):
            RetryConfig(backoff_multiplier=multiplier)

    def test_multiplier_ignored_in_fixed_mode(self) -> None:
        """Fixed delays do not validate the multiplier."""
        config = RetryConfig(exponential_backoff=False, backoff_multiplier=0.0)
        assert config.backoff_multiplier == 0.0

    def test_status_codes_coerced_to_frozenset(self) -> None:
        """Allow-list codes are stored as a frozenset of ints."""
        config = RetryConfig(retryable_status_codes=[503, 500])  # type: ignore[arg-type]
        assert config.retryable_status_codes == frozenset({500, 503})
        assert config.allow_list_mode is True

    def test_with_changes_validates(self) -> None:
        """with_changes returns a new validated snapshot."""
        config = RetryConfig()
        changed = config.with_changes(max_retries=5)
        assert changed.max_retries == 5
        assert config.max_retries == 3
        with pytest.raises(ConfigurationError):
            config.with_changes(max_retries=-3)


class TestAttemptError:
    """Tests for AttemptError.from_exception."""

    def test_none_passes_through(self) -> None:
        """A missing exception normalizes to None."""
        assert AttemptError.from_exception(None) is None

    def test_http_status_error(self) -> None:
        """HttpStatusError contributes its status."""
        error = AttemptError.from_exception(HttpStatusError(503, "busy"))
        assert error is not None
        assert error.status == 503
        assert error.network_failure is False
        assert error.message == "Server responded with status 503"

    def test_httpx_status_error(self) -> None:
        """httpx.HTTPStatusError contributes the response status."""
        request = httpx.Request("POST", "http://localhost/api/novelai/generate")
        response = httpx.Response(502, request=request)
        exc = httpx.HTTPStatusError("bad gateway", request=request, response=response)
        error = AttemptError.from_exception(exc)
        assert error is not None
        assert error.status == 502

    def test_status_attribute(self) -> None:
        """Any exception with an int ``status`` attribute contributes it."""
        error = AttemptError.from_exception(_StatusError(429))
        assert error is not None
        assert error.status == 429

    @pytest.mark.parametrize(
        "exc",
        [
            HttpConnectionError("unreachable"),
            httpx.ConnectError("refused"),
            ConnectionResetError("reset"),
        ],
    )
    def test_network_failures(self, exc: BaseException) -> None:
        """Failures with no response are flagged as network failures."""
        error = AttemptError.from_exception(exc)
        assert error is not None
        assert error.network_failure is True
        assert error.status is None

    def test_plain_exception(self) -> None:
        """A plain exception keeps its message and the original object."""
        exc = ValueError("model overloaded")
        error = AttemptError.from_exception(exc)
        assert error is not None
        assert error.status is None
        assert error.message == "model overloaded"
        assert error.exception is exc

    def test_cancellation_flag(self) -> None:
        """Cancellation errors are recognised."""
        cancelled = AttemptError.from_exception(RetryCancelledError("generate", 1))
        native = AttemptError.from_exception(asyncio.CancelledError())
        assert cancelled is not None and cancelled.cancelled
        assert native is not None and native.cancelled
        plain = AttemptError.from_exception(RuntimeError("boom"))
        assert plain is not None and not plain.cancelled


class TestIsRetryable:
    """Tests for RetryPolicy.is_retryable."""

    def test_permissive_mode_retries_everything(self) -> None:
        """Any non-None error is retryable in permissive mode."""
        policy = RetryPolicy(RetryConfig())
        assert policy.is_retryable(AttemptError(status=400))
        assert policy.is_retryable(AttemptError(message="anything"))
        assert policy.is_retryable(AttemptError())

    def test_none_never_retryable(self) -> None:
        """None is never retryable."""
        assert not RetryPolicy(RetryConfig()).is_retryable(None)
        allow = RetryPolicy(RetryConfig(retryable_status_codes=DEFAULT_ALLOW_LIST))
        assert not allow.is_retryable(None)

    def test_allow_list_status_match(self) -> None:
        """Allow-list mode retries listed statuses only."""
        policy = RetryPolicy(RetryConfig(retryable_status_codes=DEFAULT_ALLOW_LIST))
        assert policy.is_retryable(AttemptError(status=500))
        assert policy.is_retryable(AttemptError(status=503))
        assert not policy.is_retryable(AttemptError(status=400))
        assert not policy.is_retryable(AttemptError(status=502))

    def test_allow_list_message_match(self) -> None:
        """A listed code mentioned in the message counts as a match."""
        policy = RetryPolicy(RetryConfig(retryable_status_codes=DEFAULT_ALLOW_LIST))
        assert policy.is_retryable(AttemptError(message="Backend returned 503 Service Unavailable"))
        assert not policy.is_retryable(AttemptError(message="Backend returned 404"))

    def test_message_match_is_whole_token(self) -> None:
        """Codes embedded in longer numbers do not match."""
        policy = RetryPolicy(RetryConfig(retryable_status_codes=frozenset({500})))
        assert not policy.is_retryable(AttemptError(message="request id 15003 failed"))
        assert policy.is_retryable(AttemptError(message="status=500;"))

    def test_network_failure_knob(self) -> None:
        """Network failures follow network_errors_always_retryable in allow-list mode."""
        error = AttemptError(network_failure=True, message="connection refused")
        on = RetryPolicy(RetryConfig(retryable_status_codes=DEFAULT_ALLOW_LIST))
        off = RetryPolicy(
            RetryConfig(
                retryable_status_codes=DEFAULT_ALLOW_LIST,
                network_errors_always_retryable=False,
            )
        )
        assert on.is_retryable(error)
        assert not off.is_retryable(error)

    def test_cancellation_never_retryable(self) -> None:
        """Cancellation is not retryable in either mode."""
        error = AttemptError.from_exception(RetryCancelledError("generate", 2))
        assert not RetryPolicy(RetryConfig()).is_retryable(error)
        assert not RetryPolicy(RetryConfig(retryable_status_codes=frozenset())).is_retryable(error)


class TestDelayForAttempt:
    """Tests for RetryPolicy.delay_for_attempt."""

    def test_exponential_schedule(self) -> None:
        """Delays double from the base delay."""
        policy = RetryPolicy(RetryConfig(base_delay_ms=2000, backoff_multiplier=2.0))
        assert [policy.delay_for_attempt(i) for i in range(3)] == [2000.0, 4000.0, 8000.0]

    def test_fixed_schedule(self) -> None:
        """Fixed mode always waits base_delay_ms."""
        policy = RetryPolicy(RetryConfig(base_delay_ms=2000, exponential_backoff=False))
        assert [policy.delay_for_attempt(i) for i in range(3)] == [2000.0, 2000.0, 2000.0]

    def test_fractional_multiplier(self) -> None:
        """Multipliers below two still grow geometrically, uncapped."""
        policy = RetryPolicy(RetryConfig(base_delay_ms=1000, backoff_multiplier=1.5))
        assert policy.delay_for_attempt(2) == pytest.approx(2250.0)
        assert policy.delay_for_attempt(20) > 3_000_000

    def test_zero_base_delay(self) -> None:
        """A zero base delay means immediate retries."""
        policy = RetryPolicy(RetryConfig(base_delay_ms=0))
        assert policy.delay_for_attempt(5) == 0.0
