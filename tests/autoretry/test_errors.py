"""Tests for autoretry.errors and autoretry.http.errors."""

from __future__ import annotations

import httpx
import pytest

from autoretry.errors import (
    BASE_TYPE_URI,
    AutoRetryError,
    ConfigurationError,
    ErrorCode,
    RetryCancelledError,
    SettingsError,
    SettingsStoreError,
    get_type_uri,
)
from autoretry.http.errors import HttpConnectionError, HttpError, HttpStatusError


class TestAutoRetryError:
    """Tests for the typed exception hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("bad"),
            SettingsError("bad"),
            SettingsStoreError("bad"),
            RetryCancelledError("gen", 1),
        ],
        ids=["configuration", "settings", "store", "cancelled"],
    )
    def test_hierarchy(self, error: AutoRetryError) -> None:
        """All library errors derive from AutoRetryError."""
        assert isinstance(error, AutoRetryError)

    def test_str_includes_code_and_cause(self) -> None:
        """str() shows the class, code and chained cause type."""
        error = SettingsStoreError("cannot read", cause=OSError("disk"))
        assert str(error) == (
            "SettingsStoreError[settings-store-error]: cannot read (caused by: OSError)"
        )
        assert isinstance(error.__cause__, OSError)

    def test_problem_details(self) -> None:
        """to_problem_details renders RFC 9457 fields plus context."""
        error = ConfigurationError.with_details(field="max_retries", issue="Must be >= 0")
        details = error.to_problem_details(instance="urn:test")
        assert details["type"] == get_type_uri(ErrorCode.CONFIGURATION_ERROR)
        assert str(details["type"]).startswith(BASE_TYPE_URI)
        assert details["title"] == "ConfigurationError"
        assert details["status"] == 400
        assert details["instance"] == "urn:test"
        assert details["field"] == "max_retries"
        assert details["code"] == "configuration-error"

    def test_with_details_hint(self) -> None:
        """with_details captures an optional hint."""
        error = ConfigurationError.with_details(field="f", issue="i", hint="h")
        assert error.context == {"field": "f", "issue": "i", "hint": "h"}
        assert "Configuration validation failed for field 'f': i" in error.message

    def test_settings_error_collects_validation_errors(self) -> None:
        """Validation entries are kept in context."""
        error = SettingsError("invalid", errors=[{"loc": ("max_retries",), "msg": "bad"}])
        assert error.context["validation_errors"] == [{"loc": ("max_retries",), "msg": "bad"}]

    def test_retry_cancelled(self) -> None:
        """RetryCancelledError carries the operation and attempt count."""
        error = RetryCancelledError("gen", 2)
        assert error.name == "gen"
        assert error.attempts == 2
        assert error.code == ErrorCode.RETRY_CANCELLED
        assert error.http_status == 499


class TestHttpErrors:
    """Tests for HTTP-level errors."""

    def test_status_error_message(self) -> None:
        """The message carries only the status; the excerpt is kept aside."""
        assert str(HttpStatusError(503)) == "Server responded with status 503"
        error = HttpStatusError(400, "max_tokens must be <= 500")
        assert str(error) == "Server responded with status 400"
        assert error.body_excerpt == "max_tokens must be <= 500"

    def test_from_response(self) -> None:
        """from_response keeps status, headers, an excerpt and the response."""
        response = httpx.Response(503, headers={"Retry-After": "1"}, text="x" * 500)
        error = HttpStatusError.from_response(response, excerpt_chars=10)
        assert error.status == 503
        assert error.headers["retry-after"] == "1"
        assert error.response is response
        assert error.body_excerpt == "x" * 10
        assert str(error) == "Server responded with status 503"

    def test_hierarchy(self) -> None:
        """Both HTTP errors derive from HttpError."""
        assert issubclass(HttpStatusError, HttpError)
        assert issubclass(HttpConnectionError, HttpError)
