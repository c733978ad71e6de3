"""Tests for autoretry.logging.

Verify the JSON formatter, structured field injection and correlation ID
propagation.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from autoretry.logging import (
    JsonFormatter,
    LoggerAdapter,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    with_fields,
)


def _record(message: str = "Attempt failed", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="autoretry.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self) -> None:
        """Output is a JSON object with the core fields."""
        payload = json.loads(JsonFormatter().format(_record()))
        assert payload["level"] == "WARNING"
        assert payload["name"] == "autoretry.test"
        assert payload["message"] == "Attempt failed"
        assert payload["ts"].endswith("Z")

    def test_structured_fields(self) -> None:
        """Structured extras are emitted as top-level keys."""
        payload = json.loads(
            JsonFormatter().format(
                _record(operation="generate", status="retrying", attempt=2, delay_ms=4000.0)
            )
        )
        assert payload["operation"] == "generate"
        assert payload["status"] == "retrying"
        assert payload["attempt"] == 2
        assert payload["delay_ms"] == 4000.0

    def test_correlation_id_from_context(self) -> None:
        """The context correlation ID is used when the record has none."""
        set_correlation_id("req-42")
        try:
            payload = json.loads(JsonFormatter().format(_record()))
        finally:
            set_correlation_id(None)
        assert payload["correlation_id"] == "req-42"

    def test_exception_info(self) -> None:
        """Exception tracebacks are included."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in payload["exc_info"]


class TestLoggerAdapter:
    """Tests for LoggerAdapter and get_logger."""

    def test_get_logger_returns_adapter(self) -> None:
        """get_logger wraps a logger carrying a NullHandler."""
        adapter = get_logger("autoretry.test.adapter")
        assert isinstance(adapter, LoggerAdapter)
        assert any(isinstance(h, logging.NullHandler) for h in adapter.logger.handlers)

    def test_defaults_injected(self, caplog: pytest.LogCaptureFixture) -> None:
        """operation and status are always present."""
        logger = get_logger("autoretry.test.defaults")
        with caplog.at_level(logging.INFO, logger="autoretry.test.defaults"):
            logger.info("ready")
            logger.error("failed")
        info, error = caplog.records
        assert info.operation == "unknown"  # type: ignore[attr-defined]
        assert info.status == "success"  # type: ignore[attr-defined]
        assert error.status == "error"  # type: ignore[attr-defined]

    def test_explicit_status_kept(self, caplog: pytest.LogCaptureFixture) -> None:
        """An explicit status is not overwritten."""
        logger = get_logger("autoretry.test.status")
        with caplog.at_level(logging.WARNING, logger="autoretry.test.status"):
            logger.warning("retrying", extra={"operation": "gen", "status": "retrying"})
        assert caplog.records[0].status == "retrying"  # type: ignore[attr-defined]
        assert caplog.records[0].operation == "gen"  # type: ignore[attr-defined]

    def test_with_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        """with_fields binds fields and the correlation ID for the block."""
        base = get_logger("autoretry.test.fields")
        with caplog.at_level(logging.INFO, logger="autoretry.test.fields"):
            with with_fields(base, operation="gen", correlation_id="abc") as log:
                assert get_correlation_id() == "abc"
                log.info("inside")
        assert get_correlation_id() is None
        record = caplog.records[0]
        assert record.operation == "gen"  # type: ignore[attr-defined]
        assert record.correlation_id == "abc"  # type: ignore[attr-defined]
