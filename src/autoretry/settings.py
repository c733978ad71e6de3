"""Runtime settings with typed configuration and fail-fast validation.

RetrySettings reads the ``AUTORETRY_*`` environment namespace (or explicit
overrides) and produces the immutable RetryConfig the executor consumes.

Examples
--------
>>> from autoretry.settings import load_settings
>>> settings = load_settings(max_retries=5)
>>> settings.to_config().total_attempts
6
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autoretry.errors import SettingsError
from autoretry.http.policy import RetryConfig
from autoretry.http.transport import GENERATION_ENDPOINTS, EndpointFilter
from autoretry.logging import get_logger

__all__ = [
    "RetrySettings",
    "load_settings",
]

logger = get_logger(__name__)


class RetrySettings(BaseSettings):
    """Retry layer configuration loaded from ``AUTORETRY_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="AUTORETRY_",
        extra="forbid",
        case_sensitive=False,
    )

    enabled: bool = Field(default=True, description="Enable automatic retries")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay_ms: int = Field(default=2000, ge=0, description="Delay before the first retry (ms)")
    exponential_backoff: bool = Field(default=True, description="Grow the delay per retry")
    backoff_multiplier: float = Field(default=2.0, description="Exponential growth factor")
    retryable_status_codes: frozenset[int] | None = Field(
        default=None,
        description="Allow-listed status codes; unset means every error is retryable",
    )
    network_errors_always_retryable: bool = Field(
        default=True,
        description="Retry failures with no response even in allow-list mode",
    )
    endpoints: tuple[str, ...] = Field(
        default=GENERATION_ENDPOINTS,
        description="Paths routed through the retry transport",
    )
    intercept_method: str = Field(default="POST", description="Method routed through retries")
    settings_path: Path | None = Field(
        default=None, description="YAML document holding the persisted retry config"
    )
    persist_debounce_s: float = Field(
        default=1.0, ge=0, description="Quiet period before a settings change is written"
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, ...)")
    metrics_enabled: bool = Field(default=True, description="Export Prometheus retry metrics")

    def __init__(self, **overrides: object) -> None:
        """Initialise settings with fail-fast validation."""
        try:
            super().__init__(**overrides)  # type: ignore[arg-type]
        except Exception as exc:
            msg = f"Configuration validation failed: {exc}"
            logger.exception(
                "Settings validation failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            raise SettingsError(
                msg,
                cause=exc,
                context={"validation_error": str(exc)},
            ) from exc

    @model_validator(mode="after")
    def check_backoff(self) -> RetrySettings:
        if self.exponential_backoff and self.backoff_multiplier <= 0:
            msg = "backoff_multiplier must be > 0 when exponential_backoff is enabled"
            raise ValueError(msg)
        return self

    def to_config(self) -> RetryConfig:
        """Return the retry decision fields as a :class:`RetryConfig` snapshot."""
        return RetryConfig(
            enabled=self.enabled,
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            exponential_backoff=self.exponential_backoff,
            backoff_multiplier=self.backoff_multiplier,
            retryable_status_codes=self.retryable_status_codes,
            network_errors_always_retryable=self.network_errors_always_retryable,
        )

    def endpoint_filter(self) -> EndpointFilter:
        """Return the transport allow-list described by these settings."""
        return EndpointFilter(paths=self.endpoints, method=self.intercept_method)


def load_settings(**overrides: object) -> RetrySettings:
    """Load :class:`RetrySettings` with optional overrides.

    Raises
    ------
    SettingsError
        If the environment or overrides fail validation.
    """
    try:
        return RetrySettings(**overrides)
    except SettingsError:
        raise
    except Exception as exc:
        msg = f"Failed to load settings: {exc}"
        logger.exception(
            "Settings loading failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        raise SettingsError(msg, cause=exc, context={"validation_error": str(exc)}) from exc
