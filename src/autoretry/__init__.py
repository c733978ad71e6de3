"""Transparent retry layer for outbound asynchronous calls."""

from __future__ import annotations

from autoretry.config import RetryConfigHolder, SettingsController, SettingsStore
from autoretry.errors import AutoRetryError, ConfigurationError, RetryCancelledError
from autoretry.http import (
    CancellationToken,
    EndpointFilter,
    FunctionPatcher,
    NotificationHub,
    RetryConfig,
    RetryExecutor,
    RetryPolicy,
    RetryTransport,
    make_retrying_client,
)
from autoretry.runtime import RetryRuntime, build_runtime
from autoretry.settings import RetrySettings, load_settings

__all__ = [
    "AutoRetryError",
    "CancellationToken",
    "ConfigurationError",
    "EndpointFilter",
    "FunctionPatcher",
    "NotificationHub",
    "RetryCancelledError",
    "RetryConfig",
    "RetryConfigHolder",
    "RetryExecutor",
    "RetryPolicy",
    "RetryRuntime",
    "RetrySettings",
    "RetryTransport",
    "SettingsController",
    "SettingsStore",
    "build_runtime",
    "load_settings",
    "make_retrying_client",
]

__version__ = "0.1.0"
