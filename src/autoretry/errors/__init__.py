"""Typed errors and error codes for autoretry."""

from __future__ import annotations

from autoretry.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from autoretry.errors.exceptions import (
    AutoRetryError,
    ConfigurationError,
    RetryCancelledError,
    SettingsError,
    SettingsStoreError,
)

__all__ = [
    "BASE_TYPE_URI",
    "AutoRetryError",
    "ConfigurationError",
    "ErrorCode",
    "RetryCancelledError",
    "SettingsError",
    "SettingsStoreError",
    "get_type_uri",
]
