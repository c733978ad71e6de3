"""Error code registry and type URIs for Problem Details.

Codes and URIs are stable identifiers; they are never renamed once released.

Examples
--------
>>> from autoretry.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.RETRY_CANCELLED)
'https://autoretry.dev/problems/retry-cancelled'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]

BASE_TYPE_URI: Final[str] = "https://autoretry.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for autoretry exceptions.

    Attributes
    ----------
    CONFIGURATION_ERROR
        Retry configuration failed validation.
    SETTINGS_STORE_ERROR
        The settings document could not be read or written.
    RETRY_CANCELLED
        A retry loop was cancelled through its cancellation token.
    RUNTIME_ERROR
        Unclassified runtime failure.
    """

    CONFIGURATION_ERROR = "configuration-error"
    SETTINGS_STORE_ERROR = "settings-store-error"
    RETRY_CANCELLED = "retry-cancelled"
    RUNTIME_ERROR = "runtime-error"


def get_type_uri(code: ErrorCode) -> str:
    """Return the Problem Details type URI for ``code``.

    Parameters
    ----------
    code : ErrorCode
        Error code.

    Returns
    -------
    str
        Absolute type URI.
    """
    return f"{BASE_TYPE_URI}/{code.value}"
