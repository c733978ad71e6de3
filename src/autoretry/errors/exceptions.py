"""Typed exception hierarchy with Problem Details support.

All autoretry library errors inherit from AutoRetryError, which carries a
stable code, a context mapping and an optional cause. Errors raised by the
wrapped operations are never converted into these types; the retry layer
surfaces them verbatim.

Examples
--------
>>> from autoretry.errors import ConfigurationError, ErrorCode
>>> try:
...     raise ConfigurationError("max_retries must be >= 0")
... except ConfigurationError as e:
...     assert e.code == ErrorCode.CONFIGURATION_ERROR
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from autoretry.errors.codes import ErrorCode, get_type_uri

__all__ = [
    "AutoRetryError",
    "ConfigurationError",
    "RetryCancelledError",
    "SettingsError",
    "SettingsStoreError",
]


class AutoRetryError(Exception):
    """Base exception for all autoretry errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    http_status : int, optional
        Status used when rendering Problem Details. Defaults to 500.
    log_level : int, optional
        Level the error should be logged at. Defaults to ``logging.ERROR``.
    cause : BaseException | None, optional
        Underlying exception, chained as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional structured details. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        http_status: int = 500,
        log_level: int = logging.ERROR,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.log_level = log_level
        self.context = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> dict[str, object]:
        """Convert to an RFC 9457 Problem Details mapping.

        Parameters
        ----------
        instance : str | None, optional
            URI identifying the specific occurrence. Defaults to None.
        title : str | None, optional
            Short summary. Defaults to the exception class name.

        Returns
        -------
        dict[str, object]
            Problem Details payload with ``context`` entries as extensions.
        """
        details: dict[str, object] = {
            "type": get_type_uri(self.code),
            "title": title or self.__class__.__name__,
            "status": self.http_status,
            "detail": self.message,
            "instance": instance or "urn:autoretry:error",
            "code": self.code.value,
        }
        for key, value in self.context.items():
            details.setdefault(key, value)
        return details

    def __str__(self) -> str:
        """Return ``ClassName[code]: message`` with the cause type when chained."""
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class ConfigurationError(AutoRetryError):
    """Retry configuration failed validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    cause : BaseException | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            http_status=400,
            log_level=logging.WARNING,
            cause=cause,
            context=context,
        )

    @classmethod
    def with_details(
        cls,
        *,
        field: str,
        issue: str,
        hint: str | None = None,
    ) -> ConfigurationError:
        """Create a ConfigurationError with structured validation details.

        Parameters
        ----------
        field : str
            Name of the configuration field that failed validation.
        issue : str
            Description of the validation issue (e.g. "Must be >= 0").
        hint : str | None, optional
            Hint for resolving the issue. Defaults to None.

        Returns
        -------
        ConfigurationError
            New instance with details captured in context.

        Examples
        --------
        >>> error = ConfigurationError.with_details(field="max_retries", issue="Must be >= 0")
        >>> error.context["field"]
        'max_retries'
        """
        details: dict[str, object] = {"field": field, "issue": issue}
        if hint is not None:
            details["hint"] = hint
        message = f"Configuration validation failed for field '{field}': {issue}"
        return cls(message, context=details)


class SettingsError(AutoRetryError):
    """Runtime settings (environment / overrides) failed validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    errors : list[dict[str, object]] | None, optional
        Validation error entries. Defaults to None.
    cause : BaseException | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, object]] | None = None,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        combined_context: dict[str, object] = dict(context or {})
        if errors:
            combined_context.setdefault("validation_errors", [dict(error) for error in errors])
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            cause=cause,
            context=combined_context,
        )


class SettingsStoreError(AutoRetryError):
    """The persisted settings document could not be loaded or saved."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.SETTINGS_STORE_ERROR,
            cause=cause,
            context=context,
        )


class RetryCancelledError(AutoRetryError):
    """A retry loop was cancelled while an attempt or a delay was pending.

    Parameters
    ----------
    name : str
        Name of the wrapped operation.
    attempts : int
        Number of attempts started before cancellation.
    """

    def __init__(self, name: str, attempts: int) -> None:
        super().__init__(
            f"Retry loop for {name!r} cancelled after {attempts} attempt(s)",
            code=ErrorCode.RETRY_CANCELLED,
            http_status=499,
            log_level=logging.INFO,
            context={"operation": name, "attempts": attempts},
        )
        self.name = name
        self.attempts = attempts
