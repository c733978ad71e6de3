"""Ownership, persistence and editing of the live retry configuration.

The pieces fit together as follows:

- :class:`RetryConfigHolder` owns the current :class:`RetryConfig`; readers
  take immutable snapshots, the single writer replaces it wholesale.
- :class:`SettingsStore` loads and saves the config as a YAML document
  validated against ``retry_config.schema.json``.
- :class:`DebouncedPersister` coalesces bursts of edits into one write.
- :class:`SettingsController` is what a settings UI calls: bounded setters
  that update the holder and schedule a persist.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Final

import jsonschema
import yaml

from autoretry.errors import ConfigurationError, SettingsStoreError
from autoretry.http.policy import RetryConfig
from autoretry.logging import get_logger

__all__ = [
    "BASE_DELAY_BOUNDS",
    "BASE_DELAY_STEP",
    "MAX_RETRIES_BOUNDS",
    "DebouncedPersister",
    "RetryConfigHolder",
    "SettingsController",
    "SettingsStore",
    "config_from_document",
    "config_to_document",
]

logger = get_logger(__name__)

SCHEMA_PATH: Final[Path] = Path(__file__).with_name("retry_config.schema.json")

MAX_RETRIES_BOUNDS: Final[tuple[int, int]] = (0, 10)
BASE_DELAY_BOUNDS: Final[tuple[int, int]] = (500, 10_000)
BASE_DELAY_STEP: Final[int] = 500

# camelCase keys used by older settings documents.
_LEGACY_KEYS: Final[Mapping[str, str]] = {
    "maxRetries": "max_retries",
    "retryDelay": "base_delay_ms",
    "exponentialBackoff": "exponential_backoff",
    "backoffMultiplier": "backoff_multiplier",
    "retryableStatusCodes": "retryable_status_codes",
}


class RetryConfigHolder:
    """Explicitly owned, process-wide retry configuration.

    Parameters
    ----------
    config : RetryConfig | None, optional
        Initial configuration. Defaults to ``RetryConfig()``.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()

    def snapshot(self) -> RetryConfig:
        """Return the current configuration."""
        return self._config

    def replace(self, config: RetryConfig) -> RetryConfig:
        """Install ``config`` as the current snapshot."""
        self._config = config
        return config

    def update(self, **changes: object) -> RetryConfig:
        """Install a validated copy of the current config with ``changes`` applied."""
        return self.replace(self._config.with_changes(**changes))


def config_to_document(config: RetryConfig) -> dict[str, object]:
    """Return the persisted form of ``config``."""
    codes = config.retryable_status_codes
    return {
        "enabled": config.enabled,
        "max_retries": config.max_retries,
        "base_delay_ms": config.base_delay_ms,
        "exponential_backoff": config.exponential_backoff,
        "backoff_multiplier": config.backoff_multiplier,
        "retryable_status_codes": sorted(codes) if codes is not None else None,
        "network_errors_always_retryable": config.network_errors_always_retryable,
    }


def config_from_document(
    document: Mapping[str, object], schema: Mapping[str, object] | None = None
) -> RetryConfig:
    """Build a :class:`RetryConfig` from a persisted document.

    Legacy camelCase keys are accepted; missing keys take their defaults.

    Parameters
    ----------
    document : Mapping[str, object]
        Parsed YAML document.
    schema : Mapping[str, object] | None, optional
        JSON schema to validate against. Defaults to None (no validation).

    Returns
    -------
    RetryConfig
        Validated configuration.

    Notes
    -----
    This function may propagate ``jsonschema.ValidationError`` when the
    document does not match ``schema`` and ``ConfigurationError`` when it
    violates a RetryConfig invariant.
    """
    normalized = {_LEGACY_KEYS.get(key, key): value for key, value in document.items()}
    if schema is not None:
        jsonschema.validate(normalized, schema)
    codes = normalized.get("retryable_status_codes")
    if codes is not None:
        normalized["retryable_status_codes"] = frozenset(codes)  # type: ignore[arg-type]
    return RetryConfig(**normalized)  # type: ignore[arg-type]


class SettingsStore:
    """YAML-backed storage for the retry configuration.

    Parameters
    ----------
    path : Path
        Location of the YAML document.
    schema_path : Path | None, optional
        JSON schema used for validation. Defaults to the bundled schema.
    """

    def __init__(self, path: Path, schema_path: Path | None = SCHEMA_PATH) -> None:
        self.path = path
        self._schema: dict[str, object] | None = None
        if schema_path is not None and schema_path.exists():
            self._schema = json.loads(schema_path.read_text(encoding="utf-8"))

    def load(self, defaults: RetryConfig | None = None) -> RetryConfig:
        """Load the configuration, seeding defaults when nothing is stored yet.

        Parameters
        ----------
        defaults : RetryConfig | None, optional
            Configuration seeded into an empty store. Defaults to ``RetryConfig()``.

        Returns
        -------
        RetryConfig
            Stored configuration, or the defaults (also written back) when the
            document is missing or empty.

        Raises
        ------
        SettingsStoreError
            If the document cannot be read, parsed or validated.
        """
        try:
            raw = self.path.read_text(encoding="utf-8") if self.path.exists() else ""
            document = yaml.safe_load(raw) if raw.strip() else None
        except (OSError, yaml.YAMLError) as exc:
            msg = f"Cannot read retry settings from {self.path}"
            raise SettingsStoreError(msg, cause=exc, context={"path": str(self.path)}) from exc

        if not document:
            defaults = defaults or RetryConfig()
            logger.info(
                "No stored retry settings; seeding defaults",
                extra={"operation": "settings_load", "path": str(self.path)},
            )
            self.save(defaults)
            return defaults
        if not isinstance(document, Mapping):
            msg = f"Retry settings in {self.path} must be a mapping"
            raise SettingsStoreError(msg, context={"path": str(self.path)})

        try:
            return config_from_document(document, self._schema)
        except (jsonschema.ValidationError, ConfigurationError, TypeError) as exc:
            msg = f"Invalid retry settings in {self.path}: {exc}"
            raise SettingsStoreError(msg, cause=exc, context={"path": str(self.path)}) from exc

    def save(self, config: RetryConfig) -> None:
        """Write ``config`` atomically.

        Raises
        ------
        SettingsStoreError
            If the document cannot be written.
        """
        payload = yaml.safe_dump(config_to_document(config), sort_keys=False)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            msg = f"Cannot write retry settings to {self.path}"
            raise SettingsStoreError(msg, cause=exc, context={"path": str(self.path)}) from exc
        logger.debug(
            "Retry settings saved", extra={"operation": "settings_save", "path": str(self.path)}
        )


class DebouncedPersister:
    """Persist the holder's config once edits have been quiet for ``delay_s``.

    Outside a running event loop every :meth:`schedule` writes immediately.

    Parameters
    ----------
    store : SettingsStore
        Destination of the writes.
    holder : RetryConfigHolder
        Source of the configuration to write.
    delay_s : float, optional
        Quiet period in seconds. Defaults to 1.0.
    """

    def __init__(self, store: SettingsStore, holder: RetryConfigHolder, delay_s: float = 1.0) -> None:
        self._store = store
        self._holder = holder
        self.delay_s = delay_s
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Request a write, restarting the quiet period."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay_s, self._flush_from_timer)

    def flush(self) -> None:
        """Write now and drop any pending timer."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._store.save(self._holder.snapshot())

    def _flush_from_timer(self) -> None:
        self._handle = None
        try:
            self._store.save(self._holder.snapshot())
        except SettingsStoreError:
            # Nobody awaits the timer; the next change retries the write.
            logger.exception("Debounced settings save failed", extra={"operation": "settings_save"})


class SettingsController:
    """Bounded setters backing the settings UI.

    Each setter validates its input, replaces the holder's configuration and
    schedules a debounced persist.

    Parameters
    ----------
    holder : RetryConfigHolder
        Configuration owner; this controller is its only writer.
    persister : DebouncedPersister | None, optional
        Persistence hook. Defaults to None (changes stay in memory).
    """

    def __init__(
        self, holder: RetryConfigHolder, persister: DebouncedPersister | None = None
    ) -> None:
        self._holder = holder
        self._persister = persister

    def state(self) -> dict[str, object]:
        """Return the values the UI controls are initialised with."""
        config = self._holder.snapshot()
        return {
            "enabled": config.enabled,
            "max_retries": config.max_retries,
            "base_delay_ms": config.base_delay_ms,
            "exponential_backoff": config.exponential_backoff,
        }

    def set_enabled(self, enabled: bool) -> RetryConfig:
        return self._apply(enabled=bool(enabled))

    def set_max_retries(self, value: int | str) -> RetryConfig:
        """Set the retry budget; must lie within :data:`MAX_RETRIES_BOUNDS`.

        Raises
        ------
        ConfigurationError
            If ``value`` is not an integer within bounds.
        """
        parsed = _parse_int("max_retries", value)
        low, high = MAX_RETRIES_BOUNDS
        if not low <= parsed <= high:
            raise ConfigurationError.with_details(
                field="max_retries", issue=f"Must be between {low} and {high}"
            )
        return self._apply(max_retries=parsed)

    def set_base_delay_ms(self, value: int | str) -> RetryConfig:
        """Set the initial delay; bounded by :data:`BASE_DELAY_BOUNDS` in steps of 500 ms.

        Raises
        ------
        ConfigurationError
            If ``value`` is not an integer within bounds or off the step grid.
        """
        parsed = _parse_int("base_delay_ms", value)
        low, high = BASE_DELAY_BOUNDS
        if not low <= parsed <= high:
            raise ConfigurationError.with_details(
                field="base_delay_ms", issue=f"Must be between {low} and {high}"
            )
        if parsed % BASE_DELAY_STEP:
            raise ConfigurationError.with_details(
                field="base_delay_ms",
                issue=f"Must be a multiple of {BASE_DELAY_STEP}",
                hint=f"Try {parsed - parsed % BASE_DELAY_STEP}",
            )
        return self._apply(base_delay_ms=parsed)

    def set_exponential_backoff(self, enabled: bool) -> RetryConfig:
        return self._apply(exponential_backoff=bool(enabled))

    def _apply(self, **changes: object) -> RetryConfig:
        config = self._holder.update(**changes)
        logger.info(
            "Retry settings changed",
            extra={"operation": "settings_update", "fields": sorted(changes)},
        )
        if self._persister is not None:
            self._persister.schedule()
        return config


def _parse_int(field: str, value: int | str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError.with_details(field=field, issue="Must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), 10)
    except ValueError as exc:
        raise ConfigurationError.with_details(field=field, issue="Must be an integer") from exc
