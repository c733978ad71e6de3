"""Startup wiring for the retry layer.

``build_runtime`` is the host-side bootstrap: it loads settings, seeds the
config holder from the settings store, and connects executor, notification
hub, metrics, patcher, controller and the HTTP client factory.

Examples
--------
>>> from autoretry.runtime import build_runtime
>>> from autoretry.settings import load_settings
>>> runtime = build_runtime(load_settings(metrics_enabled=False))
>>> runtime.holder.snapshot().max_retries
3
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from autoretry.config import DebouncedPersister, RetryConfigHolder, SettingsController, SettingsStore
from autoretry.http import make_retrying_client
from autoretry.http.adapters import FunctionPatcher
from autoretry.http.events import NotificationHub
from autoretry.http.executor import RetryExecutor
from autoretry.logging import get_logger, setup_logging
from autoretry.observability import RetryMetrics, get_retry_metrics
from autoretry.settings import RetrySettings, load_settings

if TYPE_CHECKING:
    import httpx
    from prometheus_client import CollectorRegistry

    from autoretry.http.transport import EndpointFilter

__all__ = ["RetryRuntime", "build_runtime"]

logger = get_logger(__name__)


@dataclass
class RetryRuntime:
    """Everything a host application needs to route calls through retries.

    Attributes
    ----------
    settings : RetrySettings
        Settings the runtime was built from.
    holder : RetryConfigHolder
        Owner of the live configuration.
    hub : NotificationHub
        Event hub; subscribe to render notifications.
    executor : RetryExecutor
        Executor reading ``holder`` snapshots.
    patcher : FunctionPatcher
        Named-function decoration bound to ``executor``.
    controller : SettingsController
        Bounded setters for a settings UI.
    endpoint_filter : EndpointFilter
        Scope of :meth:`client`.
    persister : DebouncedPersister | None
        Present when a settings path is configured.
    metrics : RetryMetrics | None
        Present when metrics are enabled.
    """

    settings: RetrySettings
    holder: RetryConfigHolder
    hub: NotificationHub
    executor: RetryExecutor
    patcher: FunctionPatcher
    controller: SettingsController
    endpoint_filter: EndpointFilter
    persister: DebouncedPersister | None = None
    metrics: RetryMetrics | None = None

    def client(
        self, *, transport: httpx.AsyncBaseTransport | None = None, **client_kwargs: Any
    ) -> httpx.AsyncClient:
        """Return an ``httpx.AsyncClient`` whose in-scope calls use :attr:`executor`."""
        return make_retrying_client(
            self.executor,
            transport=transport,
            endpoint_filter=self.endpoint_filter,
            **client_kwargs,
        )

    def close(self) -> None:
        """Write any pending settings change."""
        if self.persister is not None and self.persister.pending:
            self.persister.flush()


def build_runtime(
    settings: RetrySettings | None = None,
    *,
    registry: CollectorRegistry | None = None,
    configure_logging: bool = False,
) -> RetryRuntime:
    """Assemble a :class:`RetryRuntime`.

    Parameters
    ----------
    settings : RetrySettings | None, optional
        Settings to build from. Defaults to :func:`load_settings`.
    registry : CollectorRegistry | None, optional
        Prometheus registry for the metrics. Defaults to the global registry.
    configure_logging : bool, optional
        Install the JSON log handler at ``settings.log_level``. Defaults to False.

    Returns
    -------
    RetryRuntime
        Wired runtime.

    Raises
    ------
    SettingsError
        If settings fail validation.
    SettingsStoreError
        If the persisted settings document cannot be read or seeded.
    """
    settings = settings or load_settings()
    if configure_logging:
        setup_logging(settings.log_level)

    persister: DebouncedPersister | None = None
    if settings.settings_path is not None:
        store = SettingsStore(settings.settings_path)
        holder = RetryConfigHolder(store.load(defaults=settings.to_config()))
        persister = DebouncedPersister(store, holder, delay_s=settings.persist_debounce_s)
    else:
        holder = RetryConfigHolder(settings.to_config())

    metrics: RetryMetrics | None = None
    if settings.metrics_enabled:
        metrics = get_retry_metrics() if registry is None else RetryMetrics(registry=registry)
    hub = NotificationHub()
    executor = RetryExecutor(holder.snapshot, sink=hub, metrics=metrics)
    runtime = RetryRuntime(
        settings=settings,
        holder=holder,
        hub=hub,
        executor=executor,
        patcher=FunctionPatcher(executor),
        controller=SettingsController(holder, persister),
        endpoint_filter=settings.endpoint_filter(),
        persister=persister,
        metrics=metrics,
    )
    config = holder.snapshot()
    logger.info(
        "Retry layer ready",
        extra={
            "operation": "startup",
            "enabled": config.enabled,
            "max_retries": config.max_retries,
            "endpoints": list(runtime.endpoint_filter.paths),
        },
    )
    return runtime
