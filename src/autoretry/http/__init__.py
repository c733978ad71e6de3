"""Retry engine for asynchronous HTTP calls.

This package provides the RetryExecutor, the policy it consults, the
FunctionPatcher and RetryTransport that bind it to call sites, and the
notification hub its lifecycle events are delivered through.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from autoretry.http.adapters import FunctionPatcher
from autoretry.http.errors import HttpConnectionError, HttpError, HttpStatusError
from autoretry.http.events import (
    AttemptFailedWillRetry,
    ExhaustedRetries,
    GaveUpNonRetryable,
    Notification,
    NotificationHub,
    NotificationSink,
    RetryEvent,
    SucceededAfterRetry,
    format_notification,
)
from autoretry.http.executor import CancellationToken, RetryExecutor
from autoretry.http.policy import DEFAULT_ALLOW_LIST, AttemptError, RetryConfig, RetryPolicy
from autoretry.http.transport import GENERATION_ENDPOINTS, EndpointFilter, RetryTransport
from autoretry.observability import RetryMetrics

__all__ = [
    "DEFAULT_ALLOW_LIST",
    "GENERATION_ENDPOINTS",
    "AttemptError",
    "AttemptFailedWillRetry",
    "CancellationToken",
    "EndpointFilter",
    "ExhaustedRetries",
    "FunctionPatcher",
    "GaveUpNonRetryable",
    "HttpConnectionError",
    "HttpError",
    "HttpStatusError",
    "Notification",
    "NotificationHub",
    "NotificationSink",
    "RetryConfig",
    "RetryEvent",
    "RetryExecutor",
    "RetryPolicy",
    "RetryTransport",
    "SucceededAfterRetry",
    "format_notification",
    "make_retrying_client",
]


def make_retrying_client(
    config: RetryExecutor | RetryConfig | Callable[[], RetryConfig],
    *,
    sink: NotificationSink | None = None,
    metrics: RetryMetrics | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    endpoint_filter: EndpointFilter | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` whose allow-listed calls are retried.

    Parameters
    ----------
    config : RetryExecutor | RetryConfig | Callable[[], RetryConfig]
        Existing executor, or the config (or snapshot source) to build one from.
    sink : NotificationSink | None, optional
        Event receiver for a newly built executor. Defaults to None.
    metrics : RetryMetrics | None, optional
        Metrics for a newly built executor. Defaults to None.
    transport : httpx.AsyncBaseTransport | None, optional
        Inner transport. Defaults to ``httpx.AsyncHTTPTransport()``.
    endpoint_filter : EndpointFilter | None, optional
        Calls routed through retries. Defaults to POSTs to the generation endpoints.
    **client_kwargs : Any
        Forwarded to ``httpx.AsyncClient`` (``base_url``, ``timeout``, ...).

    Returns
    -------
    httpx.AsyncClient
        Client using a :class:`RetryTransport`.
    """
    if isinstance(config, RetryExecutor):
        executor = config
    else:
        executor = RetryExecutor(config, sink=sink, metrics=metrics)
    retry_transport = RetryTransport(
        executor, transport=transport, endpoint_filter=endpoint_filter
    )
    return httpx.AsyncClient(transport=retry_transport, **client_kwargs)
