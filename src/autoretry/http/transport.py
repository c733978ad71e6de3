"""httpx transport middleware routing allow-listed calls through retries.

RetryTransport sits between an ``httpx.AsyncClient`` and the transport that
actually talks to the network. Only requests whose resolved path is on the
endpoint allow-list and whose method matches the filter (POST by default)
enter the retry loop; everything else reaches the inner transport exactly
once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import httpx

from autoretry.http.errors import HttpStatusError
from autoretry.logging import get_logger

if TYPE_CHECKING:
    from autoretry.http.types import RetryStrategy

__all__ = [
    "GENERATION_ENDPOINTS",
    "EndpointFilter",
    "RetryTransport",
    "resolve_path",
]

logger = get_logger(__name__)

GENERATION_ENDPOINTS: Final[tuple[str, ...]] = (
    "/api/backends/kobold/generate",
    "/api/backends/koboldhorde/generate",
    "/api/backends/text-completions/generate",
    "/api/novelai/generate",
    "/api/backends/chat-completions/generate",
)


def resolve_path(url: str | httpx.URL, origin: str | httpx.URL | None = None) -> str:
    """Return the path of ``url`` after resolving it against ``origin``.

    Parameters
    ----------
    url : str | httpx.URL
        Absolute or relative URL.
    origin : str | httpx.URL | None, optional
        Origin relative URLs are resolved against. Defaults to None.

    Returns
    -------
    str
        Normalized path component.

    Examples
    --------
    >>> resolve_path("api/novelai/generate?x=1", origin="http://localhost:8000/")
    '/api/novelai/generate'
    """
    resolved = httpx.URL(url)
    if origin is not None and not resolved.is_absolute_url:
        resolved = httpx.URL(origin).join(resolved)
    return resolved.path or "/"


@dataclass(frozen=True)
class EndpointFilter:
    """Decide whether an intercepted call is in scope for retries.

    Attributes
    ----------
    paths : tuple[str, ...]
        Ordered allow-list of paths.
    method : str
        The only HTTP method routed through retries.
    """

    paths: tuple[str, ...] = GENERATION_ENDPOINTS
    method: str = "POST"

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(self.paths))
        object.__setattr__(self, "method", self.method.upper())

    def matches(
        self,
        url: str | httpx.URL,
        method: str | None,
        *,
        origin: str | httpx.URL | None = None,
    ) -> bool:
        """Return True when ``method url`` should be retried."""
        if (method or "GET").upper() != self.method:
            return False
        return resolve_path(url, origin) in self.paths

    def matches_request(self, request: httpx.Request) -> bool:
        return self.matches(request.url, request.method)


class RetryTransport(httpx.AsyncBaseTransport):
    """Async transport that retries allow-listed requests.

    Parameters
    ----------
    executor : RetryStrategy
        Executor that drives the attempt loop.
    transport : httpx.AsyncBaseTransport | None, optional
        Inner transport performing the real I/O. Defaults to
        ``httpx.AsyncHTTPTransport()``.
    endpoint_filter : EndpointFilter | None, optional
        Scope of the retry layer. Defaults to the generation endpoints, POST only.

    Notes
    -----
    Inside the loop a non-2xx response counts as a failed attempt. When the
    loop ends on such a failure the caller receives that last response, as it
    would have without the retry layer; transport exceptions are re-raised
    unchanged.
    """

    def __init__(
        self,
        executor: RetryStrategy,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        endpoint_filter: EndpointFilter | None = None,
    ) -> None:
        self._executor = executor
        self._inner = transport or httpx.AsyncHTTPTransport()
        self.endpoint_filter = endpoint_filter or EndpointFilter()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Send ``request``, retrying it when it is in scope."""
        if not self.endpoint_filter.matches_request(request):
            return await self._inner.handle_async_request(request)

        # Buffer the body so every attempt resends the same bytes.
        await request.aread()

        async def _attempt() -> httpx.Response:
            response = await self._inner.handle_async_request(request)
            if response.is_success:
                return response
            await response.aread()
            raise HttpStatusError.from_response(response)

        try:
            return await self._executor.execute(_attempt, name=request.url.path)
        except HttpStatusError as exc:
            if exc.response is None:
                raise
            logger.debug(
                "Returning last failed response for %s",
                request.url.path,
                extra={"operation": request.url.path, "http_status": exc.status},
            )
            return exc.response

    async def aclose(self) -> None:
        await self._inner.aclose()
