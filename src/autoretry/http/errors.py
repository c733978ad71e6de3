"""HTTP-level exception classes.

HttpStatusError is what an in-scope call with a non-2xx response turns into
while it is inside the retry loop; HttpConnectionError marks failures where no
response was received at all.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


class HttpError(Exception):
    """Base exception for HTTP-level failures."""


class HttpStatusError(HttpError):
    """Exception raised for non-2xx responses.

    Parameters
    ----------
    status : int
        HTTP status code.
    body_excerpt : str | None, optional
        Excerpt from response body. Defaults to None.
    headers : dict[str, str] | None, optional
        Response headers. Defaults to None.
    response : httpx.Response | None, optional
        The response that produced the error. Defaults to None.

    Notes
    -----
    After initialization, this exception has instance attributes:
    - ``status``: The HTTP status code (int)
    - ``body_excerpt``: Leading characters of the response body, or None
    - ``headers``: The response headers (dict[str, str], defaults to empty dict)
    - ``response``: The originating response, when known
    """

    def __init__(
        self,
        status: int,
        body_excerpt: str | None = None,
        headers: dict[str, str] | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(f"Server responded with status {status}")
        self.status = status
        self.body_excerpt = body_excerpt
        self.headers = headers or {}
        self.response = response

    @classmethod
    def from_response(cls, response: httpx.Response, excerpt_chars: int = 200) -> HttpStatusError:
        """Build the error from a (fully read) response.

        Parameters
        ----------
        response : httpx.Response
            Response with a non-2xx status.
        excerpt_chars : int, optional
            Maximum number of body characters kept in ``body_excerpt``. Defaults to 200.

        Returns
        -------
        HttpStatusError
            Error carrying status, headers and the response itself.
        """
        try:
            excerpt = response.text[:excerpt_chars] or None
        except (UnicodeDecodeError, LookupError):
            excerpt = None
        return cls(
            response.status_code,
            body_excerpt=excerpt,
            headers=dict(response.headers),
            response=response,
        )


class HttpConnectionError(HttpError):
    """Exception raised when the network could not be reached at all."""
