"""
Byte fetchers used by the cache to download images.

The cache only needs ``await fetcher.fetch(url) -> bytes``; hosts can pass any
object with that method (tests use an in-memory fake). HttpxFetcher is the
default.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from .exceptions import FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "MenuImageCache/1.0",
    "Accept": "image/*,*/*;q=0.8",
}


@runtime_checkable
class Fetcher(Protocol):
    """Anything that can download the bytes behind a URL."""

    async def fetch(self, url: str) -> bytes:
        """Return the response body or raise FetchError."""
        ...


class HttpxFetcher:
    """
    Fetcher backed by ``httpx.AsyncClient``.

    Timeouts are the client's own (httpx defaults unless ``timeout`` is
    given); the cache adds no deadline of its own and never retries.
    The client is created lazily inside the running event loop and is only
    closed by ``aclose`` when this fetcher created it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            kwargs = {"follow_redirects": True, "headers": self._headers}
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            self._client = httpx.AsyncClient(**kwargs)
            self._owns_client = True
        return self._client

    async def fetch(self, url: str) -> bytes:
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.TimeoutException as exc:
            raise FetchError(url, "timeout") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(url, str(exc) or type(exc).__name__) from exc
        return response.content

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpxFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
