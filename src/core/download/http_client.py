"""
Core HTTP content fetcher using aiohttp.

Provides fetch-by-URI as an async byte stream without any knowledge of the
feed being mirrored. Handles timeouts, connection pooling, SSL verification,
and error classification. Retry is a higher-level concern.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

import aiohttp

from core.errors.exceptions import (
    AuthError,
    ErrorCategory,
    FeedSyncError,
    PermanentError,
    ThrottlingError,
    TransientIOError,
    classify_http_status,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks


class ContentFetcher(Protocol):
    """Fetch-by-URI returning a byte stream.

    Implementations raise FeedSyncError subclasses for failures so callers can
    classify them; the stream may be abandoned early via aclose().
    """

    def stream(self, url: str) -> AsyncIterator[bytes]:
        ...


def status_error(status: int, url: str, retry_after: str | None = None) -> FeedSyncError:
    """Build the typed exception for a non-200 response."""
    category = classify_http_status(status)
    message = f"HTTP {status}"
    context = {"status_code": status, "url": url}

    if category == ErrorCategory.AUTH:
        return AuthError(message, context=context)
    if status == 429:
        try:
            delay = float(retry_after) if retry_after else None
        except ValueError:
            delay = None
        return ThrottlingError(message, retry_after=delay, context=context)
    if category == ErrorCategory.PERMANENT:
        return PermanentError(message, context=context)
    return TransientIOError(message, context=context)


def create_session(
    max_connections: int = 100,
    max_connections_per_host: int = 10,
    enable_ssl: bool = True,
    timeout_total: int = 300,
    timeout_connect: int = 30,
    timeout_sock_read: int = 60,
    headers: dict[str, str] | None = None,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession with connection pooling and timeouts.

    Timeout configuration prevents indefinite hangs:
    - timeout_total: Total time for the entire request (default: 300s)
    - timeout_connect: Time to establish connection (default: 30s)
    - timeout_sock_read: Time between reads (default: 60s)

    Note:
        Caller is responsible for session lifecycle management.
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ssl=enable_ssl,
        ttl_dns_cache=300,
        enable_cleanup_closed=True,
    )

    timeout = aiohttp.ClientTimeout(
        total=timeout_total,
        connect=timeout_connect,
        sock_read=timeout_sock_read,
    )

    return aiohttp.ClientSession(connector=connector, timeout=timeout, headers=headers)


class HttpContentFetcher:
    """
    Streams remote content over a shared aiohttp session.

    Used for both single images and animated-content archives. A session
    passed in by the caller is left open on close(); a session created here is
    owned and closed here.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 300,
        sock_read_timeout: int = 60,
        chunk_size: int = CHUNK_SIZE,
        max_connections: int = 100,
        max_connections_per_host: int = 10,
    ):
        self._session = session
        self._owns_session = session is None
        self._headers = dict(headers or {})
        self.timeout = timeout
        self.sock_read_timeout = sock_read_timeout
        self.chunk_size = chunk_size
        self._max_connections = max_connections
        self._max_connections_per_host = max_connections_per_host

    async def __aenter__(self) -> "HttpContentFetcher":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session(
                max_connections=self._max_connections,
                max_connections_per_host=self._max_connections_per_host,
                timeout_total=self.timeout,
                timeout_sock_read=self.sock_read_timeout,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        """
        Yield the body of ``url`` in chunks.

        Raises:
            AuthError: 401 from the content host
            PermanentError: other 4xx responses
            ThrottlingError: 429, with Retry-After when the server sends one
            TransientIOError: 5xx, timeouts, connection failures, short bodies
        """
        session = self._ensure_session()
        try:
            async with session.get(
                url,
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout, sock_read=self.sock_read_timeout
                ),
                allow_redirects=True,
            ) as response:
                if response.status != 200:
                    raise status_error(
                        response.status, url, response.headers.get("Retry-After")
                    )

                expected = response.content_length
                received = 0
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    received += len(chunk)
                    yield chunk

                if expected is not None and received != expected:
                    raise TransientIOError(
                        f"Size mismatch: expected {expected} bytes, got {received}",
                        context={"url": url},
                    )

        except TimeoutError as e:
            raise TransientIOError(
                f"Download timeout after {self.timeout}s", cause=e, context={"url": url}
            ) from e
        except aiohttp.ClientError as e:
            raise TransientIOError(
                f"Connection error: {e}", cause=e, context={"url": url}
            ) from e


__all__ = [
    "CHUNK_SIZE",
    "ContentFetcher",
    "HttpContentFetcher",
    "create_session",
    "status_error",
]
