"""Remote feed listing client.

The listing is exposed as a lazy async iterator of Items, newest first. Pages
are requested only as the consumer advances, so a consumer that stops early
(see compute_delta) never triggers further requests.

Page format:

    {"items": [{...item...}, ...], "next_url": "https://.../follow?offset=30"}

``next_url`` absent, null or empty ends the listing. Relative next URLs are
resolved against the page they came from.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol
from urllib.parse import urljoin

import aiohttp
from pydantic import ValidationError

from core.download.http_client import status_error
from core.errors.exceptions import PermanentError, TransientIOError
from core.logging.context import get_log_context
from core.resilience.retry import RetryConfig, with_retry_async
from feedsync.models import Item

logger = logging.getLogger(__name__)

LISTING_RETRY = RetryConfig(max_attempts=3, base_delay=2.0, max_delay=30.0)


class FeedClient(Protocol):
    def iter_items(self) -> AsyncIterator[Item]:
        """Yield items newest first. The iterator may be closed early."""
        ...


class HttpFeedClient:
    """Async JSON pager over the remote listing with bearer authentication."""

    def __init__(
        self,
        feed_url: str,
        token: str = "",
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: int = 30,
        items_key: str = "items",
        next_key: str = "next_url",
        retry_config: RetryConfig | None = None,
        item_parser: Callable[[dict[str, Any]], Item] = Item.model_validate,
    ):
        if not feed_url.startswith(("http://", "https://")):
            raise ValueError(
                f"HttpFeedClient feed_url must start with http:// or https://, got: {feed_url!r}"
            )

        self.feed_url = feed_url
        self.timeout_seconds = timeout_seconds
        self.items_key = items_key
        self.next_key = next_key
        self._item_parser = item_parser
        self._headers = {"Accept": "application/json", **(headers or {})}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

        self._session = session
        self._owns_session = session is None
        self._fetch_page = with_retry_async(config=retry_config or LISTING_RETRY)(
            self._fetch_page_once
        )
        self.pages_fetched = 0

    async def __aenter__(self) -> "HttpFeedClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    @staticmethod
    def _get_context_ids() -> dict[str, str]:
        return {k: v for k, v in get_log_context().items() if v}

    async def _fetch_page_once(self, url: str) -> dict[str, Any]:
        session = self._ensure_session()
        try:
            async with session.get(url, headers=self._headers) as response:
                if response.status != 200:
                    error = status_error(response.status, url, response.headers.get("Retry-After"))
                    logger.warning(
                        "Listing request failed",
                        extra={
                            **self._get_context_ids(),
                            "url": url,
                            "http_status": response.status,
                            "error_category": error.category.value,
                        },
                    )
                    raise error

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise TransientIOError(
                        f"Listing page is not valid JSON: {url}", cause=e, context={"url": url}
                    ) from e

        except TimeoutError as e:
            raise TransientIOError(
                f"Timeout after {self.timeout_seconds}s: {url}", cause=e, context={"url": url}
            ) from e
        except aiohttp.ClientError as e:
            raise TransientIOError(
                f"Connection error: {e}", cause=e, context={"url": url}
            ) from e

        if not isinstance(data, dict):
            raise PermanentError(
                f"Listing page is not a JSON object: {url}", context={"url": url}
            )

        self.pages_fetched += 1
        logger.debug(
            "Listing page fetched",
            extra={"url": url, "items_total": len(data.get(self.items_key) or [])},
        )
        return data

    async def iter_items(self) -> AsyncIterator[Item]:
        next_url: str | None = self.feed_url

        while next_url:
            page_url = next_url
            data = await self._fetch_page(page_url)

            for raw in data.get(self.items_key) or []:
                try:
                    item = self._item_parser(raw)
                except ValidationError as e:
                    logger.warning(
                        "Skipping malformed listing entry",
                        extra={"url": page_url, "error": str(e)[:200]},
                    )
                    continue
                yield item

            following = data.get(self.next_key)
            next_url = urljoin(page_url, following) if following else None


__all__ = ["FeedClient", "HttpFeedClient", "LISTING_RETRY"]
