"""
Bounded-concurrency download executor.

Downloads a batch of items with at most ``concurrency`` items holding a
permit at once and yields one DownloadOutcome per item in completion order.

Per item:
- Every target already published: success without any fetch
- Otherwise the missing targets are fetched in page order through
  download_to_file (``.partial`` then atomic rename)
- The first failing page fails the item; pages already published stay and
  are skipped on the next pass
- Any exception becomes a failed outcome; siblings keep running
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

from core.download import ContentFetcher, download_to_file
from core.errors.exceptions import classify_exception
from core.logging.context import set_log_context
from core.logging.utilities import log_with_context
from feedsync.metrics import SyncMetrics
from feedsync.models import DownloadOutcome, Item
from feedsync.paths import resolve_targets

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8


class DownloadExecutor:
    """
    Runs item downloads against a shared ContentFetcher.

    The semaphore may be injected so several executors share one limit;
    otherwise one sized ``concurrency`` is created here.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        destination: Path,
        concurrency: int = DEFAULT_CONCURRENCY,
        semaphore: asyncio.Semaphore | None = None,
        metrics: SyncMetrics | None = None,
    ):
        if semaphore is None and concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        self.fetcher = fetcher
        self.destination = Path(destination)
        self.concurrency = concurrency
        self._semaphore = semaphore or asyncio.Semaphore(concurrency)
        self._metrics = metrics
        self._in_flight: set[int] = set()

    @property
    def in_flight(self) -> frozenset[int]:
        """Ids of items currently holding a permit."""
        return frozenset(self._in_flight)

    async def download_batch(self, items: Iterable[Item]) -> AsyncIterator[DownloadOutcome]:
        """
        Download ``items`` concurrently, yielding outcomes as they complete.

        Closing the generator early cancels the downloads that have not
        finished; their writes leave at most a ``.partial`` file.
        """
        tasks = [asyncio.ensure_future(self._bounded_download(item)) for item in items]
        if not tasks:
            return

        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _bounded_download(self, item: Item) -> DownloadOutcome:
        async with self._semaphore:
            self._in_flight.add(item.id)
            if self._metrics is not None:
                self._metrics.downloads_in_flight.inc()
            try:
                return await self.download_item(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Unhandled exception downloading item",
                    extra={"item_id": item.id, "error": str(e)},
                    exc_info=True,
                )
                return DownloadOutcome(
                    item=item,
                    succeeded=False,
                    error_message=f"{type(e).__name__}: {e}",
                    error_category=classify_exception(e).value,
                )
            finally:
                self._in_flight.discard(item.id)
                if self._metrics is not None:
                    self._metrics.downloads_in_flight.dec()

    async def download_item(self, item: Item) -> DownloadOutcome:
        """Download one item without taking a permit."""
        set_log_context(item_id=str(item.id))
        start_time = time.perf_counter()

        targets = resolve_targets(item, self.destination)
        missing = [t for t in targets if not t.is_published()]

        if not missing:
            logger.debug(
                "Item already downloaded, skipping",
                extra={"item_id": item.id, "pages": len(targets)},
            )
            return DownloadOutcome(item=item, succeeded=True, skipped=True)

        bytes_downloaded = 0
        for target in missing:
            result, error = await download_to_file(
                self.fetcher.stream(target.url), target.destination
            )

            if error is not None:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Item download failed",
                    item_id=item.id,
                    download_url=target.url,
                    destination_path=str(target.destination),
                    status_code=error.status_code,
                    error_category=error.error_category.value,
                    error_message=error.error_message,
                )
                return DownloadOutcome(
                    item=item,
                    succeeded=False,
                    error_message=error.error_message,
                    error_category=error.error_category.value,
                    bytes_downloaded=bytes_downloaded,
                )

            bytes_downloaded += result.bytes_written

        log_with_context(
            logger,
            logging.DEBUG,
            "Item downloaded",
            item_id=item.id,
            pages=len(missing),
            bytes_downloaded=bytes_downloaded,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return DownloadOutcome(item=item, succeeded=True, bytes_downloaded=bytes_downloaded)


__all__ = ["DownloadExecutor", "DEFAULT_CONCURRENCY"]
