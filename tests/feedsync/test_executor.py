"""
Tests for the bounded-concurrency download executor.

Test coverage:
- Already-published items are skipped without fetching
- At most ``concurrency`` downloads run at once
- Atomic publish and partial multi-page progress
- One failing item does not affect its siblings
- Early close cancels outstanding downloads
"""

import asyncio

import pytest
from prometheus_client import CollectorRegistry

from conftest import ScriptedFetcher, make_animated_item, make_item
from feedsync.executor import DownloadExecutor
from feedsync.metrics import SyncMetrics
from feedsync.paths import partial_path, resolve_targets


async def _collect(executor, items):
    return [outcome async for outcome in executor.download_batch(items)]


class TestDownloadItem:

    @pytest.mark.asyncio
    async def test_downloads_every_page(self, destination):
        fetcher = ScriptedFetcher(body=b"png")
        executor = DownloadExecutor(fetcher, destination)
        item = make_item(7, pages=3)

        outcome = await executor.download_item(item)

        assert outcome.succeeded
        assert not outcome.skipped
        assert outcome.bytes_downloaded == 9
        for target in resolve_targets(item, destination):
            assert target.destination.read_bytes() == b"png"
            assert not partial_path(target.destination).exists()

    @pytest.mark.asyncio
    async def test_existing_item_skipped_without_fetch(self, destination):
        item = make_item(7, pages=2)
        for target in resolve_targets(item, destination):
            target.destination.write_bytes(b"old")
        fetcher = ScriptedFetcher()

        outcome = await DownloadExecutor(fetcher, destination).download_item(item)

        assert outcome.succeeded
        assert outcome.skipped
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_only_missing_pages_fetched(self, destination):
        item = make_item(7, pages=3)
        targets = resolve_targets(item, destination)
        targets[0].destination.write_bytes(b"old")
        fetcher = ScriptedFetcher()

        outcome = await DownloadExecutor(fetcher, destination).download_item(item)

        assert outcome.succeeded
        assert fetcher.calls == [targets[1].url, targets[2].url]
        assert targets[0].destination.read_bytes() == b"old"

    @pytest.mark.asyncio
    async def test_partial_page_failure_keeps_published_pages(self, destination):
        item = make_item(7, pages=3)
        targets = resolve_targets(item, destination)
        fetcher = ScriptedFetcher(failures={targets[1].url: 1})
        executor = DownloadExecutor(fetcher, destination)

        first = await executor.download_item(item)

        assert not first.succeeded
        assert first.error_category == "transient"
        assert "503" in first.error_message
        assert targets[0].destination.exists()
        assert not targets[1].destination.exists()
        assert not targets[2].destination.exists()
        assert not partial_path(targets[1].destination).exists()

        fetcher.calls.clear()
        second = await executor.download_item(item)

        assert second.succeeded
        assert fetcher.calls == [targets[1].url, targets[2].url]

    @pytest.mark.asyncio
    async def test_animated_item_downloads_archive(self, destination):
        item = make_animated_item(9)
        fetcher = ScriptedFetcher(body=b"PK")

        outcome = await DownloadExecutor(fetcher, destination).download_item(item)

        assert outcome.succeeded
        assert (destination / "9.zip").read_bytes() == b"PK"
        assert fetcher.calls == [item.animation.archive_url]


class TestDownloadBatch:

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, destination):
        fetcher = ScriptedFetcher(delay=0.01)
        executor = DownloadExecutor(fetcher, destination, concurrency=3)

        outcomes = await _collect(executor, [make_item(i) for i in range(20)])

        assert len(outcomes) == 20
        assert all(o.succeeded for o in outcomes)
        assert 1 < fetcher.max_active <= 3

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_siblings(self, destination):
        items = [make_item(i) for i in range(5)]
        bad_url = items[2].pages[0].url
        fetcher = ScriptedFetcher(failures={bad_url: 1})

        outcomes = await _collect(DownloadExecutor(fetcher, destination, concurrency=2), items)

        by_id = {o.item.id: o for o in outcomes}
        assert not by_id[2].succeeded
        assert all(by_id[i].succeeded for i in (0, 1, 3, 4))

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_outcome(self, destination):
        class BrokenFetcher:
            def stream(self, url):
                raise RuntimeError("fetcher bug")

        outcomes = await _collect(DownloadExecutor(BrokenFetcher(), destination), [make_item(1)])

        assert len(outcomes) == 1
        assert not outcomes[0].succeeded
        assert "RuntimeError: fetcher bug" == outcomes[0].error_message
        assert outcomes[0].error_category == "unknown"

    @pytest.mark.asyncio
    async def test_empty_batch(self, destination):
        assert await _collect(DownloadExecutor(ScriptedFetcher(), destination), []) == []

    @pytest.mark.asyncio
    async def test_in_flight_tracked_and_cleared(self, destination):
        executor = DownloadExecutor(ScriptedFetcher(delay=0.01), destination, concurrency=2)
        seen = set()

        async for _ in executor.download_batch([make_item(i) for i in range(4)]):
            seen |= executor.in_flight
            assert len(executor.in_flight) <= 2

        assert executor.in_flight == frozenset()
        assert seen <= {0, 1, 2, 3}

    @pytest.mark.asyncio
    async def test_early_close_cancels_pending(self, destination):
        fetcher = ScriptedFetcher(delay=0.05)
        executor = DownloadExecutor(fetcher, destination, concurrency=1)
        items = [make_item(i) for i in range(5)]

        batch = executor.download_batch(items)
        first = await batch.__anext__()
        await batch.aclose()

        assert first.succeeded
        assert executor.in_flight == frozenset()
        published = [t for i in items for t in resolve_targets(i, destination) if t.is_published()]
        assert len(published) < len(items)

    @pytest.mark.asyncio
    async def test_shared_semaphore(self, destination):
        fetcher = ScriptedFetcher(delay=0.01)
        semaphore = asyncio.Semaphore(2)
        first = DownloadExecutor(fetcher, destination / "a", semaphore=semaphore)
        second = DownloadExecutor(fetcher, destination / "b", semaphore=semaphore)

        await asyncio.gather(
            _collect(first, [make_item(i) for i in range(4)]),
            _collect(second, [make_item(i) for i in range(4)]),
        )

        assert fetcher.max_active <= 2

    @pytest.mark.asyncio
    async def test_in_flight_gauge_returns_to_zero(self, destination):
        metrics = SyncMetrics(registry=CollectorRegistry())
        executor = DownloadExecutor(ScriptedFetcher(), destination, metrics=metrics)

        await _collect(executor, [make_item(i) for i in range(3)])

        assert metrics.registry.get_sample_value("feedsync_downloads_in_flight") == 0.0


def test_concurrency_must_be_positive(destination):
    with pytest.raises(ValueError, match="concurrency"):
        DownloadExecutor(ScriptedFetcher(), destination, concurrency=0)
