"""
Tests for retry orchestration over a delta.

Test coverage:
- Transient failures converge and the watermark is written once
- MaxPasses stops with the watermark untouched
- Shutdown between passes stops the cycle
- Empty deltas do not touch the watermark
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import ScriptedFetcher, make_item
from core.resilience.retry import RetryConfig
from feedsync.delta import Delta
from feedsync.executor import DownloadExecutor
from feedsync.orchestrator import (
    MaxPasses,
    NeverStop,
    OrchestratorState,
    RetryOrchestrator,
)
from feedsync.watermark import MemoryWatermarkStore


def _delta(*ids):
    items = [make_item(i) for i in ids]
    return Delta(items=items, new_watermark=max(ids) if ids else None)


class TestStopPolicies:

    def test_never_stop(self):
        assert NeverStop().should_stop(1000, 5) is False

    def test_max_passes(self):
        policy = MaxPasses(3)
        assert policy.should_stop(2, 1) is False
        assert policy.should_stop(3, 1) is True

    def test_max_passes_must_be_positive(self):
        with pytest.raises(ValueError):
            MaxPasses(0)


class TestRetryOrchestrator:

    @pytest.mark.asyncio
    async def test_all_ok_first_pass_writes_watermark(self, destination):
        store = MemoryWatermarkStore(watermark=100)
        orchestrator = RetryOrchestrator(DownloadExecutor(ScriptedFetcher(), destination), store)

        result = await orchestrator.run(_delta(103, 102, 101))

        assert result.ok
        assert result.passes == 1
        assert result.watermark_written == 103

    @pytest.mark.asyncio
    async def test_oversized_title_converges(self, destination):
        store = MemoryWatermarkStore(watermark=100)
        orchestrator = RetryOrchestrator(
            DownloadExecutor(ScriptedFetcher(), destination), store, stop_policy=MaxPasses(5)
        )
        item = make_item(101, title="x" * 300 + "夕焼け" * 50)

        result = await orchestrator.run(Delta(items=[item], new_watermark=101))

        assert result.state == OrchestratorState.ALL_OK
        assert result.passes == 1
        assert store.writes == [101]
        assert store.writes == [103]

    @pytest.mark.asyncio
    async def test_transient_failures_converge(self, destination):
        delta = _delta(105, 104, 103)
        flaky = delta.items[1].pages[0].url
        fetcher = ScriptedFetcher(failures={flaky: 3})
        store = MemoryWatermarkStore(watermark=100)
        reporter = MagicMock()

        result = await RetryOrchestrator(
            DownloadExecutor(fetcher, destination), store, reporter=reporter
        ).run(delta)

        assert result.state == OrchestratorState.ALL_OK
        assert result.passes == 4
        assert result.remaining == []
        assert {i.id for i in result.succeeded} == {103, 104, 105}
        assert store.writes == [105]
        assert fetcher.calls.count(flaky) == 4
        pass_sizes = [c.args for c in reporter.pass_started.call_args_list]
        assert pass_sizes == [(1, 3), (2, 1), (3, 1), (4, 1)]

    @pytest.mark.asyncio
    async def test_max_passes_leaves_watermark(self, destination):
        delta = _delta(105, 104)
        fetcher = ScriptedFetcher(failures={delta.items[0].pages[0].url: 10})
        store = MemoryWatermarkStore(watermark=100)

        result = await RetryOrchestrator(
            DownloadExecutor(fetcher, destination), store, stop_policy=MaxPasses(2)
        ).run(delta)

        assert result.state == OrchestratorState.STOPPED
        assert result.passes == 2
        assert [i.id for i in result.remaining] == [105]
        assert store.writes == []
        assert await store.read() == 100

    @pytest.mark.asyncio
    async def test_shutdown_before_first_pass(self, destination):
        shutdown = asyncio.Event()
        shutdown.set()
        fetcher = ScriptedFetcher()
        store = MemoryWatermarkStore()

        result = await RetryOrchestrator(
            DownloadExecutor(fetcher, destination), store, shutdown_event=shutdown
        ).run(_delta(1))

        assert result.state == OrchestratorState.STOPPED
        assert result.passes == 0
        assert fetcher.calls == []
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_shutdown_during_backoff_stops(self, destination):
        delta = _delta(2)
        fetcher = ScriptedFetcher(failures={delta.items[0].pages[0].url: 10})
        shutdown = asyncio.Event()
        store = MemoryWatermarkStore()
        orchestrator = RetryOrchestrator(
            DownloadExecutor(fetcher, destination),
            store,
            backoff=RetryConfig(base_delay=30.0, max_delay=30.0),
            shutdown_event=shutdown,
        )

        task = asyncio.create_task(orchestrator.run(delta))
        await asyncio.sleep(0.05)
        shutdown.set()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.state == OrchestratorState.STOPPED
        assert result.passes == 1
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_empty_delta_does_not_write(self, destination):
        store = MemoryWatermarkStore(watermark=100)

        result = await RetryOrchestrator(
            DownloadExecutor(ScriptedFetcher(), destination), store
        ).run(Delta(new_watermark=100))

        assert result.ok
        assert result.passes == 0
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_skipped_items_count_as_success(self, destination):
        delta = _delta(5)
        page = delta.items[0].pages[0]
        fetcher = ScriptedFetcher()
        executor = DownloadExecutor(fetcher, destination)
        await executor.download_item(delta.items[0])
        fetcher.calls.clear()
        store = MemoryWatermarkStore()

        result = await RetryOrchestrator(executor, store).run(delta)

        assert result.ok
        assert page.url not in fetcher.calls
        assert store.writes == [5]
