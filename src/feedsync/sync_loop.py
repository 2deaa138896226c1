"""
Periodic sync driver.

Each cycle: read watermark -> compute delta from the listing -> run the
retry orchestrator -> (on full success) watermark written. Cycles are
independent; a cycle that fails or is stopped leaves the watermark where it
was and the next cycle derives the same delta again, with already published
files skipped.

Error policy per cycle:
- ConfigurationError: propagates, the process stops
- any other FeedSyncError from the listing or watermark write: the cycle is
  aborted and the loop waits for the next interval
- per-item failures never reach this level
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from core.errors.exceptions import ConfigurationError, FeedSyncError
from core.logging.context import set_log_context
from core.logging.setup import generate_cycle_id
from core.logging.utilities import log_exception
from core.resilience.retry import RetryConfig
from feedsync.client import FeedClient
from feedsync.delta import compute_delta
from feedsync.executor import DownloadExecutor
from feedsync.metrics import SyncMetrics
from feedsync.orchestrator import NeverStop, RetryOrchestrator, RetryResult, StopPolicy
from feedsync.progress import NullProgressReporter, ProgressReporter
from feedsync.watermark import WatermarkStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600.0


@dataclass
class CycleReport:
    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    watermark_before: Optional[int] = None
    delta_size: int = 0
    result: Optional[RetryResult] = None
    error: Optional[str] = None

    @property
    def state(self) -> str:
        if self.error is not None:
            return "error"
        if self.result is None:
            return "empty"
        return self.result.state.value

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class SyncLoop:
    """Runs sync cycles on a fixed interval until shutdown."""

    def __init__(
        self,
        client: FeedClient,
        executor: DownloadExecutor,
        watermark_store: WatermarkStore,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        initial_watermark: int | None = None,
        stop_policy_factory: Callable[[], StopPolicy] = NeverStop,
        backoff: RetryConfig | None = None,
        reporter: ProgressReporter | None = None,
        metrics: SyncMetrics | None = None,
        shutdown_event: asyncio.Event | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self.client = client
        self.executor = executor
        self.watermark_store = watermark_store
        self.interval_seconds = interval_seconds
        self.initial_watermark = initial_watermark
        self.stop_policy_factory = stop_policy_factory
        self.backoff = backoff
        self.reporter = reporter or NullProgressReporter()
        self.metrics = metrics
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.cycles_run = 0

    async def _starting_watermark(self) -> int | None:
        watermark = await self.watermark_store.read()
        if watermark is None and self.initial_watermark is not None:
            logger.info(
                "No stored watermark, starting from configured item id",
                extra={"watermark": self.initial_watermark},
            )
            await self.watermark_store.write(self.initial_watermark)
            watermark = self.initial_watermark
        return watermark

    def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = datetime.now()
        if self.metrics is not None:
            self.metrics.record_cycle(report.state)
            if report.result is not None and report.result.watermark_written is not None:
                self.metrics.record_watermark(report.result.watermark_written)

        logger.info(
            f"Sync cycle finished at {report.finished_at:%Y-%m-%d %H:%M:%S}, "
            f"running time {report.duration_seconds:.1f}s",
            extra={
                "state": report.state,
                "duration_ms": round(report.duration_seconds * 1000, 2),
                "items_total": report.delta_size,
            },
        )
        return report

    async def run_cycle(self) -> CycleReport:
        """Run one sync cycle and report how it ended."""
        cycle_id = generate_cycle_id()
        set_log_context(cycle_id=cycle_id, stage="listing", item_id="")
        report = CycleReport(cycle_id=cycle_id, started_at=datetime.now())
        self.cycles_run += 1

        logger.info(
            f"Sync cycle started at {report.started_at:%Y-%m-%d %H:%M:%S}",
            extra={"cycle": self.cycles_run},
        )

        try:
            watermark = await self._starting_watermark()
            report.watermark_before = watermark

            delta = await compute_delta(self.client.iter_items(), watermark)
            report.delta_size = len(delta)

            if delta.is_empty:
                logger.info("No new items found.", extra={"watermark": watermark})
                return self._finish(report)

            logger.info(
                f"Found {len(delta)} new items",
                extra={
                    "items_total": len(delta),
                    "watermark": watermark,
                    "new_watermark": delta.new_watermark,
                },
            )

            orchestrator = RetryOrchestrator(
                executor=self.executor,
                watermark_store=self.watermark_store,
                stop_policy=self.stop_policy_factory(),
                backoff=self.backoff,
                reporter=self.reporter,
                shutdown_event=self.shutdown_event,
            )
            report.result = await orchestrator.run(delta)

        except ConfigurationError:
            raise
        except FeedSyncError as e:
            log_exception(
                logger,
                e,
                "Sync cycle aborted",
                include_traceback=False,
                operation="sync_cycle",
            )
            report.error = str(e)

        finally:
            set_log_context(stage="idle", item_id="")

        return self._finish(report)

    async def _wait_for_next_cycle(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds. Returns False when shutdown was requested."""
        if delay <= 0:
            return not self.shutdown_event.is_set()
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False

    async def run_forever(
        self,
        shutdown_event: asyncio.Event | None = None,
        max_cycles: int | None = None,
    ) -> list[CycleReport]:
        """Run cycles every ``interval_seconds`` (measured start to start).

        Returns the reports of the cycles run, most useful with ``max_cycles``.
        """
        if shutdown_event is not None:
            self.shutdown_event = shutdown_event

        reports: list[CycleReport] = []
        while not self.shutdown_event.is_set():
            started = time.monotonic()
            reports.append(await self.run_cycle())

            if max_cycles is not None and len(reports) >= max_cycles:
                break

            delay = self.interval_seconds - (time.monotonic() - started)
            next_run = datetime.now() + timedelta(seconds=max(delay, 0))
            logger.info(
                f"Next sync at {next_run:%Y-%m-%d %H:%M:%S}",
                extra={"next_run_at": next_run.isoformat(), "interval_seconds": self.interval_seconds},
            )
            if not await self._wait_for_next_cycle(delay):
                break

        logger.info("Sync loop stopped", extra={"cycle": len(reports)})
        return reports


__all__ = ["CycleReport", "SyncLoop", "DEFAULT_INTERVAL_SECONDS"]
