"""
Retry orchestration for one sync cycle.

State machine:

    PENDING(delta) -> DOWNLOADING -> ALL_OK
                                  -> PARTIAL_FAILURE(remaining) -> PENDING(remaining) ...
                                  -> STOPPED (stop policy or shutdown)

Passes repeat over the shrinking failure set until it is empty. By default
there is no pass limit; a StopPolicy bounds it. The watermark is written only
when the whole delta succeeded, so an interrupted or bounded cycle leaves the
stored watermark untouched and the next cycle re-derives the same delta.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from core.logging.context import set_log_context
from core.resilience.retry import RetryConfig
from feedsync.delta import Delta
from feedsync.executor import DownloadExecutor
from feedsync.models import Item
from feedsync.progress import NullProgressReporter, ProgressReporter
from feedsync.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    ALL_OK = "all_ok"
    PARTIAL_FAILURE = "partial_failure"
    STOPPED = "stopped"


class StopPolicy(Protocol):
    def should_stop(self, passes_completed: int, remaining: int) -> bool:
        """Called after each pass that left failures."""
        ...


class NeverStop:
    """Retry until every item succeeds."""

    def should_stop(self, passes_completed: int, remaining: int) -> bool:
        return False


class MaxPasses:
    """Stop after ``max_passes`` passes (the first pass included)."""

    def __init__(self, max_passes: int):
        if max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {max_passes}")
        self.max_passes = max_passes

    def should_stop(self, passes_completed: int, remaining: int) -> bool:
        return passes_completed >= self.max_passes


# Passes follow each other immediately unless a base delay is configured
NO_BACKOFF = RetryConfig(max_attempts=1, base_delay=0.0, max_delay=0.0)


@dataclass
class RetryResult:
    state: OrchestratorState
    passes: int
    succeeded: list[Item] = field(default_factory=list)
    remaining: list[Item] = field(default_factory=list)
    watermark_written: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.state == OrchestratorState.ALL_OK


class RetryOrchestrator:
    """Drives repeated executor passes over one delta."""

    def __init__(
        self,
        executor: DownloadExecutor,
        watermark_store: WatermarkStore,
        stop_policy: StopPolicy | None = None,
        backoff: RetryConfig | None = None,
        reporter: ProgressReporter | None = None,
        shutdown_event: asyncio.Event | None = None,
    ):
        self.executor = executor
        self.watermark_store = watermark_store
        self.stop_policy = stop_policy or NeverStop()
        self.backoff = backoff or NO_BACKOFF
        self.reporter = reporter or NullProgressReporter()
        self.shutdown_event = shutdown_event
        self.state = OrchestratorState.PENDING

    def _shutdown_requested(self) -> bool:
        return self.shutdown_event is not None and self.shutdown_event.is_set()

    async def _wait_between_passes(self, passes_completed: int) -> bool:
        """Sleep the backoff delay. Returns False if shutdown was requested meanwhile."""
        delay = self.backoff.get_delay(passes_completed - 1)
        if delay <= 0:
            return not self._shutdown_requested()

        logger.info(
            "Waiting before next pass",
            extra={"pass_number": passes_completed + 1, "delay_seconds": round(delay, 2)},
        )
        if self.shutdown_event is None:
            await asyncio.sleep(delay)
            return True

        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False

    async def _run_pass(self, pass_number: int, pending: list[Item]) -> tuple[list[Item], list[Item]]:
        succeeded: list[Item] = []
        failed: list[Item] = []

        self.reporter.pass_started(pass_number, len(pending))
        async for outcome in self.executor.download_batch(pending):
            if outcome.succeeded:
                succeeded.append(outcome.item)
            else:
                failed.append(outcome.item)
            self.reporter.item_finished(outcome)
        self.reporter.pass_finished(pass_number, len(succeeded), len(failed))

        return succeeded, failed

    async def run(self, delta: Delta) -> RetryResult:
        """Download ``delta`` to completion or until stopped."""
        self.state = OrchestratorState.PENDING
        pending = list(delta.items)
        succeeded: list[Item] = []
        passes = 0

        while pending:
            if passes > 0:
                if self.stop_policy.should_stop(passes, len(pending)):
                    logger.warning(
                        "Stop policy reached, leaving watermark unchanged",
                        extra={"pass_number": passes, "items_remaining": len(pending)},
                    )
                    self.state = OrchestratorState.STOPPED
                    break
                if not await self._wait_between_passes(passes):
                    logger.info(
                        "Shutdown requested, abandoning remaining retries",
                        extra={"pass_number": passes, "items_remaining": len(pending)},
                    )
                    self.state = OrchestratorState.STOPPED
                    break
            elif self._shutdown_requested():
                self.state = OrchestratorState.STOPPED
                break

            passes += 1
            set_log_context(stage="download" if passes == 1 else "retry")
            self.state = OrchestratorState.DOWNLOADING
            passed, pending = await self._run_pass(passes, pending)
            succeeded.extend(passed)

            self.state = OrchestratorState.PARTIAL_FAILURE if pending else OrchestratorState.ALL_OK
            if pending:
                logger.info(
                    f"Retry failed {len(pending)} items...",
                    extra={"pass_number": passes, "items_remaining": len(pending)},
                )

        if not pending:
            self.state = OrchestratorState.ALL_OK

        watermark_written = None
        if (
            self.state == OrchestratorState.ALL_OK
            and succeeded
            and delta.new_watermark is not None
        ):
            await self.watermark_store.write(delta.new_watermark)
            watermark_written = delta.new_watermark
            logger.info(
                "Download Completed.",
                extra={
                    "items_succeeded": len(succeeded),
                    "pass_number": passes,
                    "new_watermark": delta.new_watermark,
                },
            )

        return RetryResult(
            state=self.state,
            passes=passes,
            succeeded=succeeded,
            remaining=pending,
            watermark_written=watermark_written,
        )


__all__ = [
    "OrchestratorState",
    "StopPolicy",
    "NeverStop",
    "MaxPasses",
    "RetryResult",
    "RetryOrchestrator",
]
