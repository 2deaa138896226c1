"""
Progress reporting for download passes.

Reporters observe the orchestrator: one ``pass_started`` per pass, one
``item_finished`` per outcome in completion order, one ``pass_finished``.
"""

import logging
import sys
from typing import Protocol, TextIO

from core.logging.utilities import format_pass_output
from feedsync.metrics import SyncMetrics
from feedsync.models import DownloadOutcome

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def pass_started(self, pass_number: int, total: int) -> None:
        ...

    def item_finished(self, outcome: DownloadOutcome) -> None:
        ...

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        ...


class _PassCounter:
    def __init__(self) -> None:
        self.pass_number = 0
        self.total = 0
        self.done = 0
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0

    def start(self, pass_number: int, total: int) -> None:
        self.pass_number = pass_number
        self.total = total
        self.done = self.succeeded = self.failed = self.skipped = 0

    def record(self, outcome: DownloadOutcome) -> None:
        self.done += 1
        if outcome.succeeded:
            self.succeeded += 1
            if outcome.skipped:
                self.skipped += 1
        else:
            self.failed += 1


class ConsoleProgressReporter:
    """Rewrites a single terminal line: ``Downloaded n/m items.``"""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout
        self._counter = _PassCounter()

    def pass_started(self, pass_number: int, total: int) -> None:
        self._counter.start(pass_number, total)
        if pass_number > 1:
            self._write_line(f"Retry failed {total} items...\n")
        self._render()

    def item_finished(self, outcome: DownloadOutcome) -> None:
        self._counter.record(outcome)
        self._render()

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        self._write_line("\n")

    def _render(self) -> None:
        self._write_line(f"\rDownloaded {self._counter.done}/{self._counter.total} items.")

    def _write_line(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


class LoggingProgressReporter:
    """Logs every ``log_every`` outcomes and a summary per pass."""

    def __init__(self, log_every: int = 50):
        self.log_every = max(1, log_every)
        self._counter = _PassCounter()

    def pass_started(self, pass_number: int, total: int) -> None:
        self._counter.start(pass_number, total)
        if pass_number > 1:
            logger.info(
                f"Retry failed {total} items...",
                extra={"pass_number": pass_number, "items_total": total},
            )
        else:
            logger.info(
                "Download pass started",
                extra={"pass_number": pass_number, "items_total": total},
            )

    def item_finished(self, outcome: DownloadOutcome) -> None:
        self._counter.record(outcome)
        if self._counter.done % self.log_every == 0 and self._counter.done < self._counter.total:
            logger.info(
                f"Downloaded {self._counter.done}/{self._counter.total} items.",
                extra={"pass_number": self._counter.pass_number},
            )

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        logger.info(
            format_pass_output(
                pass_number,
                succeeded,
                failed,
                skipped=self._counter.skipped,
                total=self._counter.total,
            ),
            extra={
                "pass_number": pass_number,
                "items_succeeded": succeeded,
                "items_failed": failed,
                "items_skipped": self._counter.skipped,
            },
        )


class MetricsProgressReporter:
    """Feeds outcomes into the Prometheus collectors."""

    def __init__(self, metrics: SyncMetrics):
        self.metrics = metrics

    def pass_started(self, pass_number: int, total: int) -> None:
        if pass_number > 1:
            self.metrics.retry_passes_total.inc()

    def item_finished(self, outcome: DownloadOutcome) -> None:
        if not outcome.succeeded:
            result = "failed"
        elif outcome.skipped:
            result = "skipped"
        else:
            result = "downloaded"
        self.metrics.record_item(result)

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        pass


class CompositeProgressReporter:
    """Fans every event out to several reporters.

    A failing reporter is logged and skipped; it never fails the pass.
    """

    def __init__(self, *reporters: ProgressReporter):
        self.reporters = list(reporters)

    def _dispatch(self, method: str, *args) -> None:
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(*args)
            except Exception as e:
                logger.warning(
                    "Progress reporter failed",
                    extra={"operation": method, "error": str(e)},
                )

    def pass_started(self, pass_number: int, total: int) -> None:
        self._dispatch("pass_started", pass_number, total)

    def item_finished(self, outcome: DownloadOutcome) -> None:
        self._dispatch("item_finished", outcome)

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        self._dispatch("pass_finished", pass_number, succeeded, failed)


class NullProgressReporter:
    def pass_started(self, pass_number: int, total: int) -> None:
        pass

    def item_finished(self, outcome: DownloadOutcome) -> None:
        pass

    def pass_finished(self, pass_number: int, succeeded: int, failed: int) -> None:
        pass


__all__ = [
    "ProgressReporter",
    "ConsoleProgressReporter",
    "LoggingProgressReporter",
    "MetricsProgressReporter",
    "CompositeProgressReporter",
    "NullProgressReporter",
]
