"""
Incremental feed sync.

Mirrors new items of a remote, newest-first feed into a local directory:

    listing --compute_delta--> Delta --RetryOrchestrator--> DownloadExecutor passes
                                                       \\--> watermark written on ALL_OK

Modules:
    models: Item, Page, AnimatedContent, DownloadOutcome
    delta: compute_delta with early termination at the watermark
    paths: filename derivation and sanitization
    executor: bounded-concurrency downloads with idempotent skip
    orchestrator: pass-until-success state machine with stop policies
    progress: console / logging / metrics reporters
    watermark: persisted watermark and destination directory
    destination: startup write-permission check
    client: HTTP listing pager
    sync_loop: interval driver
    metrics: Prometheus collectors
"""

from feedsync.delta import Delta, compute_delta
from feedsync.executor import DownloadExecutor
from feedsync.models import AnimatedContent, DownloadOutcome, Item, Page
from feedsync.orchestrator import (
    MaxPasses,
    NeverStop,
    OrchestratorState,
    RetryOrchestrator,
    RetryResult,
)
from feedsync.sync_loop import CycleReport, SyncLoop
from feedsync.watermark import FileWatermarkStore, MemoryWatermarkStore

__version__ = "0.1.0"

__all__ = [
    "AnimatedContent",
    "CycleReport",
    "Delta",
    "DownloadExecutor",
    "DownloadOutcome",
    "FileWatermarkStore",
    "Item",
    "MaxPasses",
    "MemoryWatermarkStore",
    "NeverStop",
    "OrchestratorState",
    "Page",
    "RetryOrchestrator",
    "RetryResult",
    "SyncLoop",
    "compute_delta",
]
