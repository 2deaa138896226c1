"""
Prometheus metrics for sync monitoring.

Focused on essential metrics:
- Item outcomes per pass
- Downloads currently in flight
- Retry passes and cycle results
- Last persisted watermark
"""

import logging
import socket

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)


class SyncMetrics:
    """Collectors for one process, registered on ``registry``.

    Tests pass a fresh CollectorRegistry so collectors do not clash across
    instances.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else REGISTRY

        self.items_total = Counter(
            "feedsync_items_total",
            "Items finished by the download executor",
            labelnames=["result"],
            registry=self.registry,
        )
        self.downloads_in_flight = Gauge(
            "feedsync_downloads_in_flight",
            "Items currently holding a download permit",
            registry=self.registry,
        )
        self.retry_passes_total = Counter(
            "feedsync_retry_passes_total",
            "Download passes run after the first pass of a cycle",
            registry=self.registry,
        )
        self.cycles_total = Counter(
            "feedsync_cycles_total",
            "Sync cycles by terminal state",
            labelnames=["state"],
            registry=self.registry,
        )
        self.watermark = Gauge(
            "feedsync_watermark",
            "Last persisted watermark",
            registry=self.registry,
        )

    def record_item(self, result: str) -> None:
        self.items_total.labels(result=result).inc()

    def record_cycle(self, state: str) -> None:
        self.cycles_total.labels(state=state).inc()

    def record_watermark(self, value: int) -> None:
        self.watermark.set(value)


_metrics: SyncMetrics | None = None


def get_metrics() -> SyncMetrics:
    """Process-wide collectors on the default registry."""
    global _metrics
    if _metrics is None:
        _metrics = SyncMetrics()
    return _metrics


def start_metrics_server(preferred_port: int, registry: CollectorRegistry | None = None) -> int:
    """Start Prometheus metrics server with automatic port fallback.

    Returns actual port number that the server is listening on.
    """
    registry = registry if registry is not None else REGISTRY

    try:
        start_http_server(preferred_port, registry=registry)
        return preferred_port
    except OSError as e:
        if e.errno != 98:
            raise

        logger.info(
            "Port already in use, finding available port",
            extra={"preferred_port": preferred_port},
        )
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", 0))
            s.listen(1)
            available_port = s.getsockname()[1]

        start_http_server(available_port, registry=registry)
        return available_port


__all__ = ["SyncMetrics", "get_metrics", "start_metrics_server"]
