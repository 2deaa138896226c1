"""Feed sync entry point. Use --help for usage."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from config import SyncConfig, load_config
from core.download import HttpContentFetcher
from core.errors.exceptions import ConfigurationError
from core.logging.setup import log_startup, setup_logging
from core.resilience.retry import RetryConfig
from core.utils import generate_worker_id
from feedsync.client import HttpFeedClient
from feedsync.destination import validate_destination
from feedsync.executor import DownloadExecutor
from feedsync.metrics import get_metrics, start_metrics_server
from feedsync.orchestrator import MaxPasses, NeverStop
from feedsync.progress import (
    CompositeProgressReporter,
    ConsoleProgressReporter,
    LoggingProgressReporter,
    MetricsProgressReporter,
)
from feedsync.sync_loop import SyncLoop
from feedsync.watermark import DestinationStore, FileWatermarkStore

# Project root directory (where .env file is located)
# __main__.py is at src/feedsync/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

EXIT_CONFIG_ERROR = 2

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)

# Global shutdown event for graceful stop
# Set by signal handlers; the loop finishes the current pass and exits
_shutdown_event: asyncio.Event | None = None


def get_shutdown_event() -> asyncio.Event:
    global _shutdown_event
    if _shutdown_event is None:
        _shutdown_event = asyncio.Event()
    return _shutdown_event


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="feedsync",
        description="Mirror new items of a followed feed into a local directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run hourly with settings from config.yaml
    python -m feedsync --config config.yaml

    # First run: choose the destination and skip everything up to item 120000
    python -m feedsync --destination ~/mirror --start-from 120000

    # Single cycle, give up after 5 passes
    python -m feedsync --once --max-passes 5
        """,
    )

    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument(
        "--destination",
        type=str,
        default=None,
        help="Download directory (remembered in the state directory for later runs)",
    )
    parser.add_argument(
        "--state-dir",
        type=str,
        default=None,
        help="Directory holding the watermark and destination files (default: ~/.feedsync)",
    )
    parser.add_argument(
        "--start-from",
        type=int,
        default=None,
        help="Item id to treat as already processed when no watermark is stored",
    )
    parser.add_argument(
        "--interval", type=float, default=None, help="Seconds between cycles (default: 3600)"
    )
    parser.add_argument(
        "--concurrency", type=int, default=None, help="Parallel item downloads (default: 8)"
    )
    parser.add_argument(
        "--max-passes",
        type=int,
        default=None,
        help="Stop retrying after this many passes per cycle (default: unbounded)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from config or ./logs)",
    )
    parser.add_argument(
        "--log-to-stdout",
        action="store_true",
        help="Send all log output to stdout only, skipping file handlers. "
        "Can also be set via LOG_TO_STDOUT environment variable.",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Port for Prometheus metrics server (default: 0, disabled)",
    )

    return parser.parse_args(argv)


def setup_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """Set up signal handlers for graceful shutdown.

    First CTRL+C: sets shutdown event, the in-flight pass drains and the loop exits.
    Second CTRL+C: forces immediate shutdown by cancelling all tasks; interrupted
    downloads leave only .partial files.
    Note: Signal handlers not supported on Windows - KeyboardInterrupt used instead.
    """

    def handle_signal(sig):
        logger.info("Received signal, initiating graceful shutdown", extra={"signal": sig.name})
        shutdown_event = get_shutdown_event()
        if not shutdown_event.is_set():
            shutdown_event.set()
        else:
            logger.warning("Received second signal, forcing immediate shutdown...")
            for task in asyncio.all_tasks(loop):
                task.cancel()

    if sys.platform == "win32":
        logger.debug("Signal handlers not supported on Windows, using KeyboardInterrupt")
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


def build_config(args: argparse.Namespace) -> SyncConfig:
    """Load config and apply CLI flags on top."""
    overrides = {
        "destination": args.destination,
        "state_dir": args.state_dir,
        "initial_watermark": args.start_from,
        "interval_seconds": args.interval,
        "concurrency": args.concurrency,
        "max_passes": args.max_passes,
        "log_dir": args.log_dir,
    }
    return load_config(config_path=args.config, overrides=overrides)


def resolve_destination(config: SyncConfig, explicit: bool) -> Path:
    """Pick the destination directory and validate it.

    An explicit --destination (or configured destination) wins and is
    remembered; otherwise the remembered one is used.
    """
    store = DestinationStore(config.state_path)
    if config.destination:
        destination = validate_destination(config.destination)
        if explicit or store.read() != destination:
            store.write(destination)
        return destination

    remembered = store.read()
    if remembered is None:
        raise ConfigurationError(
            "No destination directory configured. Pass --destination or set "
            "feedsync.destination in config.yaml"
        )
    return validate_destination(remembered)


async def run(config: SyncConfig, destination: Path, once: bool) -> None:
    shutdown_event = get_shutdown_event()
    metrics = get_metrics()

    reporters = [LoggingProgressReporter(), MetricsProgressReporter(metrics)]
    if sys.stdout.isatty():
        reporters.append(ConsoleProgressReporter())
    reporter = CompositeProgressReporter(*reporters)

    if config.max_passes is not None:
        max_passes = config.max_passes
        stop_policy_factory = lambda: MaxPasses(max_passes)  # noqa: E731
    else:
        stop_policy_factory = NeverStop

    backoff = RetryConfig(
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
    )

    async with (
        HttpFeedClient(
            config.feed_url,
            token=config.api_token,
            headers=config.request_headers,
            timeout_seconds=config.http_timeout_seconds,
        ) as client,
        HttpContentFetcher(
            headers=config.request_headers,
            timeout=config.http_timeout_seconds,
            sock_read_timeout=config.sock_read_timeout_seconds,
            max_connections_per_host=max(config.concurrency, 10),
        ) as fetcher,
    ):
        executor = DownloadExecutor(
            fetcher=fetcher,
            destination=destination,
            concurrency=config.concurrency,
            metrics=metrics,
        )
        loop = SyncLoop(
            client=client,
            executor=executor,
            watermark_store=FileWatermarkStore(config.state_path),
            interval_seconds=config.interval_seconds,
            initial_watermark=config.initial_watermark,
            stop_policy_factory=stop_policy_factory,
            backoff=backoff,
            reporter=reporter,
            metrics=metrics,
            shutdown_event=shutdown_event,
        )

        if once:
            await loop.run_cycle()
        else:
            await loop.run_forever()

        if executor.in_flight:
            logger.warning(
                "Downloads still in flight at shutdown",
                extra={"items_remaining": len(executor.in_flight)},
            )


def main(argv: list[str] | None = None) -> int:
    global logger

    load_dotenv(PROJECT_ROOT / ".env")
    load_dotenv()
    args = parse_args(argv)

    log_to_stdout = args.log_to_stdout or os.getenv("LOG_TO_STDOUT", "false").lower() in (
        "true",
        "1",
        "yes",
    )
    worker_id = os.getenv("WORKER_ID") or generate_worker_id("feedsync")

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(
        name="feedsync",
        stage="startup",
        log_dir=Path(config.log_dir),
        json_format=config.json_logs,
        console_level=getattr(logging, args.log_level),
        worker_id=worker_id,
        log_to_stdout=log_to_stdout,
    )
    logger = logging.getLogger(__name__)

    try:
        if not config.feed_url:
            raise ConfigurationError(
                "No feed URL configured. Set feedsync.feed_url or FEEDSYNC_FEED_URL"
            )
        destination = resolve_destination(config, explicit=args.destination is not None)
    except ConfigurationError as e:
        logger.error("Startup check failed", extra={"error_message": str(e)})
        return EXIT_CONFIG_ERROR

    settings = config.to_log_dict()
    settings["destination"] = str(destination)
    log_startup(logger, f"feedsync ({worker_id})", settings)

    if args.metrics_port:
        port = start_metrics_server(args.metrics_port)
        logger.info("Metrics server started", extra={"url": f"http://localhost:{port}/metrics"})

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    setup_signal_handlers(loop)

    try:
        loop.run_until_complete(run(config, destination, once=args.once))
    except ConfigurationError as e:
        logger.error("Fatal configuration error", extra={"error_message": str(e)})
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    finally:
        loop.close()
        logger.info("Feed sync shutdown complete")

    return 0


if __name__ == "__main__":
    sys.exit(main())
