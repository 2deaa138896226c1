"""Logging utility functions."""

import logging
from typing import Any

# Reserved LogRecord attribute names that cannot be used in extra dict
_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "asctime",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (item_id, duration_ms, etc.)
                  Note: exc_info=True is supported and handled specially.

    Example:
        log_with_context(
            logger, logging.INFO, "Item downloaded",
            item_id=item.id,
            bytes_downloaded=outcome.bytes_downloaded,
        )
    """
    # exc_info is a direct parameter to log(), not extra
    exc_info = kwargs.pop("exc_info", None)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}

    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Extracts error_category from FeedSyncError subclasses and truncates
    long error messages.

    Example:
        try:
            await client.fetch_page(url)
        except Exception as e:
            log_exception(logger, e, "Listing failed", url=url)
    """
    error_category = kwargs.get("error_category")
    if error_category is None and hasattr(exc, "category"):
        cat = exc.category
        error_category = cat.value if hasattr(cat, "value") else str(cat)
        kwargs["error_category"] = error_category

    error_msg = str(exc)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=kwargs)
    else:
        logger.log(level, msg, extra=kwargs)


def format_pass_output(
    pass_number: int,
    succeeded: int,
    failed: int,
    skipped: int = 0,
    total: int | None = None,
) -> str:
    """
    Format a one-line summary of a download pass.

    Example:
        >>> format_pass_output(1, 40, 2, 5)
        'Pass 1: processed=42 (succeeded=40, failed=2, skipped=5)'
        >>> format_pass_output(2, 2, 0, total=2)
        'Pass 2: processed=2/2 (succeeded=2, failed=0)'
    """
    processed = succeeded + failed
    processed_str = f"{processed}/{total}" if total is not None else str(processed)

    parts = [f"succeeded={succeeded}", f"failed={failed}"]
    if skipped > 0:
        parts.append(f"skipped={skipped}")

    return f"Pass {pass_number}: processed={processed_str} ({', '.join(parts)})"
