"""
Streaming writes with atomic publish.

Content is written to ``<name>.partial`` next to the final path and renamed
onto it only once the stream completed, so the final path never holds a
partially written file. An existence check on the final path is therefore a
reliable "already downloaded" signal.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core.errors.exceptions import (
    ErrorCategory,
    FeedSyncError,
    classify_exception,
    classify_os_error,
)

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


@dataclass
class StreamDownloadError:
    """
    Error result from failed streaming download.

    Attributes:
        status_code: HTTP status code if received
        error_message: Error description
        error_category: Classification for retry decisions
    """

    status_code: Optional[int]
    error_message: str
    error_category: ErrorCategory


@dataclass
class DownloadToFileResult:
    """
    Result from download_to_file operation.

    Attributes:
        file_path: Final (published) path
        bytes_written: Number of bytes written to file
    """

    file_path: Path
    bytes_written: int


def partial_path(path: Path) -> Path:
    """Temporary path used while ``path`` is being written."""
    return path.with_name(path.name + PARTIAL_SUFFIX)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(
            "Failed to remove partial file",
            extra={"destination_path": str(path), "error": str(e)},
        )


async def download_to_file(
    chunks: AsyncIterator[bytes],
    output_path: Path,
) -> tuple[Optional[DownloadToFileResult], Optional[StreamDownloadError]]:
    """
    Stream ``chunks`` into ``output_path`` using write-then-rename.

    Errors raised by the chunk source (FeedSyncError from a fetcher) and disk
    errors are returned as StreamDownloadError rather than raised. The partial
    file is removed on error; on cancellation it is left in place and the
    next attempt truncates it.

    Returns:
        Tuple of (DownloadToFileResult, None) on success
        or (None, StreamDownloadError) on failure
    """
    temp_path = partial_path(output_path)

    try:
        await asyncio.to_thread(output_path.parent.mkdir, parents=True, exist_ok=True)

        bytes_written = 0
        with open(temp_path, "wb") as f:
            async for chunk in chunks:
                # Disk I/O off the event loop
                await asyncio.to_thread(f.write, chunk)
                bytes_written += len(chunk)

        if bytes_written == 0:
            _discard(temp_path)
            return None, StreamDownloadError(
                status_code=None,
                error_message="Download produced zero bytes",
                error_category=ErrorCategory.TRANSIENT,
            )

        await asyncio.to_thread(os.replace, temp_path, output_path)

        return DownloadToFileResult(file_path=output_path, bytes_written=bytes_written), None

    except FeedSyncError as e:
        _discard(temp_path)
        return None, StreamDownloadError(
            status_code=e.context.get("status_code"),
            error_message=str(e),
            error_category=e.category,
        )

    except OSError as e:
        _discard(temp_path)
        return None, StreamDownloadError(
            status_code=None,
            error_message=f"File write error: {str(e)}",
            error_category=classify_os_error(e),
        )

    except Exception as e:
        # Unclassified failure from a custom fetcher; still an item-level failure
        _discard(temp_path)
        return None, StreamDownloadError(
            status_code=None,
            error_message=f"{type(e).__name__}: {e}",
            error_category=classify_exception(e),
        )

    finally:
        # Release the HTTP connection when iteration is interrupted
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


__all__ = [
    "PARTIAL_SUFFIX",
    "StreamDownloadError",
    "DownloadToFileResult",
    "partial_path",
    "download_to_file",
]
