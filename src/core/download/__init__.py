"""
Async download module with clean interface.

Provides:
    - ContentFetcher protocol and the aiohttp HttpContentFetcher
    - download_to_file: streamed write with atomic publish
    - DownloadTarget: url -> final path pairing

Example usage:
    from core.download import DownloadTarget, HttpContentFetcher, download_to_file

    target = DownloadTarget(url="https://example.com/a.png", destination=Path("a.png"))
    async with HttpContentFetcher() as fetcher:
        result, error = await download_to_file(fetcher.stream(target.url), target.destination)

    if error:
        print(f"Failed: {error.error_message}")
    else:
        print(f"Downloaded {result.bytes_written} bytes")
"""

from core.download.http_client import (
    CHUNK_SIZE,
    ContentFetcher,
    HttpContentFetcher,
    create_session,
    status_error,
)
from core.download.models import DownloadTarget
from core.download.streaming import (
    PARTIAL_SUFFIX,
    DownloadToFileResult,
    StreamDownloadError,
    download_to_file,
    partial_path,
)

__all__ = [
    # Models
    "DownloadTarget",
    # HTTP client
    "ContentFetcher",
    "HttpContentFetcher",
    "create_session",
    "status_error",
    "CHUNK_SIZE",
    # Streaming
    "download_to_file",
    "partial_path",
    "DownloadToFileResult",
    "StreamDownloadError",
    "PARTIAL_SUFFIX",
]
