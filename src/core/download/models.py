"""
Data models for download operations.

Defines the input model for a single file transfer:
- DownloadTarget: where to fetch from and where the artifact is published
"""

from dataclasses import dataclass
from pathlib import Path

from core.download.streaming import partial_path


@dataclass(frozen=True)
class DownloadTarget:
    """
    A resolved local path for one remote file.

    Attributes:
        url: URL to download from
        destination: Final path the artifact is published at
    """

    url: str
    destination: Path

    @property
    def partial(self) -> Path:
        """Temporary path the content is written to before publishing."""
        return partial_path(self.destination)

    def is_published(self) -> bool:
        return self.destination.exists()


__all__ = ["DownloadTarget"]
