"""Persistent sync state.

Two one-value files live in the state directory:
- ``last_item_id``: the watermark, the highest item id fully processed
- ``download_directory``: the destination directory chosen by the operator

Writes use the atomic write pattern (write to temp file, then os.replace) so
a crash never leaves a truncated value behind. There is a single writer per
state directory.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol

from core.errors.exceptions import TransientIOError

logger = logging.getLogger(__name__)

WATERMARK_FILENAME = "last_item_id"
DESTINATION_FILENAME = "download_directory"


class WatermarkStore(Protocol):
    """Read/write of the last fully processed item id."""

    async def read(self) -> int | None:
        """Return the stored watermark, or None when there is none."""
        ...

    async def write(self, watermark: int) -> None:
        ...


def _read_text(path: Path) -> str | None:
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8").strip()


def _write_text_atomic(path: Path, value: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(value)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)


class FileWatermarkStore:
    """Watermark kept as a decimal integer in a single file."""

    def __init__(self, state_dir: str | Path, filename: str = WATERMARK_FILENAME):
        self.path = Path(state_dir) / filename

    async def read(self) -> int | None:
        try:
            raw = await asyncio.to_thread(_read_text, self.path)
        except OSError as e:
            logger.warning(
                "Failed to read watermark, treating as absent",
                extra={"path": str(self.path), "error": str(e)},
            )
            return None

        if raw is None:
            logger.info("No watermark file found", extra={"path": str(self.path)})
            return None

        try:
            value = int(raw)
        except ValueError:
            logger.warning(
                "Watermark file does not hold an integer, treating as absent",
                extra={"path": str(self.path)},
            )
            return None

        logger.debug("Loaded watermark", extra={"path": str(self.path), "watermark": value})
        return value

    async def write(self, watermark: int) -> None:
        try:
            await asyncio.to_thread(_write_text_atomic, self.path, str(int(watermark)))
        except OSError as e:
            raise TransientIOError(
                f"Failed to write watermark to {self.path}",
                cause=e,
                context={"path": str(self.path)},
            ) from e

        logger.info("Saved watermark", extra={"path": str(self.path), "watermark": watermark})


class MemoryWatermarkStore:
    """In-process store for tests and dry runs. Records every write."""

    def __init__(self, watermark: int | None = None):
        self.watermark = watermark
        self.writes: list[int] = []

    async def read(self) -> int | None:
        return self.watermark

    async def write(self, watermark: int) -> None:
        self.watermark = watermark
        self.writes.append(watermark)


class DestinationStore:
    """Remembers the destination directory between runs."""

    def __init__(self, state_dir: str | Path, filename: str = DESTINATION_FILENAME):
        self.path = Path(state_dir) / filename

    def read(self) -> Path | None:
        try:
            raw = _read_text(self.path)
        except OSError as e:
            logger.warning(
                "Failed to read destination file",
                extra={"path": str(self.path), "error": str(e)},
            )
            return None
        return Path(raw) if raw else None

    def write(self, destination: str | Path) -> None:
        _write_text_atomic(self.path, str(destination))
        logger.info(
            "Saved destination directory",
            extra={"path": str(self.path), "destination_path": str(destination)},
        )


__all__ = [
    "WATERMARK_FILENAME",
    "DESTINATION_FILENAME",
    "WatermarkStore",
    "FileWatermarkStore",
    "MemoryWatermarkStore",
    "DestinationStore",
]
