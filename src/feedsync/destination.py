"""Startup validation of the destination directory."""

import logging
from pathlib import Path

from core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROBE_FILENAME = ".test_permission"


def validate_destination(path: str | Path) -> Path:
    """Ensure ``path`` is a writable directory and return it resolved.

    Creates the directory when missing, then creates and deletes a probe
    file in it.

    Raises:
        ConfigurationError: the path is not a directory, cannot be created,
            or does not allow creating and deleting files
    """
    directory = Path(path).expanduser()

    if directory.exists() and not directory.is_dir():
        raise ConfigurationError(
            f"Destination is not a directory: {directory}",
            context={"destination_path": str(directory)},
        )

    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot create destination directory {directory}: {e}",
            cause=e,
            context={"destination_path": str(directory)},
        ) from e

    probe = directory / PROBE_FILENAME
    try:
        probe.write_bytes(b"")
        probe.unlink()
    except OSError as e:
        raise ConfigurationError(
            f"No write/delete permission in destination directory {directory}: {e}",
            cause=e,
            context={"destination_path": str(directory)},
        ) from e
    finally:
        if probe.exists():
            probe.unlink(missing_ok=True)

    resolved = directory.resolve()
    logger.info("Destination check passed", extra={"destination_path": str(resolved)})
    return resolved


__all__ = ["PROBE_FILENAME", "validate_destination"]
