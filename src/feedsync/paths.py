"""Local path derivation for feed items.

Filenames are a pure function of the source URI's base name and the item
title. Titles are remote text, so every character that is reserved on common
filesystems (and every path separator) is replaced with ``_``, and the title
is shortened until the name fits a single path component.
"""

import posixpath
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

from core.download import DownloadTarget
from core.download.streaming import PARTIAL_SUFFIX, partial_path
from feedsync.models import Item

# Reserved on Windows, separators on POSIX, plus control characters
INVALID_FS_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F\x7F]')

WINDOWS_RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{n}" for n in range(1, 10)}
    | {f"LPT{n}" for n in range(1, 10)}
)

REPLACEMENT = "_"

# NAME_MAX on common filesystems, in UTF-8 bytes; the .partial name must fit too
MAX_NAME_BYTES = 255 - len(PARTIAL_SUFFIX.encode("utf-8"))


def sanitize_filename(name: str) -> str:
    """Replace filesystem-invalid characters so ``name`` is a single path component."""
    cleaned = INVALID_FS_CHARS.sub(REPLACEMENT, name).rstrip(". ")
    if not cleaned:
        return REPLACEMENT
    if cleaned.split(".", 1)[0].upper() in WINDOWS_RESERVED_NAMES:
        return REPLACEMENT + cleaned
    return cleaned


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Longest prefix of ``text`` whose UTF-8 encoding fits in ``max_bytes``."""
    if max_bytes <= 0:
        return ""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def _url_basename(url: str) -> str:
    path = unquote(urlparse(url).path)
    return posixpath.basename(path)


def page_filename(url: str, title: str) -> str:
    """
    ``{stem}_{title}{suffix}`` of the URI's base name.

    The title is cut so the name (and its ``.partial`` sibling) stays within
    the filesystem's component limit; stem and extension are kept.

    Example:
        >>> page_filename("https://img.example.com/a/105_p0.png", "Sun/set")
        '105_p0_Sun_set.png'
    """
    base = _url_basename(url)
    stem, suffix = posixpath.splitext(base)
    stem = INVALID_FS_CHARS.sub(REPLACEMENT, stem)
    suffix = INVALID_FS_CHARS.sub(REPLACEMENT, suffix)

    suffix_bytes = len(suffix.encode("utf-8"))
    stem = truncate_utf8(stem, MAX_NAME_BYTES - suffix_bytes)

    title = INVALID_FS_CHARS.sub(REPLACEMENT, title)
    budget = MAX_NAME_BYTES - len(f"{stem}_".encode("utf-8")) - suffix_bytes
    title = truncate_utf8(title, budget)

    if title:
        return sanitize_filename(f"{stem}_{title}{suffix}")
    return sanitize_filename(f"{stem}{suffix}")


def animation_filename(item: Item) -> str:
    return f"{item.id}.zip"


def resolve_targets(item: Item, directory: Path) -> list[DownloadTarget]:
    """Map ``item`` to its download targets under ``directory``, in page order."""
    if item.animation is not None:
        return [
            DownloadTarget(
                url=item.animation.archive_url,
                destination=directory / animation_filename(item),
            )
        ]

    return [
        DownloadTarget(url=page.url, destination=directory / page_filename(page.url, item.title))
        for page in item.pages
    ]


__all__ = [
    "INVALID_FS_CHARS",
    "MAX_NAME_BYTES",
    "sanitize_filename",
    "truncate_utf8",
    "page_filename",
    "animation_filename",
    "resolve_targets",
    "partial_path",
]
