"""
pytest configuration for feedsync tests.

Adds src directory to Python path for imports and provides shared fakes.
"""

import asyncio
import os
import sys
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

# Keep developer .env files and FEEDSYNC_* settings out of config tests
for _key in [k for k in os.environ if k.startswith("FEEDSYNC_")]:
    del os.environ[_key]

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.errors.exceptions import TransientIOError  # noqa: E402
from feedsync.models import AnimatedContent, Item, Page  # noqa: E402


def make_item(item_id: int, pages: int = 1, title: str | None = None) -> Item:
    """Build an item with ``pages`` distinct page URLs."""
    title = title if title is not None else f"item{item_id}"
    return Item(
        id=item_id,
        title=title,
        is_multi_page=pages > 1,
        pages=tuple(
            Page(url=f"https://img.example.com/{item_id}_p{n}.png")
            for n in range(pages)
        ),
    )


def make_animated_item(item_id: int) -> Item:
    return Item(
        id=item_id,
        title=f"anim{item_id}",
        animation=AnimatedContent(archive_url=f"https://img.example.com/{item_id}_ugoira.zip"),
    )


class ScriptedFetcher:
    """ContentFetcher fake.

    ``failures`` maps url -> number of times the next fetches of that url fail.
    Tracks call counts and the peak number of concurrent streams.
    """

    def __init__(
        self,
        body: bytes = b"content",
        failures: dict[str, int] | None = None,
        delay: float = 0.0,
    ):
        self.body = body
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if self.failures.get(url, 0) > 0:
                self.failures[url] -= 1
                raise TransientIOError("HTTP 503", context={"status_code": 503, "url": url})
            yield self.body
        finally:
            self.active -= 1


class CountingSource:
    """Async iterable over items that records how many it has handed out."""

    def __init__(self, items: list[Item]):
        self.items = items
        self.consumed = 0
        self.closed = False

    def __aiter__(self):
        return self._generate()

    async def _generate(self):
        try:
            for item in self.items:
                self.consumed += 1
                yield item
        finally:
            self.closed = True


@pytest.fixture
def destination(tmp_path):
    path = tmp_path / "mirror"
    path.mkdir()
    return path
