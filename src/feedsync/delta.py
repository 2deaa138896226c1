"""
Delta computation against the stored watermark.

The remote listing is consumed lazily, newest first, and abandoned at the
first item that is not newer than the watermark. Nothing beyond the delta
itself is held in memory.
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Optional

from feedsync.models import Item

logger = logging.getLogger(__name__)


@dataclass
class Delta:
    """Items newer than the watermark, in feed order, and the new high-water id."""

    items: list[Item] = field(default_factory=list)
    new_watermark: Optional[int] = None

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items


async def _close(stream: AsyncIterator[Item]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def compute_delta(
    stream: AsyncIterable[Item],
    watermark: Optional[int],
) -> Delta:
    """
    Collect the items of ``stream`` with ``id > watermark``.

    Stops consuming at the first item with ``id <= watermark`` and closes the
    source so no further pages are requested. With ``watermark=None`` the
    whole stream is taken. For an empty result ``new_watermark`` equals
    ``watermark``.
    """
    delta = Delta(new_watermark=watermark)
    iterator = aiter(stream)

    try:
        async for item in iterator:
            if watermark is not None and item.id <= watermark:
                logger.debug(
                    "Reached watermark, stopping listing",
                    extra={"item_id": item.id, "watermark": watermark},
                )
                break

            delta.items.append(item)
            if delta.new_watermark is None or item.id > delta.new_watermark:
                delta.new_watermark = item.id
    finally:
        await _close(iterator)

    logger.debug(
        "Delta computed",
        extra={
            "items_total": len(delta.items),
            "watermark": watermark,
            "new_watermark": delta.new_watermark,
        },
    )
    return delta


__all__ = ["Delta", "compute_delta"]
