"""
Feed item schemas.

Contains Pydantic models for the items returned by the remote listing and
the per-item result produced by a download pass.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Page(BaseModel):
    """One image of an item.

    Attributes:
        url: Source URI of the page content
        title: Page caption as listed; local filenames use the item title
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Source URI of the page", min_length=1)
    title: str = Field(default="", description="Display title of the page")


class AnimatedContent(BaseModel):
    """Animated content fetched as a single archive of frames."""

    model_config = ConfigDict(frozen=True)

    archive_url: str = Field(..., description="URI of the frame archive", min_length=1)
    frame_count: Optional[int] = Field(default=None, ge=0)


class Item(BaseModel):
    """A feed entry.

    Ids increase with recency; the remote listing yields items newest first.
    Exactly one of ``pages`` (non-empty) or ``animation`` is set.

    Example:
        >>> item = Item(
        ...     id=105,
        ...     title="Sunset",
        ...     pages=(Page(url="https://img.example.com/105_p0.png", title="Sunset"),),
        ... )
        >>> item.is_multi_page
        False
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Monotonically increasing item identifier", ge=0)
    title: str = Field(default="")
    is_multi_page: bool = Field(default=False)
    pages: tuple[Page, ...] = Field(default=())
    animation: Optional[AnimatedContent] = Field(default=None)

    @model_validator(mode="after")
    def _check_content(self) -> "Item":
        if self.animation is not None and self.pages:
            raise ValueError("item cannot have both pages and animated content")
        if self.animation is None and not self.pages:
            raise ValueError("item must have pages or animated content")
        if self.pages and self.is_multi_page != (len(self.pages) > 1):
            raise ValueError(
                f"is_multi_page={self.is_multi_page} disagrees with {len(self.pages)} page(s)"
            )
        return self

    @property
    def is_animated(self) -> bool:
        return self.animation is not None


@dataclass(frozen=True)
class DownloadOutcome:
    """Result of one item in a download pass.

    ``skipped`` is True when every artifact already existed and nothing was
    fetched.
    """

    item: Item
    succeeded: bool
    error_message: Optional[str] = None
    error_category: Optional[str] = None
    bytes_downloaded: int = 0
    skipped: bool = False


__all__ = ["Page", "AnimatedContent", "Item", "DownloadOutcome"]
