"""Content and result models shared across the digest pipeline.

Items from every source normalize onto ``ContentItem``. Source-specific
fields live on the ``VideoItem`` / ``ArticleItem`` variants, discriminated
by ``kind``, so stored bundles validate back into the same shapes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from simplenet.exceptions import InvalidCategoryError

if TYPE_CHECKING:
    from collections.abc import Iterator

MAX_VIDEO_ITEMS = 1
MAX_FEED_ITEMS = 5


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Category(StrEnum):
    """Content categories a user can search."""

    AI = "ai"
    BOLLYWOOD = "bollywood"
    PETS = "pets"
    SPORTS = "sports"
    TECH = "tech"

    @classmethod
    def parse(cls, value: object) -> Category:
        """Return the matching category or raise ``InvalidCategoryError``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidCategoryError(value)


class SourceKind(StrEnum):
    """Sources that contribute to a content bundle."""

    YOUTUBE = "youtube"
    NEWS = "news"
    NEWSLETTER = "newsletter"


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------


class ContentItem(BaseModel):
    """One normalized unit of aggregated content."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    published_at: datetime | None = None
    source_label: str | None = Field(
        default=None, description="Publisher, feed, or channel display name."
    )


class VideoItem(ContentItem):
    """A video search hit."""

    kind: Literal["video"] = "video"
    video_id: str
    channel: str | None = None
    thumbnail_url: str | None = None


class ArticleItem(ContentItem):
    """An article or newsletter post from a syndication feed."""

    kind: Literal["article"] = "article"
    author: str | None = None


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class ContentBundle(BaseModel):
    """Per-source content merged from one aggregation call.

    An absent video is ``None``; an absent feed source is an empty tuple.
    """

    model_config = ConfigDict(frozen=True)

    youtube: VideoItem | None = None
    news: tuple[ArticleItem, ...] = Field(default=(), max_length=MAX_FEED_ITEMS)
    newsletter: tuple[ArticleItem, ...] = Field(default=(), max_length=MAX_FEED_ITEMS)

    def present_sources(self) -> list[SourceKind]:
        """Sources that contributed at least one item, in display order."""
        present: list[SourceKind] = []
        if self.youtube is not None:
            present.append(SourceKind.YOUTUBE)
        if self.news:
            present.append(SourceKind.NEWS)
        if self.newsletter:
            present.append(SourceKind.NEWSLETTER)
        return present

    @property
    def is_empty(self) -> bool:
        return not self.present_sources()

    def items(self) -> Iterator[tuple[SourceKind, ContentItem]]:
        """Yield ``(source, item)`` pairs across all present sources."""
        if self.youtube is not None:
            yield SourceKind.YOUTUBE, self.youtube
        for article in self.news:
            yield SourceKind.NEWS, article
        for post in self.newsletter:
            yield SourceKind.NEWSLETTER, post

    def titles(self) -> list[str]:
        return [item.title for _, item in self.items()]


# ---------------------------------------------------------------------------
# Persisted result
# ---------------------------------------------------------------------------


class SearchResult(BaseModel):
    """A stored search: category, bundle, summary, and relay state."""

    id: str
    category: Category
    bundle: ContentBundle
    summary: str
    relay_scheduled: bool = False
    relay_posted: bool = False
    relay_failed: bool = False
    relay_due_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
