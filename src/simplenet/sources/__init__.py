"""Source adapters that normalize external content into ``ContentItem``s."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from simplenet.sources.base import SourceAdapter
from simplenet.sources.feeds import NewsFeedAdapter, NewsletterFeedAdapter
from simplenet.sources.youtube import YouTubeAdapter

if TYPE_CHECKING:
    from simplenet.config import Settings
    from simplenet.usage import UsageSink

__all__ = [
    "NewsFeedAdapter",
    "NewsletterFeedAdapter",
    "SourceAdapter",
    "YouTubeAdapter",
    "build_http_client",
    "default_adapters",
]

_USER_AGENT = "simplenet/0.1"


def build_http_client() -> httpx.AsyncClient:
    """Create the client adapters share; the caller owns and closes it."""
    return httpx.AsyncClient(
        headers={"User-Agent": _USER_AGENT},
        follow_redirects=True,
    )


def default_adapters(
    settings: Settings,
    sink: UsageSink,
    client: httpx.AsyncClient,
) -> list[SourceAdapter]:
    """Build the video, news, and newsletter adapters on a shared client."""
    return [
        YouTubeAdapter(settings.youtube, sink, client=client),
        NewsFeedAdapter(settings.news, sink, client=client),
        NewsletterFeedAdapter(settings.newsletter, sink, client=client),
    ]
