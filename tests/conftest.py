"""Shared pytest fixtures for the simplenet test suite."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

# Keep litellm from fetching its remote model-cost map on import (tests run offline / under respx).
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from simplenet.config import Settings
from simplenet.models import ArticleItem, ContentBundle, VideoItem
from simplenet.usage import InMemoryUsageSink

if TYPE_CHECKING:
    from pathlib import Path

WEBHOOK_URL = "https://hooks.example.test/services/relay"
YOUTUBE_URL = "https://www.googleapis.com/youtube/v3/search"
NEWS_URL = "https://news.google.com/rss/search"
NEWSLETTER_URL = "https://letters.example.test/tech/feed"

BASE_TIME = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Configuration fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Offline settings rooted in ``tmp_path``.

    Runs from ``tmp_path`` so no stray ``config.yaml`` or ``.env`` leaks in.
    """
    monkeypatch.chdir(tmp_path)
    s = Settings()
    s.youtube.api_key = "test-youtube-key"
    s.newsletter.feeds = {"tech": [NEWSLETTER_URL]}
    s.store.database_path = tmp_path / "db" / "simplenet.db"
    s.usage.directory = tmp_path / "usage"
    s.relay.webhook_url = WEBHOOK_URL
    s.relay.delay_seconds = 0.0
    s.api.admin_token = "admin-secret"
    s.api.cors_origins = ["http://localhost:3000"]
    return s


@pytest.fixture()
def sink() -> InMemoryUsageSink:
    return InMemoryUsageSink()


# ---------------------------------------------------------------------------
# Content builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_article() -> Callable[..., ArticleItem]:
    def _make(n: int, *, prefix: str = "news", hours_ago: int | None = None) -> ArticleItem:
        age = n if hours_ago is None else hours_ago
        return ArticleItem(
            title=f"{prefix.title()} headline {n}",
            url=f"https://{prefix}.example.test/articles/{n}",
            description=f"Description for {prefix} item {n}.",
            published_at=BASE_TIME - timedelta(hours=age),
            source_label=f"{prefix.title()} Daily",
        )

    return _make


@pytest.fixture()
def sample_video() -> VideoItem:
    return VideoItem(
        video_id="abc123",
        title="Chips get faster again",
        url="https://www.youtube.com/watch?v=abc123",
        description="A quick look at this week's hardware news.",
        published_at=BASE_TIME,
        source_label="YouTube",
        channel="Tech Weekly",
        thumbnail_url="https://i.ytimg.com/vi/abc123/hqdefault.jpg",
    )


@pytest.fixture()
def sample_bundle(
    sample_video: VideoItem,
    make_article: Callable[..., ArticleItem],
) -> ContentBundle:
    """One video, three news articles, no newsletter posts."""
    return ContentBundle(
        youtube=sample_video,
        news=tuple(make_article(n) for n in range(1, 4)),
    )


# ---------------------------------------------------------------------------
# Canned external payloads
# ---------------------------------------------------------------------------


def youtube_payload(video_id: str = "abc123", title: str = "Chips get faster again") -> dict:
    return {
        "items": [
            {
                "id": {"kind": "youtube#video", "videoId": video_id},
                "snippet": {
                    "publishedAt": "2026-10-18T11:00:00Z",
                    "title": title,
                    "description": "A quick look at this week&#39;s hardware news.",
                    "channelTitle": "Tech Weekly",
                    "thumbnails": {
                        "default": {"url": f"https://i.ytimg.com/vi/{video_id}/default.jpg"},
                        "high": {"url": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"},
                    },
                },
            }
        ]
    }


def rss_feed(count: int, *, publisher: str | None = "Example Wire", prefix: str = "Story") -> str:
    """Build an RSS 2.0 body with ``count`` items, newest first."""
    items = []
    for n in range(1, count + 1):
        title = f"{prefix} {n}"
        source = ""
        if publisher:
            title = f"{title} - {publisher}"
            source = f'<source url="https://wire.example.test">{publisher}</source>'
        items.append(
            f"<item><title>{title}</title>"
            f"<link>https://wire.example.test/{prefix.lower()}/{n}</link>"
            f"<description>&lt;p&gt;Body of {prefix.lower()} {n}&lt;/p&gt;</description>"
            f"<pubDate>Sun, 18 Oct 2026 {12 - n:02d}:00:00 GMT</pubDate>"
            f"{source}</item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Example Feed</title>'
        + "".join(items)
        + "</channel></rss>"
    )


def completion_response(text: str, prompt_tokens: int = 120, completion_tokens: int = 60):
    """Minimal object shaped like a litellm ModelResponse."""
    from unittest.mock import MagicMock

    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    return response


@pytest.fixture()
def youtube_json() -> Callable[..., dict]:
    return youtube_payload


@pytest.fixture()
def rss_xml() -> Callable[..., str]:
    return rss_feed


@pytest.fixture()
def llm_response() -> Callable[..., object]:
    return completion_response
