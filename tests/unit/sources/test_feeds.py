"""Tests for RSS/Atom parsing and the news/newsletter feed adapters."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest
import respx

from simplenet.config import NewsletterSettings, NewsSettings
from simplenet.exceptions import SourceUnavailableError
from simplenet.models import ArticleItem, Category
from simplenet.sources.feeds import (
    FeedParseError,
    NewsFeedAdapter,
    NewsletterFeedAdapter,
    parse_date,
    parse_feed,
    select_latest,
    strip_html,
)
from simplenet.usage import InMemoryUsageSink

NEWS_URL = "https://news.google.com/rss/search"

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Engineering Letter</title>
  <entry>
    <title>Shipping faster with smaller PRs</title>
    <link rel="alternate" href="https://letter.example.test/posts/1"/>
    <published>2026-10-17T08:00:00Z</published>
    <summary>&lt;p&gt;Why small changes win.&lt;/p&gt;</summary>
    <author><name>Jo Writer</name></author>
  </entry>
  <entry>
    <title>No link here</title>
  </entry>
</feed>
"""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestParseHelpers:
    """HTML stripping and date parsing."""

    def test_strip_html(self) -> None:
        assert strip_html("<p>Hello &amp; <b>world</b></p>") == "Hello & world"

    def test_strip_html_truncates(self) -> None:
        text = strip_html("word " * 200, limit=50)
        assert text is not None
        assert len(text) <= 50
        assert text.endswith("...")

    @pytest.mark.parametrize("raw", [None, "", "<br/>"])
    def test_strip_html_empty(self, raw: str | None) -> None:
        assert strip_html(raw) is None

    def test_parse_rfc822(self) -> None:
        assert parse_date("Sun, 18 Oct 2026 10:00:00 GMT") == datetime(
            2026, 10, 18, 10, tzinfo=UTC
        )

    def test_parse_iso_naive_is_utc(self) -> None:
        parsed = parse_date("2026-10-18T10:00:00")
        assert parsed is not None
        assert parsed.tzinfo is not None

    def test_parse_garbage(self) -> None:
        assert parse_date("yesterday-ish") is None


class TestParseFeed:
    """RSS 2.0 and Atom documents."""

    def test_google_news_publisher_split(self, rss_xml: Callable[..., str]) -> None:
        articles = parse_feed(rss_xml(2, publisher="The Verge"))
        assert [a.title for a in articles] == ["Story 1", "Story 2"]
        assert articles[0].source_label == "The Verge"
        assert articles[0].description == "Body of story 1"
        assert articles[0].published_at == datetime(2026, 10, 18, 11, tzinfo=UTC)

    def test_feed_title_is_fallback_label(self, rss_xml: Callable[..., str]) -> None:
        articles = parse_feed(rss_xml(1, publisher=None))
        assert articles[0].source_label == "Example Feed"

    def test_atom(self) -> None:
        articles = parse_feed(ATOM_FEED)
        assert len(articles) == 1
        post = articles[0]
        assert post.url == "https://letter.example.test/posts/1"
        assert post.author == "Jo Writer"
        assert post.source_label == "Engineering Letter"
        assert post.description == "Why small changes win."

    @pytest.mark.parametrize("body", ["not xml at all", "<html><body/></html>"])
    def test_malformed(self, body: str) -> None:
        with pytest.raises(FeedParseError):
            parse_feed(body)


class TestSelectLatest:
    """Dedupe, newest-first, capped at five."""

    def test_dedupes_sorts_and_caps(self, make_article: Callable[..., ArticleItem]) -> None:
        items = [make_article(n) for n in (5, 1, 3, 2, 4, 6, 7)]
        items.append(make_article(1))
        latest = select_latest(items, limit=10)
        assert [a.title for a in latest] == [f"News headline {n}" for n in range(1, 6)]

    def test_undated_sort_last(self, make_article: Callable[..., ArticleItem]) -> None:
        undated = ArticleItem(title="Undated", url="https://x.test/u")
        latest = select_latest([undated, make_article(3)], limit=5)
        assert latest[-1] is undated


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class TestNewsFeedAdapter:
    """Google News RSS search."""

    def test_feed_url(self, sink: InMemoryUsageSink) -> None:
        adapter = NewsFeedAdapter(NewsSettings(), sink)
        url = httpx.URL(adapter.feed_url(Category.TECH))
        assert url.params["q"] == "technology"
        assert url.params["hl"] == "en-US"
        assert url.params["gl"] == "US"
        assert url.params["ceid"] == "US:en"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_returns_at_most_five(
        self, sink: InMemoryUsageSink, rss_xml: Callable[..., str]
    ) -> None:
        respx.get(NEWS_URL).mock(return_value=httpx.Response(200, text=rss_xml(8)))
        adapter = NewsFeedAdapter(NewsSettings(), sink)
        try:
            articles = await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()
        assert len(articles) == 5
        assert articles[0].title == "Story 1"
        assert sink.records[0].service == "news"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_parse_failure_retried_once(
        self, sink: InMemoryUsageSink, rss_xml: Callable[..., str]
    ) -> None:
        route = respx.get(NEWS_URL).mock(
            side_effect=[
                httpx.Response(200, text="<rss><channel>"),
                httpx.Response(200, text=rss_xml(3)),
            ]
        )
        adapter = NewsFeedAdapter(NewsSettings(), sink)
        try:
            articles = await adapter.fetch(Category.AI)
        finally:
            await adapter.aclose()
        assert route.call_count == 2
        assert len(articles) == 3

    @pytest.mark.asyncio()
    @respx.mock
    async def test_persistent_parse_failure_is_unavailable(self, sink: InMemoryUsageSink) -> None:
        route = respx.get(NEWS_URL).mock(return_value=httpx.Response(200, text="garbage"))
        adapter = NewsFeedAdapter(NewsSettings(), sink)
        try:
            with pytest.raises(SourceUnavailableError):
                await adapter.fetch(Category.AI)
        finally:
            await adapter.aclose()
        assert route.call_count == 2

    @pytest.mark.asyncio()
    @respx.mock
    async def test_http_error_not_retried(self, sink: InMemoryUsageSink) -> None:
        route = respx.get(NEWS_URL).mock(return_value=httpx.Response(503))
        adapter = NewsFeedAdapter(NewsSettings(), sink)
        try:
            with pytest.raises(SourceUnavailableError, match="HTTP 503"):
                await adapter.fetch(Category.AI)
        finally:
            await adapter.aclose()
        assert route.call_count == 1


class TestNewsletterFeedAdapter:
    """Curated newsletter feeds per category."""

    def _settings(self) -> NewsletterSettings:
        return NewsletterSettings(
            feeds={
                "tech": [
                    "https://one.example.test/feed",
                    "https://two.example.test/feed",
                ]
            }
        )

    @pytest.mark.asyncio()
    @respx.mock
    async def test_merges_feeds(
        self, sink: InMemoryUsageSink, rss_xml: Callable[..., str]
    ) -> None:
        respx.get("https://one.example.test/feed").mock(
            return_value=httpx.Response(200, text=rss_xml(2, publisher=None, prefix="One"))
        )
        respx.get("https://two.example.test/feed").mock(
            return_value=httpx.Response(200, text=rss_xml(2, publisher=None, prefix="Two"))
        )
        adapter = NewsletterFeedAdapter(self._settings(), sink)
        try:
            posts = await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()
        assert {p.title for p in posts} == {"One 1", "One 2", "Two 1", "Two 2"}
        assert sink.records[0].detail == "feeds=2 failed=0"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_one_broken_feed_is_skipped(
        self, sink: InMemoryUsageSink, rss_xml: Callable[..., str]
    ) -> None:
        respx.get("https://one.example.test/feed").mock(return_value=httpx.Response(404))
        respx.get("https://two.example.test/feed").mock(
            return_value=httpx.Response(200, text=rss_xml(3, publisher=None, prefix="Two"))
        )
        adapter = NewsletterFeedAdapter(self._settings(), sink)
        try:
            posts = await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()
        assert len(posts) == 3

    @pytest.mark.asyncio()
    @respx.mock
    async def test_all_feeds_failing_is_unavailable(self, sink: InMemoryUsageSink) -> None:
        respx.get("https://one.example.test/feed").mock(return_value=httpx.Response(500))
        respx.get("https://two.example.test/feed").mock(
            side_effect=httpx.ConnectError("refused")
        )
        adapter = NewsletterFeedAdapter(self._settings(), sink)
        try:
            with pytest.raises(SourceUnavailableError, match="all 2 feeds failed"):
                await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()

    @pytest.mark.asyncio()
    async def test_no_feeds_configured(self, sink: InMemoryUsageSink) -> None:
        adapter = NewsletterFeedAdapter(NewsletterSettings(feeds={}), sink)
        try:
            assert await adapter.fetch(Category.PETS) == []
        finally:
            await adapter.aclose()
