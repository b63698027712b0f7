"""Tests for the YouTube search adapter."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
import respx

from simplenet.config import YouTubeSettings
from simplenet.exceptions import SourceUnavailableError
from simplenet.models import Category, VideoItem
from simplenet.sources.youtube import YouTubeAdapter
from simplenet.usage import InMemoryUsageSink

YOUTUBE_URL = "https://www.googleapis.com/youtube/v3/search"


def _adapter(sink: InMemoryUsageSink, **overrides: object) -> YouTubeAdapter:
    settings = YouTubeSettings(api_key="test-key", **overrides)
    return YouTubeAdapter(settings, sink)


class TestYouTubeAdapter:
    """Search request, normalization, and failure mapping."""

    @pytest.mark.asyncio()
    @respx.mock
    async def test_returns_latest_video(
        self, sink: InMemoryUsageSink, youtube_json: Callable[..., dict]
    ) -> None:
        route = respx.get(YOUTUBE_URL).mock(
            return_value=httpx.Response(200, json=youtube_json())
        )
        adapter = _adapter(sink)
        try:
            video = await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()

        assert isinstance(video, VideoItem)
        assert video.video_id == "abc123"
        assert video.url == "https://www.youtube.com/watch?v=abc123"
        assert video.channel == "Tech Weekly"
        assert video.thumbnail_url == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"
        assert video.description == "A quick look at this week's hardware news."
        assert video.published_at is not None

        params = route.calls.last.request.url.params
        assert params["q"] == "technology news"
        assert params["order"] == "date"
        assert params["maxResults"] == "1"
        assert params["key"] == "test-key"

        (record,) = sink.records
        assert record.service == "youtube"
        assert record.success is True
        assert record.detail == "quota_units=100"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_no_results_is_none(self, sink: InMemoryUsageSink) -> None:
        respx.get(YOUTUBE_URL).mock(return_value=httpx.Response(200, json={"items": []}))
        adapter = _adapter(sink)
        try:
            assert await adapter.fetch(Category.PETS) is None
        finally:
            await adapter.aclose()

    @pytest.mark.asyncio()
    @respx.mock
    async def test_quota_exceeded_is_not_retried(self, sink: InMemoryUsageSink) -> None:
        route = respx.get(YOUTUBE_URL).mock(
            return_value=httpx.Response(
                403,
                json={"error": {"code": 403, "errors": [{"reason": "quotaExceeded"}]}},
            )
        )
        adapter = _adapter(sink)
        try:
            with pytest.raises(SourceUnavailableError, match="quota exceeded"):
                await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()

        assert route.call_count == 1
        assert sink.records[0].success is False

    @pytest.mark.asyncio()
    @respx.mock
    async def test_server_error_maps_to_unavailable(self, sink: InMemoryUsageSink) -> None:
        respx.get(YOUTUBE_URL).mock(return_value=httpx.Response(500))
        adapter = _adapter(sink)
        try:
            with pytest.raises(SourceUnavailableError) as exc_info:
                await adapter.fetch(Category.SPORTS)
        finally:
            await adapter.aclose()
        assert exc_info.value.source == "youtube"
        assert exc_info.value.reason == "HTTP 500"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_transport_error_maps_to_unavailable(self, sink: InMemoryUsageSink) -> None:
        respx.get(YOUTUBE_URL).mock(side_effect=httpx.ConnectError("refused"))
        adapter = _adapter(sink)
        try:
            with pytest.raises(SourceUnavailableError):
                await adapter.fetch(Category.AI)
        finally:
            await adapter.aclose()

    @pytest.mark.asyncio()
    @respx.mock
    @pytest.mark.parametrize("body", [[{"items": []}], {"items": "none"}, "quota"])
    async def test_unexpected_body_maps_to_unavailable(
        self, sink: InMemoryUsageSink, body: object
    ) -> None:
        respx.get(YOUTUBE_URL).mock(return_value=httpx.Response(200, json=body))
        adapter = _adapter(sink)
        try:
            with pytest.raises(SourceUnavailableError, match="Unexpected search response"):
                await adapter.fetch(Category.SPORTS)
        finally:
            await adapter.aclose()
        assert sink.records[-1].success is False

    @pytest.mark.asyncio()
    @respx.mock
    async def test_skips_malformed_items(
        self, sink: InMemoryUsageSink, youtube_json: Callable[..., dict]
    ) -> None:
        payload = youtube_json()
        payload["items"] = ["junk", {"id": "abc", "snippet": None}, *payload["items"]]
        respx.get(YOUTUBE_URL).mock(return_value=httpx.Response(200, json=payload))
        adapter = _adapter(sink)
        try:
            video = await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()
        assert video is not None
        assert video.video_id == "abc123"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_missing_key_makes_no_request(self, sink: InMemoryUsageSink) -> None:
        route = respx.get(YOUTUBE_URL)
        adapter = YouTubeAdapter(YouTubeSettings(), sink)
        try:
            with pytest.raises(SourceUnavailableError, match="no API key"):
                await adapter.fetch(Category.TECH)
        finally:
            await adapter.aclose()
        assert not route.called
