"""YouTube Data API search adapter returning the latest video per category."""

from __future__ import annotations

import html
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from simplenet.exceptions import SourceUnavailableError
from simplenet.models import SourceKind, VideoItem
from simplenet.sources.base import SourceAdapter

if TYPE_CHECKING:
    from simplenet.config import YouTubeSettings
    from simplenet.models import Category
    from simplenet.usage import TrackedCall, UsageSink

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded"})
_THUMBNAIL_PREFERENCE = ("high", "medium", "default")


class YouTubeAdapter(SourceAdapter):
    """Search YouTube for the newest video matching a category query.

    Quota errors are reported immediately; retrying would only burn
    more of the daily quota.
    """

    kind = SourceKind.YOUTUBE

    def __init__(
        self,
        settings: YouTubeSettings,
        sink: UsageSink,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(sink, timeout=settings.timeout, client=client)
        self._settings = settings

    async def _fetch(self, category: Category, call: TrackedCall) -> VideoItem | None:
        if not self._settings.api_key:
            raise SourceUnavailableError(self.name, "no API key configured")

        params = {
            "part": "snippet",
            "type": "video",
            "order": "date",
            "maxResults": "1",
            "q": self._settings.queries.get(category.value, category.value),
            "key": self._settings.api_key,
        }
        response = await self._client.get(self._settings.base_url, params=params)

        if response.status_code == 403 and self._is_quota_error(response):
            logger.warning("youtube_quota_exceeded", category=category.value)
            raise SourceUnavailableError(self.name, "quota exceeded")
        response.raise_for_status()

        call.detail = f"quota_units={self._settings.quota_units_per_search}"
        video = self._parse_search(response.json())
        if video is None:
            logger.info("youtube_no_results", category=category.value)
        return video

    @staticmethod
    def _is_quota_error(response: httpx.Response) -> bool:
        try:
            payload = response.json()
        except ValueError:
            return False
        errors = payload.get("error", {}).get("errors", []) if isinstance(payload, dict) else []
        return any(
            isinstance(err, dict) and err.get("reason") in _QUOTA_REASONS
            for err in errors
        )

    def _parse_search(self, payload: Any) -> VideoItem | None:
        items = payload.get("items", []) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ValueError(f"Unexpected search response: {type(payload).__name__}")
        for item in items:
            if not isinstance(item, dict):
                continue
            ids = item.get("id")
            video_id = ids.get("videoId") if isinstance(ids, dict) else None
            snippet = item.get("snippet")
            if not isinstance(snippet, dict):
                snippet = {}
            title = html.unescape(str(snippet.get("title", ""))).strip()
            if not video_id or not title:
                continue

            return VideoItem(
                video_id=video_id,
                title=title,
                url=f"https://www.youtube.com/watch?v={video_id}",
                description=html.unescape(str(snippet.get("description", ""))).strip()
                or None,
                published_at=_parse_timestamp(snippet.get("publishedAt")),
                source_label="YouTube",
                channel=snippet.get("channelTitle") or None,
                thumbnail_url=_pick_thumbnail(snippet.get("thumbnails", {})),
            )
        return None


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _pick_thumbnail(thumbnails: dict[str, Any]) -> str | None:
    for size in _THUMBNAIL_PREFERENCE:
        entry = thumbnails.get(size)
        if isinstance(entry, dict) and entry.get("url"):
            return str(entry["url"])
    return None
