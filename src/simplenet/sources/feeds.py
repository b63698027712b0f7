"""RSS/Atom syndication adapters for news and curated newsletters."""

from __future__ import annotations

import asyncio
import html
import re
import xml.etree.ElementTree as ET
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from simplenet.exceptions import SourceUnavailableError
from simplenet.models import MAX_FEED_ITEMS, ArticleItem, SourceKind
from simplenet.sources.base import SourceAdapter

if TYPE_CHECKING:
    from simplenet.config import NewsletterSettings, NewsSettings
    from simplenet.models import Category
    from simplenet.usage import TrackedCall, UsageSink

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_ATOM_NS = "{http://www.w3.org/2005/Atom}"
_CONTENT_ENCODED = "{http://purl.org/rss/1.0/modules/content/}encoded"
_DC_CREATOR = "{http://purl.org/dc/elements/1.1/}creator"

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_MAX_DESCRIPTION_CHARS = 300
_OLDEST = datetime.min.replace(tzinfo=UTC)


class FeedParseError(ValueError):
    """Raised when a feed body is not well-formed RSS or Atom."""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def strip_html(text: str | None, limit: int = _MAX_DESCRIPTION_CHARS) -> str | None:
    """Reduce an HTML fragment to a short plain-text description."""
    if not text:
        return None
    plain = _WS_RE.sub(" ", html.unescape(_TAG_RE.sub(" ", text))).strip()
    if not plain:
        return None
    if len(plain) > limit:
        plain = plain[: limit - 3].rstrip() + "..."
    return plain


def parse_date(value: str | None) -> datetime | None:
    """Parse RFC 822 (RSS) or ISO 8601 (Atom) timestamps; naive means UTC."""
    if not value:
        return None
    value = value.strip()
    parsed: datetime | None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_feed(xml_text: str) -> list[ArticleItem]:
    """Parse an RSS 2.0 or Atom document into articles, in document order.

    Raises:
        FeedParseError: If the body is not XML or not a recognized feed.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise FeedParseError(f"malformed feed: {exc}") from exc

    channel = root.find("channel")
    if channel is not None:
        feed_title = channel.findtext("title", default="").strip() or None
        return [
            article
            for item in channel.findall("item")
            if (article := _article_from_rss(feed_title, item)) is not None
        ]

    if root.tag == f"{_ATOM_NS}feed":
        feed_title = root.findtext(f"{_ATOM_NS}title", default="").strip() or None
        return [
            article
            for entry in root.findall(f"{_ATOM_NS}entry")
            if (article := _article_from_atom(feed_title, entry)) is not None
        ]

    raise FeedParseError(f"unrecognized feed root <{root.tag}>")


def _article_from_rss(feed_title: str | None, item: ET.Element) -> ArticleItem | None:
    title = html.unescape(item.findtext("title", default="")).strip()
    link = item.findtext("link", default="").strip()
    if not title or not link:
        return None

    # Google News carries the publisher in <source> and appends it to the title.
    source_node = item.find("source")
    publisher = (source_node.text or "").strip() if source_node is not None else ""
    if publisher and title.endswith(f" - {publisher}"):
        title = title.removesuffix(f" - {publisher}").strip()

    body = item.findtext("description") or item.findtext(_CONTENT_ENCODED)
    return ArticleItem(
        title=title,
        url=link,
        description=strip_html(body),
        published_at=parse_date(item.findtext("pubDate")),
        source_label=publisher or feed_title,
        author=(item.findtext(_DC_CREATOR) or item.findtext("author") or "").strip()
        or None,
    )


def _article_from_atom(feed_title: str | None, entry: ET.Element) -> ArticleItem | None:
    title = html.unescape(entry.findtext(f"{_ATOM_NS}title", default="")).strip()
    link = ""
    for node in entry.findall(f"{_ATOM_NS}link"):
        if node.attrib.get("rel", "alternate") == "alternate" and node.attrib.get("href"):
            link = node.attrib["href"].strip()
            break
    if not title or not link:
        return None

    body = entry.findtext(f"{_ATOM_NS}summary") or entry.findtext(f"{_ATOM_NS}content")
    published = entry.findtext(f"{_ATOM_NS}published") or entry.findtext(
        f"{_ATOM_NS}updated"
    )
    return ArticleItem(
        title=title,
        url=link,
        description=strip_html(body),
        published_at=parse_date(published),
        source_label=feed_title,
        author=(entry.findtext(f"{_ATOM_NS}author/{_ATOM_NS}name") or "").strip()
        or None,
    )


def select_latest(items: list[ArticleItem], limit: int) -> list[ArticleItem]:
    """Drop duplicate URLs, order newest-first (undated last), and cap."""
    seen: set[str] = set()
    unique: list[ArticleItem] = []
    for item in items:
        if item.url in seen:
            continue
        seen.add(item.url)
        unique.append(item)
    unique.sort(key=lambda item: item.published_at or _OLDEST, reverse=True)
    return unique[: min(limit, MAX_FEED_ITEMS)]


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class FeedAdapter(SourceAdapter):
    """Base for adapters that read one or more syndication feeds."""

    def __init__(
        self,
        sink: UsageSink,
        *,
        timeout: float,
        max_items: int,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(sink, timeout=timeout, client=client)
        self._max_items = max_items

    @retry(
        retry=retry_if_exception_type(FeedParseError),
        stop=stop_after_attempt(2),
        reraise=True,
    )
    async def _read_feed(self, url: str) -> list[ArticleItem]:
        """GET and parse one feed; a parse failure is retried once, immediately."""
        response = await self._client.get(url)
        response.raise_for_status()
        try:
            return parse_feed(response.text)
        except FeedParseError:
            logger.warning("feed_parse_failed", source=self.name, url=url)
            raise


class NewsFeedAdapter(FeedAdapter):
    """Google News RSS search, one query per category."""

    kind = SourceKind.NEWS

    def __init__(
        self,
        settings: NewsSettings,
        sink: UsageSink,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            sink,
            timeout=settings.timeout,
            max_items=settings.max_items,
            client=client,
        )
        self._settings = settings

    def feed_url(self, category: Category) -> str:
        query = self._settings.queries.get(category.value, category.value)
        language = self._settings.language.split("-", 1)[0]
        params = httpx.QueryParams(
            {
                "q": query,
                "hl": self._settings.language,
                "gl": self._settings.region,
                "ceid": f"{self._settings.region}:{language}",
            }
        )
        return f"{self._settings.base_url}?{params}"

    async def _fetch(self, category: Category, call: TrackedCall) -> list[ArticleItem]:
        articles = await self._read_feed(self.feed_url(category))
        return select_latest(articles, self._max_items)


class NewsletterFeedAdapter(FeedAdapter):
    """Curated newsletter feeds configured per category.

    Feeds are read concurrently. One broken feed is skipped; the source is
    unavailable only when every configured feed fails.
    """

    kind = SourceKind.NEWSLETTER

    def __init__(
        self,
        settings: NewsletterSettings,
        sink: UsageSink,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            sink,
            timeout=settings.timeout,
            max_items=settings.max_items,
            client=client,
        )
        self._settings = settings

    def feed_urls(self, category: Category) -> list[str]:
        return list(self._settings.feeds.get(category.value, []))

    async def _fetch(self, category: Category, call: TrackedCall) -> list[ArticleItem]:
        urls = self.feed_urls(category)
        if not urls:
            logger.info("newsletter_no_feeds", category=category.value)
            return []

        outcomes = await asyncio.gather(
            *(self._read_feed(url) for url in urls), return_exceptions=True
        )

        articles: list[ArticleItem] = []
        failures: list[str] = []
        for url, outcome in zip(urls, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures.append(url)
                logger.warning(
                    "newsletter_feed_failed",
                    url=url,
                    error=str(outcome) or type(outcome).__name__,
                )
                continue
            articles.extend(outcome)

        if len(failures) == len(urls):
            raise SourceUnavailableError(self.name, f"all {len(urls)} feeds failed")

        call.detail = f"feeds={len(urls)} failed={len(failures)}"
        return select_latest(articles, self._max_items)
