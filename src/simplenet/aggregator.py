"""Concurrent fan-out to source adapters and merge into a ContentBundle.

Each adapter runs as its own task; the join waits for all of them to
settle. A failing or empty source is left out of the bundle and never
fails the aggregation as a whole.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from simplenet.exceptions import SourceUnavailableError
from simplenet.models import (
    MAX_FEED_ITEMS,
    ArticleItem,
    Category,
    ContentBundle,
    SourceKind,
    VideoItem,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from simplenet.sources.base import FetchResult, SourceAdapter

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class Aggregator:
    """Fan out a category search to every configured source adapter."""

    def __init__(self, adapters: Sequence[SourceAdapter]) -> None:
        self._adapters = list(adapters)

    @property
    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters)

    async def aggregate(self, category: Category | str) -> ContentBundle:
        """Collect content for ``category`` from all adapters.

        Args:
            category: A ``Category`` or its string value.

        Returns:
            A bundle holding whichever sources produced items. Empty if
            every source failed.

        Raises:
            InvalidCategoryError: Before any adapter is called, if the
                category is not recognized.
        """
        parsed = Category.parse(category)

        outcomes = await asyncio.gather(
            *(self._run_adapter(adapter, parsed) for adapter in self._adapters)
        )

        fields: dict[str, Any] = {}
        failed: list[str] = []
        for adapter, (ok, result) in zip(self._adapters, outcomes, strict=True):
            if not ok:
                failed.append(adapter.name)
                continue
            merged = _coerce(adapter.kind, result)
            if merged is not None:
                fields[adapter.kind.value] = merged

        bundle = ContentBundle(**fields)
        logger.info(
            "aggregate_complete",
            category=parsed.value,
            present=[kind.value for kind in bundle.present_sources()],
            failed=failed,
            news=len(bundle.news),
            newsletter=len(bundle.newsletter),
            video=bundle.youtube is not None,
        )
        if bundle.is_empty:
            logger.warning("aggregate_empty", category=parsed.value, failed=failed)
        return bundle

    @staticmethod
    async def _run_adapter(
        adapter: SourceAdapter, category: Category
    ) -> tuple[bool, FetchResult]:
        try:
            return True, await adapter.fetch(category)
        except SourceUnavailableError as exc:
            logger.warning(
                "source_unavailable",
                source=exc.source,
                reason=exc.reason,
                category=category.value,
            )
        except Exception as exc:
            logger.error(
                "source_adapter_crashed",
                source=adapter.name,
                category=category.value,
                error=str(exc),
                exc_info=True,
            )
        return False, None

    async def aclose(self) -> None:
        for adapter in self._adapters:
            await adapter.aclose()


def _coerce(kind: SourceKind, result: FetchResult) -> VideoItem | tuple[ArticleItem, ...] | None:
    """Fit one adapter's output into its bundle slot, applying caps."""
    if result is None:
        return None
    if kind is SourceKind.YOUTUBE:
        if isinstance(result, VideoItem):
            return result
        videos = [item for item in result if isinstance(item, VideoItem)]
        return videos[0] if videos else None

    if isinstance(result, VideoItem):
        return None
    articles = tuple(item for item in result if isinstance(item, ArticleItem))
    return articles[:MAX_FEED_ITEMS] or None
