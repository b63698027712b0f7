"""End-to-end search: aggregate -> summarize -> store.

``SearchService`` owns the policy the core components leave to their
caller: whether a failed summarization stores a placeholder or aborts,
and that an all-sources-failed bundle is still stored.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import structlog

from simplenet.aggregator import Aggregator
from simplenet.exceptions import PersistenceUnavailableError, SummarizationFailedError
from simplenet.logging import generate_request_id, stage_logging_context
from simplenet.models import Category, SearchResult
from simplenet.relay import RelayDispatcher
from simplenet.sources import build_http_client, default_adapters
from simplenet.store import ResultStore
from simplenet.summarizer import Summarizer
from simplenet.usage import JsonlUsageSink

if TYPE_CHECKING:
    import httpx

    from simplenet.config import Settings
    from simplenet.usage import UsageLog

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class SearchService:
    """Run one category search end to end and persist the result."""

    def __init__(
        self,
        aggregator: Aggregator,
        summarizer: Summarizer,
        store: ResultStore,
        *,
        on_summary_failure: Literal["placeholder", "abort"] = "placeholder",
        placeholder_summary: str = "Summary unavailable.",
    ) -> None:
        self._aggregator = aggregator
        self._summarizer = summarizer
        self._store = store
        self._on_summary_failure = on_summary_failure
        self._placeholder_summary = placeholder_summary

    async def search(self, category: Category | str) -> SearchResult:
        """Aggregate, summarize, and store a search for ``category``.

        Raises:
            InvalidCategoryError: Unknown category; nothing is fetched.
            SummarizationFailedError: Only when the policy is ``abort``.
            PersistenceUnavailableError: The result could not be stored.
        """
        parsed = Category.parse(category)
        request_id = generate_request_id()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id, category=parsed.value
        ):
            with stage_logging_context("aggregate"):
                bundle = await self._aggregator.aggregate(parsed)

            with stage_logging_context("summarize") as log:
                try:
                    summary = await self._summarizer.summarize(bundle, parsed)
                except SummarizationFailedError as exc:
                    if self._on_summary_failure == "abort":
                        raise
                    log.warning("summary_placeholder_used", error=str(exc))
                    summary = self._placeholder_summary

            with stage_logging_context("store"):
                result_id = await asyncio.to_thread(
                    self._store.create, parsed, bundle, summary
                )

            result = await asyncio.to_thread(self._store.get, result_id)
            if result is None:
                raise PersistenceUnavailableError(
                    f"Result {result_id} missing immediately after insert"
                )
            return result


# ---------------------------------------------------------------------------
# Runtime wiring
# ---------------------------------------------------------------------------


@dataclass
class Runtime:
    """Process-wide components built from settings."""

    settings: Settings
    sink: UsageLog
    client: httpx.AsyncClient
    store: ResultStore
    aggregator: Aggregator
    summarizer: Summarizer
    search: SearchService
    relay: RelayDispatcher

    async def aclose(self) -> None:
        await self.relay.aclose()
        await self.client.aclose()


def build_runtime(
    settings: Settings,
    *,
    sink: UsageLog | None = None,
    client: httpx.AsyncClient | None = None,
) -> Runtime:
    """Wire store, adapters, summarizer, search service, and relay."""
    usage_sink = sink or JsonlUsageSink(settings.usage.directory)
    http_client = client or build_http_client()
    store = ResultStore(settings.store.database_path, timeout=settings.store.timeout)
    aggregator = Aggregator(default_adapters(settings, usage_sink, http_client))
    summarizer = Summarizer(settings.llm, usage_sink)
    search = SearchService(
        aggregator,
        summarizer,
        store,
        on_summary_failure=settings.llm.on_failure,
        placeholder_summary=settings.llm.placeholder_summary,
    )
    relay = RelayDispatcher(store, settings.relay, usage_sink, client=http_client)
    return Runtime(
        settings=settings,
        sink=usage_sink,
        client=http_client,
        store=store,
        aggregator=aggregator,
        summarizer=summarizer,
        search=search,
        relay=relay,
    )
