"""Common adapter contract: timeout, usage tracking, error normalization."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

import httpx
import structlog

from simplenet.exceptions import SourceUnavailableError
from simplenet.models import ArticleItem, Category, SourceKind, VideoItem
from simplenet.usage import track_usage

if TYPE_CHECKING:
    from simplenet.usage import TrackedCall, UsageSink

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

FetchResult = VideoItem | list[ArticleItem] | None


class SourceAdapter(ABC):
    """Produce normalized items for a category from one external source.

    Subclasses implement ``_fetch``. ``fetch`` bounds it with the per-call
    timeout, records usage, and converts every failure into
    ``SourceUnavailableError``.
    """

    kind: ClassVar[SourceKind]

    def __init__(
        self,
        sink: UsageSink,
        *,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sink = sink
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )

    @property
    def name(self) -> str:
        return self.kind.value

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, category: Category) -> FetchResult:
        """Fetch items for ``category``.

        Raises:
            SourceUnavailableError: On timeout, transport, HTTP, or parse
                failure, or when the source is not configured.
        """
        try:
            async with track_usage(self._sink, self.name, "fetch") as call:
                async with asyncio.timeout(self._timeout):
                    return await self._fetch(category, call)
        except SourceUnavailableError:
            raise
        except TimeoutError as exc:
            raise SourceUnavailableError(
                self.name, f"timed out after {self._timeout:g}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailableError(
                self.name, f"HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceUnavailableError(self.name, str(exc) or type(exc).__name__) from exc

    @abstractmethod
    async def _fetch(self, category: Category, call: TrackedCall) -> FetchResult:
        """Source-specific fetch and normalization."""
