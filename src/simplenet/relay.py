"""Delayed, at-most-once relay of stored results to a chat webhook.

``schedule`` claims the result through the store's compare-and-set and
arms one background task per result id. The task sleeps for the
configured delay, posts the formatted message, and records the outcome.
Delivery is best effort: a failure is logged and marked, never retried.

The store row doubles as the durable registry: ``recover`` re-arms any
result that was scheduled but neither posted nor marked failed, so a
restart does not drop armed relays.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from simplenet.exceptions import RelayDeliveryError
from simplenet.models import SourceKind
from simplenet.store import MarkResult
from simplenet.usage import track_usage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from simplenet.config import RelaySettings
    from simplenet.models import SearchResult
    from simplenet.store import ResultStore
    from simplenet.usage import UsageSink

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_SOURCE_FOOTERS: dict[SourceKind, str] = {
    SourceKind.YOUTUBE: "YouTube",
    SourceKind.NEWS: "News",
    SourceKind.NEWSLETTER: "Newsletter",
}


class ScheduleOutcome(StrEnum):
    """Result of asking the dispatcher to relay a stored search."""

    ACCEPTED = "accepted"
    ALREADY_SCHEDULED = "already_scheduled"
    NOT_FOUND = "not_found"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def format_relay_message(result: SearchResult) -> dict[str, Any]:
    """Build a Slack-compatible webhook payload for a stored result."""
    attachments: list[dict[str, str]] = []
    for kind, item in result.bundle.items():
        attachment = {
            "title": item.title,
            "title_link": item.url,
            "text": item.description or "",
            "footer": item.source_label or _SOURCE_FOOTERS[kind],
        }
        thumbnail = getattr(item, "thumbnail_url", None)
        if thumbnail:
            attachment["thumb_url"] = thumbnail
        attachments.append(attachment)

    heading = f"*{result.category.value.title()} digest*"
    return {"text": f"{heading}\n{result.summary}", "attachments": attachments}


class RelayDispatcher:
    """Arm one-shot delayed webhook posts for stored search results."""

    def __init__(
        self,
        store: ResultStore,
        settings: RelaySettings,
        sink: UsageSink,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._sink = sink
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout)
        self._sleep = sleep
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # -- scheduling ----------------------------------------------------------

    async def schedule(self, result_id: str) -> ScheduleOutcome:
        """Claim ``result_id`` for relay and arm its delayed delivery.

        Must be called from a running event loop; the armed task outlives
        the caller.

        Raises:
            PersistenceUnavailableError: If the store cannot be reached.
        """
        if await asyncio.to_thread(self._store.get, result_id) is None:
            logger.info("relay_not_found", result_id=result_id)
            return ScheduleOutcome.NOT_FOUND

        delay = self._settings.delay_seconds
        due_at = self._clock() + timedelta(seconds=delay)
        mark = await asyncio.to_thread(
            self._store.mark_scheduled, result_id, due_at=due_at
        )
        if mark is MarkResult.NOT_FOUND:
            return ScheduleOutcome.NOT_FOUND
        if mark is not MarkResult.OK:
            logger.info("relay_already_scheduled", result_id=result_id)
            return ScheduleOutcome.ALREADY_SCHEDULED

        self._arm(result_id, delay)
        logger.info("relay_scheduled", result_id=result_id, delay_seconds=delay)
        return ScheduleOutcome.ACCEPTED

    async def recover(self) -> int:
        """Re-arm relays left pending by a previous process.

        Returns:
            Number of relays re-armed.
        """
        now = self._clock()
        rearmed = 0
        for result in await asyncio.to_thread(self._store.pending_relays):
            if result.id in self._tasks:
                continue
            if result.relay_due_at is not None:
                delay = max(0.0, (result.relay_due_at - now).total_seconds())
            else:
                delay = self._settings.delay_seconds
            self._arm(result.id, delay)
            rearmed += 1
        if rearmed:
            logger.info("relay_recovered", count=rearmed)
        return rearmed

    def _arm(self, result_id: str, delay: float) -> None:
        task = asyncio.create_task(
            self._run(result_id, delay), name=f"relay-{result_id}"
        )
        self._tasks[result_id] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._tasks.get(result_id) is done:
                del self._tasks[result_id]

        task.add_done_callback(_forget)

    async def _run(self, result_id: str, delay: float) -> None:
        await self._sleep(delay)
        try:
            await self.deliver(result_id)
        except Exception as exc:
            logger.error(
                "relay_task_failed", result_id=result_id, error=str(exc), exc_info=True
            )

    # -- delivery ------------------------------------------------------------

    async def deliver(self, result_id: str) -> bool:
        """Format and post one result now. Returns whether it was delivered."""
        result = await asyncio.to_thread(self._store.get, result_id)
        if result is None:
            logger.warning("relay_result_missing", result_id=result_id)
            return False

        payload = format_relay_message(result)
        try:
            async with track_usage(self._sink, "webhook", "relay") as call:
                await self._post(payload)
                call.detail = f"attachments={len(payload['attachments'])}"
        except Exception as exc:
            # Any failure, a malformed URL included, takes the row out of the
            # pending set so a restart never re-sends it.
            logger.error(
                "relay_delivery_failed",
                result_id=result_id,
                error=str(exc) or type(exc).__name__,
            )
            await asyncio.to_thread(self._store.mark_relay_failed, result_id)
            return False

        await asyncio.to_thread(self._store.mark_posted, result_id)
        logger.info("relay_posted", result_id=result_id)
        return True

    async def _post(self, payload: dict[str, Any]) -> None:
        url = self._settings.webhook_url
        if not url:
            raise RelayDeliveryError("No webhook URL configured")
        response = await self._client.post(
            url, json=payload, timeout=self._settings.timeout
        )
        response.raise_for_status()

    # -- task registry -------------------------------------------------------

    def pending(self) -> list[str]:
        """Ids with an armed, not yet finished relay task."""
        return [rid for rid, task in self._tasks.items() if not task.done()]

    def cancel(self, result_id: str) -> bool:
        """Disarm a relay in this process; the stored flags are untouched."""
        task = self._tasks.get(result_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def wait(self, result_id: str) -> None:
        task = self._tasks.get(result_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel armed tasks; ``recover`` picks them up on next start."""
        for task in list(self._tasks.values()):
            task.cancel()
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
