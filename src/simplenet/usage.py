"""Append-only usage log for per-call cost and latency tracking.

Every adapter fetch, summarizer call, and relay dispatch emits one
``UsageRecord`` through an injected ``UsageSink``. The JSONL sink writes
one file per UTC day and never rewrites earlier lines, so concurrent
requests can append without coordination. Aggregation for the admin
dashboard reads the day file back and is best-effort.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class UsageRecord(BaseModel):
    """A single external call made on behalf of a search or relay."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    service: str = Field(description="youtube, news, newsletter, llm, webhook.")
    operation: str = Field(description="fetch, summarize, relay.")
    cost: float = Field(default=0.0, ge=0.0, description="Estimated USD cost.")
    success: bool = True
    response_time: float = Field(default=0.0, ge=0.0, description="Seconds.")
    detail: str = ""


class UsageSink(Protocol):
    """Destination for usage records."""

    def emit(self, record: UsageRecord) -> None: ...


class UsageLog(UsageSink, Protocol):
    """A sink whose records can be read back per day for the dashboard."""

    def read_day(self, day: date) -> list[UsageRecord]: ...


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class JsonlUsageSink:
    """Append-only JSONL sink with one file per UTC day.

    Attributes:
        directory: Folder holding ``usage-YYYY-MM-DD.jsonl`` files.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, day: date) -> Path:
        return self.directory / f"usage-{day.isoformat()}.jsonl"

    def emit(self, record: UsageRecord) -> None:
        """Append one record; a write failure is logged, never raised."""
        path = self.path_for(record.timestamp.astimezone(UTC).date())
        line = record.model_dump_json() + "\n"
        try:
            with path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
        except OSError as exc:
            logger.warning(
                "usage_write_failed",
                path=str(path),
                service=record.service,
                error=str(exc),
            )

    def read_day(self, day: date) -> list[UsageRecord]:
        """Load all readable records for ``day``; malformed lines are skipped."""
        path = self.path_for(day)
        if not path.exists():
            return []

        records: list[UsageRecord] = []
        with path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    records.append(UsageRecord.model_validate_json(stripped))
                except ValidationError:
                    logger.warning("usage_line_skipped", path=str(path), line=lineno)
        return records

    def available_days(self) -> list[date]:
        days: list[date] = []
        for path in sorted(self.directory.glob("usage-*.jsonl")):
            try:
                days.append(date.fromisoformat(path.stem.removeprefix("usage-")))
            except ValueError:
                continue
        return days


class InMemoryUsageSink:
    """Collects records in a list; used by tests and one-off CLI runs."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    def emit(self, record: UsageRecord) -> None:
        self.records.append(record)

    def for_service(self, service: str) -> list[UsageRecord]:
        return [r for r in self.records if r.service == service]

    def read_day(self, day: date) -> list[UsageRecord]:
        return [r for r in self.records if r.timestamp.astimezone(UTC).date() == day]


# ---------------------------------------------------------------------------
# Call tracking
# ---------------------------------------------------------------------------


@dataclass
class TrackedCall:
    """Mutable handle a caller fills in while the tracked call runs."""

    cost: float = 0.0
    detail: str = ""


@asynccontextmanager
async def track_usage(
    sink: UsageSink,
    service: str,
    operation: str,
) -> AsyncIterator[TrackedCall]:
    """Time the enclosed call and emit a usage record when it settles.

    The record is marked unsuccessful if the block raises; the exception
    still propagates.

    Example::

        async with track_usage(sink, "llm", "summarize") as call:
            response = await litellm.acompletion(...)
            call.cost = estimate_llm_cost(...)
    """
    call = TrackedCall()
    started = time.perf_counter()
    success = False
    try:
        yield call
        success = True
    except BaseException as exc:
        if not call.detail:
            call.detail = f"{type(exc).__name__}: {exc}"
        raise
    finally:
        record = UsageRecord(
            service=service,
            operation=operation,
            cost=call.cost,
            success=success,
            response_time=max(0.0, time.perf_counter() - started),
            detail=call.detail,
        )
        # File sinks append on a worker thread; the loop keeps serving.
        await asyncio.to_thread(sink.emit, record)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class ServiceStats(BaseModel):
    """Aggregated statistics for one service."""

    service: str
    calls: int = Field(default=0, ge=0)
    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    avg_response_time: float = Field(default=0.0, ge=0.0)
    max_response_time: float = Field(default=0.0, ge=0.0)

    @property
    def success_rate(self) -> float:
        """Percentage of successful calls."""
        if self.calls <= 0:
            return 0.0
        return self.successes / self.calls * 100


class UsageSummary(BaseModel):
    """Dashboard payload: per-service stats plus totals."""

    day: date | None = None
    services: list[ServiceStats] = Field(default_factory=list)
    total_calls: int = Field(default=0, ge=0)
    total_failures: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)


def summarize_usage(
    records: Iterable[UsageRecord],
    day: date | None = None,
) -> UsageSummary:
    """Aggregate usage records into per-service statistics.

    Args:
        records: Records to aggregate (any order).
        day: Optional day label carried through to the summary.

    Returns:
        A ``UsageSummary`` with services sorted by name.
    """
    grouped: dict[str, list[UsageRecord]] = defaultdict(list)
    for record in records:
        grouped[record.service].append(record)

    services: list[ServiceStats] = []
    for service in sorted(grouped):
        items = grouped[service]
        successes = sum(1 for r in items if r.success)
        times = [r.response_time for r in items]
        services.append(
            ServiceStats(
                service=service,
                calls=len(items),
                successes=successes,
                failures=len(items) - successes,
                total_cost=round(sum(r.cost for r in items), 6),
                avg_response_time=round(sum(times) / len(times), 4),
                max_response_time=round(max(times), 4),
            )
        )

    return UsageSummary(
        day=day,
        services=services,
        total_calls=sum(s.calls for s in services),
        total_failures=sum(s.failures for s in services),
        total_cost=round(sum(s.total_cost for s in services), 6),
    )
