"""SQLite-backed persistence for search results and their relay state.

Every operation opens its own connection, so the store is safe to share
across threads and event-loop tasks. ``mark_scheduled`` is a single
conditional UPDATE; SQLite's write lock makes it a compare-and-set, so
exactly one concurrent caller wins the false -> true transition.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from simplenet.exceptions import PersistenceUnavailableError
from simplenet.models import Category, ContentBundle, SearchResult

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS search_results (
    id TEXT PRIMARY KEY,
    category TEXT NOT NULL,
    bundle TEXT NOT NULL,
    summary TEXT NOT NULL,
    relay_scheduled INTEGER NOT NULL DEFAULT 0,
    relay_posted INTEGER NOT NULL DEFAULT 0,
    relay_failed INTEGER NOT NULL DEFAULT 0,
    relay_due_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_results_created
    ON search_results (created_at);
CREATE INDEX IF NOT EXISTS idx_search_results_relay
    ON search_results (relay_scheduled, relay_posted, relay_failed);
"""


class MarkResult(StrEnum):
    """Outcome of a relay-state transition."""

    OK = "ok"
    ALREADY_SCHEDULED = "already_scheduled"
    NOT_SCHEDULED = "not_scheduled"
    NOT_FOUND = "not_found"


class ResultStore:
    """Persist ``SearchResult`` records keyed by a generated id."""

    def __init__(self, path: Path, timeout: float = 30.0) -> None:
        self._path = path
        self._timeout = timeout
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceUnavailableError(
                f"Cannot create database directory: {exc}"
            ) from exc
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, run the body in one transaction, and close."""
        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(
                self._path,
                timeout=self._timeout,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("store_error", path=str(self._path), error=str(exc))
            raise PersistenceUnavailableError(f"Result store unavailable: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    # -- writes --------------------------------------------------------------

    def create(
        self,
        category: Category,
        bundle: ContentBundle,
        summary: str,
    ) -> str:
        """Insert a new result with both relay flags false and return its id."""
        result_id = uuid.uuid4().hex
        created_at = datetime.now(tz=UTC)
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO search_results "
                "(id, category, bundle, summary, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    result_id,
                    Category.parse(category).value,
                    bundle.model_dump_json(),
                    summary,
                    created_at.isoformat(),
                ),
            )
        logger.info("result_created", result_id=result_id, category=str(category))
        return result_id

    def mark_scheduled(
        self,
        result_id: str,
        due_at: datetime | None = None,
    ) -> MarkResult:
        """Atomically flip ``relay_scheduled`` from false to true.

        Returns:
            ``OK`` for the single winning caller, ``ALREADY_SCHEDULED`` for
            everyone else, ``NOT_FOUND`` for an unknown id.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE search_results SET relay_scheduled = 1, relay_due_at = ? "
                "WHERE id = ? AND relay_scheduled = 0",
                (due_at.isoformat() if due_at else None, result_id),
            )
            if cursor.rowcount == 1:
                return MarkResult.OK
            return (
                MarkResult.ALREADY_SCHEDULED
                if self._exists(conn, result_id)
                else MarkResult.NOT_FOUND
            )

    def mark_posted(self, result_id: str) -> MarkResult:
        """Set ``relay_posted``; repeating the call is a no-op success."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE search_results SET relay_posted = 1 "
                "WHERE id = ? AND relay_scheduled = 1",
                (result_id,),
            )
            if cursor.rowcount == 1:
                return MarkResult.OK
            return (
                MarkResult.NOT_SCHEDULED
                if self._exists(conn, result_id)
                else MarkResult.NOT_FOUND
            )

    def mark_relay_failed(self, result_id: str) -> MarkResult:
        """Record that an armed relay was attempted and not delivered."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE search_results SET relay_failed = 1 "
                "WHERE id = ? AND relay_scheduled = 1 AND relay_posted = 0",
                (result_id,),
            )
            if cursor.rowcount == 1:
                return MarkResult.OK
            return (
                MarkResult.NOT_SCHEDULED
                if self._exists(conn, result_id)
                else MarkResult.NOT_FOUND
            )

    # -- reads ---------------------------------------------------------------

    def get(self, result_id: str) -> SearchResult | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM search_results WHERE id = ?", (result_id,)
            ).fetchone()
        return _row_to_result(row) if row is not None else None

    def list_recent(
        self,
        limit: int = 20,
        category: Category | None = None,
    ) -> list[SearchResult]:
        query = "SELECT * FROM search_results"
        params: list[object] = []
        if category is not None:
            query += " WHERE category = ?"
            params.append(category.value)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_result(row) for row in rows]

    def pending_relays(self) -> list[SearchResult]:
        """Results armed for relay that have neither posted nor failed."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM search_results "
                "WHERE relay_scheduled = 1 AND relay_posted = 0 AND relay_failed = 0 "
                "ORDER BY relay_due_at"
            ).fetchall()
        return [_row_to_result(row) for row in rows]

    @staticmethod
    def _exists(conn: sqlite3.Connection, result_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM search_results WHERE id = ?", (result_id,)
        ).fetchone()
        return row is not None


def _row_to_result(row: sqlite3.Row) -> SearchResult:
    due_at = row["relay_due_at"]
    return SearchResult(
        id=row["id"],
        category=Category(row["category"]),
        bundle=ContentBundle.model_validate_json(row["bundle"]),
        summary=row["summary"],
        relay_scheduled=bool(row["relay_scheduled"]),
        relay_posted=bool(row["relay_posted"]),
        relay_failed=bool(row["relay_failed"]),
        relay_due_at=datetime.fromisoformat(due_at) if due_at else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )
