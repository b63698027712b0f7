"""FastAPI application for category search, stored results, and relay."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from simplenet import __version__
from simplenet.api.auth import AdminAuthError, require_admin_token
from simplenet.api.models import (
    CategoryListResponse,
    RelayResponse,
    ResultListResponse,
    SearchRequest,
)
from simplenet.config import Settings
from simplenet.exceptions import (
    InvalidCategoryError,
    PersistenceUnavailableError,
    SummarizationFailedError,
)
from simplenet.models import Category, SearchResult
from simplenet.pipeline import Runtime, build_runtime
from simplenet.relay import ScheduleOutcome
from simplenet.usage import UsageSummary, summarize_usage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    runtime: Runtime | None = None,
) -> FastAPI:
    """Create and configure the FastAPI server app.

    A prebuilt ``runtime`` (tests, embedding) takes precedence over
    ``settings``; otherwise one is wired from settings.
    """
    if runtime is not None:
        app_settings = runtime.settings
        app_runtime = runtime
    else:
        app_settings = settings or Settings.load()
        app_runtime = build_runtime(app_settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if app_settings.relay.recover_on_startup:
            try:
                await app_runtime.relay.recover()
            except PersistenceUnavailableError as exc:
                logger.error("relay_recover_failed", error=str(exc))
        try:
            yield
        finally:
            await app_runtime.aclose()

    app = FastAPI(title="simplenet API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = app_settings
    app.state.runtime = app_runtime

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/categories", response_model=CategoryListResponse)
    async def list_categories() -> CategoryListResponse:
        return CategoryListResponse(categories=list(Category))

    @app.post("/api/search", response_model=SearchResult)
    async def search(payload: SearchRequest) -> SearchResult:
        try:
            return await app_runtime.search.search(payload.category)
        except InvalidCategoryError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except SummarizationFailedError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except PersistenceUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.get("/api/results", response_model=ResultListResponse)
    async def list_results(
        category: str | None = None,
        limit: int | None = Query(default=None, ge=1, le=500),
    ) -> ResultListResponse:
        try:
            parsed = Category.parse(category) if category is not None else None
            results = await asyncio.to_thread(
                app_runtime.store.list_recent,
                limit=limit or app_settings.api.recent_limit,
                category=parsed,
            )
        except InvalidCategoryError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PersistenceUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return ResultListResponse(results=results)

    @app.get("/api/results/{result_id}", response_model=SearchResult)
    async def get_result(result_id: str) -> SearchResult:
        try:
            result = await asyncio.to_thread(app_runtime.store.get, result_id)
        except PersistenceUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if result is None:
            raise HTTPException(status_code=404, detail="Result not found")
        return result

    @app.post(
        "/api/results/{result_id}/relay",
        response_model=RelayResponse,
        status_code=202,
    )
    async def relay_result(result_id: str) -> RelayResponse:
        try:
            outcome = await app_runtime.relay.schedule(result_id)
        except PersistenceUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if outcome is ScheduleOutcome.NOT_FOUND:
            raise HTTPException(status_code=404, detail="Result not found")
        if outcome is ScheduleOutcome.ALREADY_SCHEDULED:
            raise HTTPException(status_code=409, detail="Relay already scheduled")
        return RelayResponse(
            result_id=result_id,
            delay_seconds=app_settings.relay.delay_seconds,
        )

    @app.get("/api/admin/usage", response_model=UsageSummary)
    async def usage_dashboard(
        day: date | None = None,
        x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
    ) -> UsageSummary:
        try:
            require_admin_token(x_admin_token, app_settings.api.admin_token)
        except AdminAuthError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
        selected = day or datetime.now(tz=UTC).date()
        records = await asyncio.to_thread(app_runtime.sink.read_day, selected)
        return summarize_usage(records, day=selected)

    return app
