"""API request/response models for search, results, and relay."""

from __future__ import annotations

from pydantic import BaseModel, Field

from simplenet.models import Category, SearchResult


class SearchRequest(BaseModel):
    """Request payload for running a category search.

    ``category`` stays a plain string so an unknown value reaches
    ``Category.parse`` and is reported the same way as from the CLI.
    """

    category: str = Field(min_length=1)


class CategoryListResponse(BaseModel):
    """Response for the supported-category listing."""

    categories: list[Category]


class ResultListResponse(BaseModel):
    """Response payload for recent stored results."""

    results: list[SearchResult]


class RelayResponse(BaseModel):
    """Response for a relay request that was accepted."""

    status: str = "accepted"
    result_id: str
    delay_seconds: float = Field(ge=0.0)
