"""Tests for the simplenet exception hierarchy."""

from __future__ import annotations

import pytest

from simplenet.exceptions import (
    InvalidCategoryError,
    PersistenceUnavailableError,
    RelayDeliveryError,
    SimpleNetError,
    SourceUnavailableError,
    SummarizationFailedError,
)


@pytest.mark.parametrize(
    "exc",
    [
        InvalidCategoryError("gaming"),
        SourceUnavailableError("youtube", "quota exceeded"),
        SummarizationFailedError("empty"),
        PersistenceUnavailableError("disk"),
        RelayDeliveryError("no url"),
    ],
)
def test_all_inherit_from_base(exc: SimpleNetError) -> None:
    assert isinstance(exc, SimpleNetError)


def test_invalid_category_carries_value() -> None:
    exc = InvalidCategoryError("gaming")
    assert exc.value == "gaming"
    assert "gaming" in str(exc)
    assert isinstance(exc, ValueError)


def test_source_unavailable_message() -> None:
    exc = SourceUnavailableError("news", "HTTP 503")
    assert exc.source == "news"
    assert exc.reason == "HTTP 503"
    assert str(exc) == "news unavailable: HTTP 503"
