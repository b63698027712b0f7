"""Centralized exception hierarchy for the simplenet package.

All domain-specific exceptions inherit from ``SimpleNetError`` so
callers can catch the entire family with a single ``except`` clause.
"""

from __future__ import annotations


class SimpleNetError(Exception):
    """Base exception for all simplenet errors."""


# ---------------------------------------------------------------------------
# Request errors
# ---------------------------------------------------------------------------


class InvalidCategoryError(SimpleNetError, ValueError):
    """Raised when a search names a category outside the supported set."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Unknown category: {value!r}")


# ---------------------------------------------------------------------------
# Source errors
# ---------------------------------------------------------------------------


class SourceUnavailableError(SimpleNetError):
    """Raised by a source adapter that could not produce items.

    Absorbed by the aggregator; never fatal to a search.
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


# ---------------------------------------------------------------------------
# Summarization errors
# ---------------------------------------------------------------------------


class SummarizationFailedError(SimpleNetError):
    """Raised when the text-generation call errors, times out, or is empty."""


# ---------------------------------------------------------------------------
# Persistence errors
# ---------------------------------------------------------------------------


class PersistenceUnavailableError(SimpleNetError):
    """Raised when the result store cannot read or write."""


# ---------------------------------------------------------------------------
# Relay errors
# ---------------------------------------------------------------------------


class RelayDeliveryError(SimpleNetError):
    """Raised when a webhook relay could not be delivered."""
