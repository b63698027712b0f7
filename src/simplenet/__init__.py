"""simplenet: category digest aggregation, summarization, and relay."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("simplenet")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
