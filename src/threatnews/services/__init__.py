"""Service layer entry points for Threat News."""

from __future__ import annotations

from .ingest import FeedError, FeedIngestor, IngestScheduler, fetch_feed  # noqa: F401
from .language import LanguageFilter  # noqa: F401
from .ranking import classify_source, rank_score  # noqa: F401
from .sanitizer import sanitize  # noqa: F401
from .summarizer import Summarizer, truncate  # noqa: F401

__all__ = [
    "FeedError",
    "FeedIngestor",
    "IngestScheduler",
    "LanguageFilter",
    "Summarizer",
    "classify_source",
    "fetch_feed",
    "rank_score",
    "sanitize",
    "truncate",
]
