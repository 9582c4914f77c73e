"""Keyword rank scoring and source category classification."""

from __future__ import annotations

from threatnews.config import FeedsConfig, ScoringConfig
from threatnews.models import Category

__all__ = ["classify_source", "rank_score"]


def classify_source(source_url: str, feeds: FeedsConfig) -> Category:
    """Return the category whose feed list contains ``source_url`` exactly.

    Lists are checked in configuration order; unmatched sources get the
    configured default category.
    """

    for entry in feeds.categories:
        if source_url in entry.feeds:
            return entry.category
    return feeds.default_category


def rank_score(
    title: str,
    description: str,
    category: Category | str,
    scoring: ScoringConfig,
) -> int:
    """Sum the weights of every keyword phrase found in the article text.

    Matching is a case-insensitive substring test on ``title`` and
    ``description`` joined by a space.  A phrase counts once however often it
    occurs.  Categories without a table use ``scoring.fallback``.
    """

    content = f"{title or ''} {description or ''}".lower()
    return sum(
        keyword.weight
        for keyword in scoring.keywords_for(category)
        if keyword.phrase in content
    )
