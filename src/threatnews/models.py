"""Domain models used across the application."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    """Closed set of categories an article can be filed under."""

    CYBERSECURITY = "Cybersecurity"
    TECH = "Tech"
    GENERAL = "General"


class SortOrder(str, Enum):
    PUBLISHED_AT = "publishedAt"
    RANK = "rank"


class InsertOutcome(str, Enum):
    """Result of :meth:`threatnews.storage.ArticleStore.insert`."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class ThreatLevel(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    LOW = "low"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class Article(BaseModel):
    """Representation of a ranked feed article."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str = Field(default="")
    description: str = Field(default="", description="Sanitised plain text description")
    summary: Optional[str] = None
    image_url: Optional[str] = None
    url: str = Field(..., min_length=1, description="Canonical article link, unique per store")
    source_url: str = Field(..., description="Feed the article came from")
    published_at: datetime
    rank: int = Field(default=0, ge=0)
    category: Category = Category.GENERAL


class ArticleQuery(BaseModel):
    """Filters accepted by :meth:`threatnews.storage.ArticleStore.query`.

    Every filter is optional and the ones that are set are combined with AND.
    ``start`` and ``end`` are inclusive; a plain :class:`~datetime.date` passed
    as ``end`` covers the whole day.
    """

    source: Optional[str] = None
    category: Optional[str] = None
    search: Optional[str] = None
    limit: int = Field(default=20, ge=1)
    start: Optional[datetime | date] = None
    end: Optional[datetime | date] = None
    sort_by: SortOrder = SortOrder.PUBLISHED_AT

    @field_validator("source", "category", "search")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value or value.lower() == "all":
            return None
        return value

    @field_validator("sort_by", mode="before")
    @classmethod
    def _unknown_sort_is_default(cls, value: object) -> object:
        if isinstance(value, SortOrder):
            return value
        if value == SortOrder.RANK.value:
            return SortOrder.RANK
        return SortOrder.PUBLISHED_AT


class ThreatScore(BaseModel):
    """Aggregate threat level over recently published articles."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    score: float
    phrase: str
    threat_level: ThreatLevel
    article_count: int = 0
    window_hours: float = 24


class SourceReport(BaseModel):
    """Counters collected while ingesting a single feed."""

    source: str
    category: Category = Category.GENERAL
    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped_language: int = 0
    skipped_invalid: int = 0
    failed: int = 0
    error: Optional[str] = None


class RoundReport(BaseModel):
    """Result of one pass over every configured feed."""

    started_at: datetime
    finished_at: datetime
    sources: List[SourceReport] = Field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(report.inserted for report in self.sources)

    @property
    def failed_sources(self) -> List[str]:
        return [report.source for report in self.sources if report.error]
