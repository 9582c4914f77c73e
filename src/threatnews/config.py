"""Configuration models and helpers for the Threat News pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterable, List, Type, TypeVar

from limits import parse
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from threatnews.models import Category

__all__ = [
    "CategoryFeeds",
    "DEFAULT_DB_PATH",
    "DEFAULT_FEEDS_PATH",
    "DEFAULT_SCORING_PATH",
    "FeedsConfig",
    "KeywordWeight",
    "ScoringConfig",
    "Settings",
    "ThreatConfig",
]

DATA_DIR = Path(__file__).resolve().parents[2] / "data"
DEFAULT_FEEDS_PATH = DATA_DIR / "feeds.json"
DEFAULT_SCORING_PATH = DATA_DIR / "scoring.json"
DEFAULT_DB_PATH = Path("news.db")

DEFAULT_DETECT_LANGUAGES = ("en", "de", "fr", "es", "ru", "zh-cn")
DEFAULT_ALLOWED_LANGUAGES = ("en",)
DEFAULT_RATE_LIMIT = "10 per 5 seconds"

_ConfigT = TypeVar("_ConfigT", bound=BaseModel)


def _load_json_config(model: Type[_ConfigT], config_path: Path) -> _ConfigT:
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc


def _dump_json_config(config: BaseModel, config_path: Path) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.model_dump_json(indent=2), encoding="utf-8")


class CategoryFeeds(BaseModel):
    """Feed URLs that are filed under a single category."""

    category: Category
    feeds: List[str] = Field(default_factory=list)


class FeedsConfig(BaseModel):
    """Feeds to ingest and the static source to category mapping."""

    sources: List[str] = Field(
        default_factory=list,
        description="Feed URLs fetched on every ingestion round, in order",
    )
    categories: List[CategoryFeeds] = Field(
        default_factory=list,
        description="Exact feed URL lists per category, checked in order",
    )
    default_category: Category = Category.GENERAL

    @field_validator("sources")
    @classmethod
    def _dedupe_sources(cls, value: List[str]) -> List[str]:
        seen: set[str] = set()
        ordered: List[str] = []
        for source in value:
            source = source.strip()
            if source and source not in seen:
                seen.add(source)
                ordered.append(source)
        return ordered

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "FeedsConfig":
        """Load feed configuration from a JSON file."""

        return _load_json_config(cls, Path(path) if path else DEFAULT_FEEDS_PATH)

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the configuration back to disk as JSON."""

        _dump_json_config(self, Path(path) if path else DEFAULT_FEEDS_PATH)

    def iter_sources(self) -> Iterable[str]:
        return iter(self.sources)


class KeywordWeight(BaseModel):
    """A keyword phrase and the rank it contributes when present."""

    phrase: str = Field(..., min_length=1)
    weight: int = Field(..., ge=0)

    @field_validator("phrase")
    @classmethod
    def _normalise_phrase(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("keyword phrase must not be blank")
        return value


class ScoringConfig(BaseModel):
    """Per-category keyword tables used by the rank scorer."""

    categories: Dict[Category, List[KeywordWeight]] = Field(default_factory=dict)
    fallback: List[KeywordWeight] = Field(
        default_factory=list,
        description="Keywords used for categories without a dedicated table",
    )

    @model_validator(mode="after")
    def _dedupe_phrases(self) -> "ScoringConfig":
        self.categories = {
            category: _first_weight_per_phrase(keywords)
            for category, keywords in self.categories.items()
        }
        self.fallback = _first_weight_per_phrase(self.fallback)
        return self

    def keywords_for(self, category: Category | str) -> List[KeywordWeight]:
        """Return the keyword table for ``category`` or the fallback table."""

        try:
            key = Category(category)
        except ValueError:
            return self.fallback
        return self.categories.get(key, self.fallback)

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "ScoringConfig":
        """Load keyword tables from a JSON file."""

        return _load_json_config(cls, Path(path) if path else DEFAULT_SCORING_PATH)

    def dump(self, path: Path | str | None = None) -> None:
        _dump_json_config(self, Path(path) if path else DEFAULT_SCORING_PATH)


def _first_weight_per_phrase(keywords: List[KeywordWeight]) -> List[KeywordWeight]:
    seen: set[str] = set()
    unique: List[KeywordWeight] = []
    for keyword in keywords:
        if keyword.phrase in seen:
            continue
        seen.add(keyword.phrase)
        unique.append(keyword)
    return unique


class ThreatConfig(BaseModel):
    """Fixed thresholds that turn an average rank into a threat label."""

    min_articles: int = Field(default=5, ge=1)
    elevated_at: float = Field(default=1.6, description="Lowest mean rank labelled elevated")
    critical_above: float = Field(default=3.5, description="Mean ranks above this are critical")
    insufficient_phrase: str = "No Worries (Insufficient Data)"
    low_phrase: str = "No Worries"
    elevated_phrase: str = "Attention!"
    critical_phrase: str = "Code Red"

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "ThreatConfig":
        if self.elevated_at > self.critical_above:
            raise ValueError("elevated_at must not exceed critical_above")
        return self


def _split_env_list(raw: str | None, default: Iterable[str]) -> List[str]:
    if not raw:
        return list(default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime settings, usually read from the environment."""

    db_path: Path = DEFAULT_DB_PATH
    feeds_path: Path = DEFAULT_FEEDS_PATH
    scoring_path: Path = DEFAULT_SCORING_PATH
    fetch_interval_minutes: float = Field(default=15, gt=0)
    fetch_timeout: float = Field(default=10, gt=0)
    max_workers: int | None = Field(default=None, ge=1)
    allowed_languages: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_LANGUAGES))
    detect_languages: List[str] = Field(default_factory=lambda: list(DEFAULT_DETECT_LANGUAGES))
    openai_api_key: str | None = None
    summary_model: str = "gpt-4o-mini"
    rate_limit: str | None = Field(
        default=DEFAULT_RATE_LIMIT,
        description="Shared API request limit in `limits` notation, None to disable",
    )
    threat: ThreatConfig = Field(default_factory=ThreatConfig)

    @field_validator("rate_limit")
    @classmethod
    def _parse_rate_limit(cls, value: str | None) -> str | None:
        if value is None or value.strip().lower() in {"", "off", "none"}:
            return None
        parse(value)
        return value.strip()

    @model_validator(mode="after")
    def _allowed_languages_are_detectable(self) -> "Settings":
        missing = sorted(set(self.allowed_languages) - set(self.detect_languages))
        if missing:
            self.detect_languages = [*self.detect_languages, *missing]
        return self

    @classmethod
    def from_env(cls, environ: Dict[str, str] | None = None) -> "Settings":
        """Build settings from ``THREATNEWS_*`` variables and ``OPENAI_API_KEY``."""

        env = os.environ if environ is None else environ
        values: Dict[str, object] = {
            "allowed_languages": _split_env_list(
                env.get("THREATNEWS_LANGUAGES"), DEFAULT_ALLOWED_LANGUAGES
            ),
            "detect_languages": _split_env_list(
                env.get("THREATNEWS_DETECT_LANGUAGES"), DEFAULT_DETECT_LANGUAGES
            ),
            "openai_api_key": env.get("OPENAI_API_KEY") or None,
        }
        optional = {
            "db_path": "THREATNEWS_DB_PATH",
            "feeds_path": "THREATNEWS_FEEDS_PATH",
            "scoring_path": "THREATNEWS_SCORING_PATH",
            "fetch_interval_minutes": "THREATNEWS_FETCH_INTERVAL_MINUTES",
            "fetch_timeout": "THREATNEWS_FETCH_TIMEOUT",
            "max_workers": "THREATNEWS_MAX_WORKERS",
            "summary_model": "THREATNEWS_SUMMARY_MODEL",
            "rate_limit": "THREATNEWS_RATE_LIMIT",
        }
        for field, variable in optional.items():
            raw = env.get(variable)
            if raw:
                values[field] = raw

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ValueError(f"Invalid THREATNEWS_* environment settings\n{exc}") from exc

    @property
    def fetch_interval_seconds(self) -> float:
        return self.fetch_interval_minutes * 60
