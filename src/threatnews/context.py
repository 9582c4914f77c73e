"""Explicitly constructed service context shared by ingestion and the API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests

from threatnews.config import FeedsConfig, ScoringConfig, Settings
from threatnews.services.ingest import FeedIngestor, IngestScheduler
from threatnews.services.language import LanguageFilter
from threatnews.services.summarizer import Summarizer
from threatnews.storage import ArticleStore

__all__ = ["ServiceContext"]

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Owns the store, the language detector and the loaded configuration."""

    settings: Settings
    store: ArticleStore
    language_filter: LanguageFilter
    summarizer: Summarizer
    feeds: FeedsConfig
    scoring: ScoringConfig
    session: requests.Session | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ServiceContext":
        """Open the store and load configuration.

        :class:`~threatnews.storage.StorageError` from opening the store is
        left to propagate; the service cannot run without it.
        """

        settings = settings or Settings.from_env()
        feeds = FeedsConfig.from_file(settings.feeds_path)
        scoring = ScoringConfig.from_file(settings.scoring_path)
        store = ArticleStore(settings.db_path)
        language_filter = LanguageFilter(
            candidates=settings.detect_languages,
            allowed=settings.allowed_languages,
        )
        summarizer = Summarizer(settings.openai_api_key, model=settings.summary_model)
        if not summarizer.enabled:
            logger.info("OPENAI_API_KEY not set; summaries use truncation")

        return cls(
            settings=settings,
            store=store,
            language_filter=language_filter,
            summarizer=summarizer,
            feeds=feeds,
            scoring=scoring,
        )

    def build_ingestor(self) -> FeedIngestor:
        return FeedIngestor(
            self.store,
            self.language_filter,
            self.summarizer,
            self.scoring,
            self.feeds,
            session=self.session,
            timeout=self.settings.fetch_timeout,
            max_workers=self.settings.max_workers,
        )

    def build_scheduler(self) -> IngestScheduler:
        return IngestScheduler(
            self.build_ingestor(),
            self.feeds.sources,
            interval=self.settings.fetch_interval_seconds,
        )
