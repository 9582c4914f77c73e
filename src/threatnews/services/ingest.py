"""Concurrent feed ingestion and the periodic scheduler that drives it."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, List, Sequence

import feedparser
import requests
from pydantic import ValidationError

from threatnews.config import FeedsConfig, ScoringConfig
from threatnews.models import Article, Category, InsertOutcome, RoundReport, SourceReport
from threatnews.services.language import LanguageFilter
from threatnews.services.ranking import classify_source, rank_score
from threatnews.services.sanitizer import sanitize
from threatnews.services.summarizer import Summarizer
from threatnews.storage import ArticleStore, StorageError

__all__ = [
    "DEFAULT_HEADERS",
    "FeedError",
    "FeedIngestor",
    "IngestScheduler",
    "entry_image_url",
    "entry_published_at",
    "fetch_feed",
]

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/108.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "application/rss+xml,application/atom+xml,application/xml;q=0.9,"
        "text/xml;q=0.8,*/*;q=0.5"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


class FeedError(Exception):
    """Raised when a feed response cannot be parsed into items."""


def fetch_feed(url: str, session: Any, timeout: float = FETCH_TIMEOUT) -> Any:
    """Download ``url`` through ``session`` and parse it as RSS or Atom."""

    response = session.get(url, timeout=timeout)
    response.raise_for_status()

    parsed = feedparser.parse(response.content)
    if parsed.get("bozo") and not parsed.get("entries"):
        raise FeedError(f"Malformed feed {url}: {parsed.get('bozo_exception')}")
    return parsed


def _struct_to_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=UTC)
    except (TypeError, ValueError):
        return None


def entry_published_at(entry: Any, feed: Any, fallback: datetime) -> datetime:
    """Return the item's publication time, else the feed's, else ``fallback``."""

    feed = feed or {}
    for candidate in (
        entry.get("published_parsed"),
        entry.get("updated_parsed"),
        feed.get("published_parsed"),
        feed.get("updated_parsed"),
    ):
        parsed = _struct_to_datetime(candidate)
        if parsed is not None:
            return parsed
    return fallback


def entry_image_url(entry: Any) -> str | None:
    """Pick the first image attached to a feed item, if any."""

    for thumbnail in entry.get("media_thumbnail") or []:
        if thumbnail.get("url"):
            return thumbnail["url"]

    for media in entry.get("media_content") or []:
        url = media.get("url")
        if not url:
            continue
        medium = media.get("medium")
        media_type = str(media.get("type") or "")
        if medium == "image" or media_type.startswith("image/") or (not medium and not media_type):
            return url

    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type") or "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]

    image = entry.get("image")
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


def _raw_description(entry: Any) -> str:
    description = entry.get("summary") or entry.get("description")
    if description:
        return description
    for content in entry.get("content") or []:
        if content.get("value"):
            return content["value"]
    return ""


class FeedIngestor:
    """Fetch feeds, turn their items into ranked articles and store them."""

    def __init__(
        self,
        store: ArticleStore,
        language_filter: LanguageFilter,
        summarizer: Summarizer,
        scoring: ScoringConfig,
        feeds: FeedsConfig,
        *,
        session: requests.Session | None = None,
        timeout: float = FETCH_TIMEOUT,
        max_workers: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.language_filter = language_filter
        self.summarizer = summarizer
        self.scoring = scoring
        self.feeds = feeds
        self.timeout = timeout
        self.max_workers = max_workers
        self._clock = clock or (lambda: datetime.now(UTC))
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)

    def build_article(
        self, entry: Any, feed: Any, source: str, category: Category
    ) -> Article | None:
        """Map one feed item onto an :class:`Article`.

        Returns ``None`` for items without a link or in a language that is
        not allowed.
        """

        link = (entry.get("link") or "").strip()
        if not link:
            logger.info("Skipping item without link: %s (Source: %s)", entry.get("title"), source)
            return None

        title = sanitize(entry.get("title"))
        description = sanitize(_raw_description(entry))

        language = self.language_filter.detect(f"{title} {description}")
        if language not in self.language_filter.allowed:
            logger.info(
                "Skipping article in language %s: %s (Source: %s)", language, title, source
            )
            return None

        return Article(
            title=title,
            description=description,
            summary=self.summarizer.summarize(description),
            image_url=entry_image_url(entry),
            url=link,
            source_url=source,
            published_at=entry_published_at(entry, feed, self._clock()),
            rank=rank_score(title, description, category, self.scoring),
            category=category,
        )

    def ingest_source(self, source: str) -> SourceReport:
        """Fetch a single feed and store its new items.

        Network and parse failures are logged and recorded on the report; they
        never propagate to the caller.  Items whose URL is already stored are
        counted as duplicates without being summarised again.
        """

        category = classify_source(source, self.feeds)
        report = SourceReport(source=source, category=category)

        try:
            parsed = fetch_feed(source, self._session, self.timeout)
        except (requests.RequestException, FeedError) as exc:
            logger.warning("Error parsing feed from %s: %s", source, exc)
            report.error = str(exc)
            return report

        feed_meta = parsed.get("feed") or {}
        for entry in parsed.get("entries") or []:
            report.fetched += 1
            link = (entry.get("link") or "").strip()
            try:
                if link and self.store.get(link) is not None:
                    report.duplicates += 1
                    continue
                article = self.build_article(entry, feed_meta, source, category)
            except StorageError as exc:
                logger.error("Error looking up article %s: %s", link, exc)
                report.failed += 1
                continue
            except ValidationError as exc:
                logger.warning("Invalid item from %s: %s", source, exc)
                report.failed += 1
                continue

            if article is None:
                if link:
                    report.skipped_language += 1
                else:
                    report.skipped_invalid += 1
                continue

            try:
                outcome = self.store.insert(article)
            except StorageError as exc:
                logger.error("Error inserting article %s: %s", article.url, exc)
                report.failed += 1
                continue

            if outcome is InsertOutcome.INSERTED:
                report.inserted += 1
            else:
                report.duplicates += 1

        logger.info(
            "Ingested %s: %d items, %d new, %d duplicates",
            source,
            report.fetched,
            report.inserted,
            report.duplicates,
        )
        return report

    def run_round(self, sources: Iterable[str] | None = None) -> RoundReport:
        """Ingest every source concurrently and wait for all of them."""

        source_list = list(self.feeds.iter_sources() if sources is None else sources)
        started_at = self._clock()

        if not source_list:
            logger.warning("No feed sources configured; nothing to ingest")
            return RoundReport(started_at=started_at, finished_at=self._clock())

        workers = self.max_workers or len(source_list)
        reports: List[SourceReport] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="feed") as executor:
            futures = [executor.submit(self.ingest_source, source) for source in source_list]
            for source, future in zip(source_list, futures):
                try:
                    reports.append(future.result())
                except Exception as exc:  # noqa: BLE001 - one failing source must not end the round
                    logger.exception("Unexpected failure while ingesting %s", source)
                    reports.append(
                        SourceReport(
                            source=source,
                            category=classify_source(source, self.feeds),
                            error=str(exc),
                        )
                    )

        round_report = RoundReport(
            started_at=started_at, finished_at=self._clock(), sources=reports
        )
        logger.info(
            "News caching job completed: %d new articles, %d/%d sources failed",
            round_report.inserted,
            len(round_report.failed_sources),
            len(reports),
        )
        return round_report


class IngestScheduler:
    """Run ingestion rounds back to back on a fixed period.

    Rounds execute on the scheduler's own thread, so a round never starts
    before the previous one has finished.  :meth:`stop` is honoured between
    rounds; fetches already in flight run to completion.
    """

    def __init__(
        self,
        ingestor: FeedIngestor,
        sources: Sequence[str] | None = None,
        *,
        interval: float = 15 * 60,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.ingestor = ingestor
        self.sources = list(sources) if sources is not None else None
        self.interval = interval
        self.last_report: RoundReport | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> RoundReport:
        """Run exactly one round synchronously."""

        report = self.ingestor.run_round(self.sources)
        self.last_report = report
        return report

    def run_forever(self) -> None:
        """Run rounds until :meth:`stop` is called."""

        while not self._stop.is_set():
            started = time.monotonic()
            logger.info("Running scheduled news caching job...")
            try:
                self.run_once()
            except Exception:  # noqa: BLE001 - the next round is the retry
                logger.exception("Ingestion round failed")
            elapsed = time.monotonic() - started
            if self._stop.wait(max(self.interval - elapsed, 0)):
                break

    def start(self) -> threading.Thread:
        """Start :meth:`run_forever` on a daemon thread."""

        if self.is_running:
            raise RuntimeError("Scheduler is already running")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="ingest-scheduler", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if not self._thread.is_alive():
                self._thread = None
