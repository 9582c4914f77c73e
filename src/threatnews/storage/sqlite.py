"""SQLite backed article store with duplicate-safe inserts."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterator, List

from threatnews.config import ThreatConfig
from threatnews.models import (
    Article,
    ArticleQuery,
    Category,
    InsertOutcome,
    SortOrder,
    ThreatScore,
)
from threatnews.storage import StorageError
from threatnews.threat import assess_threat

__all__ = ["ArticleStore", "format_timestamp", "parse_timestamp"]

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

SCHEMA = """
CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT,
    summary TEXT,
    imageUrl TEXT,
    url TEXT NOT NULL UNIQUE,
    sourceUrl TEXT NOT NULL,
    publishedAt DATETIME DEFAULT CURRENT_TIMESTAMP,
    rank INTEGER DEFAULT 0,
    category TEXT DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_sourceUrl ON articles (sourceUrl);
CREATE INDEX IF NOT EXISTS idx_publishedAt ON articles (publishedAt);
"""

ARTICLE_COLUMNS = (
    "title, description, summary, imageUrl, url, sourceUrl, publishedAt, rank, category"
)

INSERT_SQL = (
    f"INSERT INTO articles ({ARTICLE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
    "ON CONFLICT(url) DO NOTHING"
)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as the UTC text stored in ``publishedAt``.

    Naive datetimes are taken to be UTC already.
    """

    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(raw: str | None) -> datetime:
    """Parse a stored ``publishedAt`` value into an aware UTC datetime."""

    if not raw:
        return datetime.fromtimestamp(0, UTC)
    try:
        parsed = datetime.strptime(raw[:19], TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _lower_bound(value: date | datetime) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return f"{value.isoformat()} 00:00:00"


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value else value


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_article(row: sqlite3.Row) -> Article:
    try:
        category = Category(row["category"])
    except ValueError:
        category = Category.GENERAL

    return Article(
        title=row["title"] or "",
        description=row["description"] or "",
        summary=row["summary"],
        image_url=row["imageUrl"] or None,
        url=row["url"],
        source_url=row["sourceUrl"],
        published_at=parse_timestamp(row["publishedAt"]),
        rank=max(int(row["rank"] or 0), 0),
        category=category,
    )


class ArticleStore:
    """Flat, append-only store of articles keyed by their canonical URL.

    Each operation opens its own short-lived connection, so a single store can
    be shared between ingestion worker threads and API requests.  A connection
    is never used by two threads at once, but a streaming export may hand it
    from one thread to the next between rows.  SQLite's own locking
    serialises writers; readers see the last committed state.
    """

    def __init__(self, path: Path | str, *, busy_timeout: float = 30.0) -> None:
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create database directory for {path}: {exc}") from exc
        self.busy_timeout = busy_timeout
        self._initialise()

    def __repr__(self) -> str:
        return f"ArticleStore(path={str(self.path)!r})"

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            connection = sqlite3.connect(
                self.path, timeout=self.busy_timeout, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.path}: {exc}") from exc

        connection.row_factory = sqlite3.Row
        connection.create_function("casefold", 1, _casefold, deterministic=True)
        try:
            with connection:
                yield connection
        except sqlite3.Error as exc:
            raise StorageError(f"Database error on {self.path}: {exc}") from exc
        finally:
            connection.close()

    def _initialise(self) -> None:
        with self._connect() as connection:
            connection.execute("PRAGMA journal_mode=WAL")
            connection.executescript(SCHEMA)
        logger.info("Article store ready at %s", self.path)

    def insert(self, article: Article) -> InsertOutcome:
        """Insert ``article`` unless its URL is already stored.

        A duplicate URL leaves the stored row untouched and returns
        :attr:`InsertOutcome.DUPLICATE`.  Any other database failure raises
        :class:`StorageError`.
        """

        params = (
            article.title,
            article.description,
            article.summary,
            article.image_url,
            article.url,
            article.source_url,
            format_timestamp(article.published_at),
            article.rank,
            article.category.value,
        )
        with self._connect() as connection:
            cursor = connection.execute(INSERT_SQL, params)
            written = cursor.rowcount

        if written == 0:
            logger.debug("Duplicate article ignored: %s", article.url)
            return InsertOutcome.DUPLICATE
        return InsertOutcome.INSERTED

    def query(self, filters: ArticleQuery | None = None) -> List[Article]:
        """Return articles matching every filter set on ``filters``."""

        filters = filters or ArticleQuery()
        sql = f"SELECT {ARTICLE_COLUMNS} FROM articles"
        clauses: List[str] = []
        args: List[Any] = []

        if filters.source:
            clauses.append("sourceUrl = ?")
            args.append(filters.source)

        if filters.category:
            clauses.append("category = ?")
            args.append(filters.category)

        if filters.search:
            pattern = f"%{_escape_like(filters.search.casefold())}%"
            clauses.append(
                "(casefold(title) LIKE ? ESCAPE '\\'"
                " OR casefold(description) LIKE ? ESCAPE '\\')"
            )
            args.extend([pattern, pattern])

        if filters.start is not None:
            clauses.append("publishedAt >= ?")
            args.append(_lower_bound(filters.start))

        if filters.end is not None:
            if isinstance(filters.end, datetime):
                clauses.append("publishedAt <= ?")
                args.append(format_timestamp(filters.end))
            else:
                clauses.append("publishedAt < ?")
                args.append(_lower_bound(filters.end + timedelta(days=1)))

        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        if filters.sort_by is SortOrder.RANK:
            sql += " ORDER BY rank DESC, publishedAt DESC, id DESC"
        else:
            sql += " ORDER BY publishedAt DESC, id DESC"

        sql += " LIMIT ?"
        args.append(filters.limit)

        with self._connect() as connection:
            rows = connection.execute(sql, args).fetchall()
        return [_row_to_article(row) for row in rows]

    def iter_articles(self) -> Iterator[Article]:
        """Yield every stored article in chronological order.

        Rows are read from the cursor as the caller consumes them, so the whole
        table is never held in memory.
        """

        with self._connect() as connection:
            cursor = connection.execute(
                f"SELECT {ARTICLE_COLUMNS} FROM articles ORDER BY publishedAt ASC, id ASC"
            )
            for row in cursor:
                yield _row_to_article(row)

    def get(self, url: str) -> Article | None:
        with self._connect() as connection:
            row = connection.execute(
                f"SELECT {ARTICLE_COLUMNS} FROM articles WHERE url = ?", (url,)
            ).fetchone()
        return _row_to_article(row) if row is not None else None

    def count(self) -> int:
        with self._connect() as connection:
            (total,) = connection.execute("SELECT COUNT(*) FROM articles").fetchone()
        return int(total)

    def ranks_since(self, cutoff: datetime, until: datetime | None = None) -> List[int]:
        """Return the ranks of articles published from ``cutoff`` to ``until``.

        Both bounds are inclusive.  Without ``until`` future-dated rows count too.
        """

        sql = "SELECT rank FROM articles WHERE publishedAt >= ?"
        args = [format_timestamp(cutoff)]
        if until is not None:
            sql += " AND publishedAt <= ?"
            args.append(format_timestamp(until))

        with self._connect() as connection:
            rows = connection.execute(sql, args).fetchall()
        return [int(row["rank"] or 0) for row in rows]

    def threat_score(
        self,
        window_hours: float = 24,
        *,
        config: ThreatConfig | None = None,
        now: datetime | None = None,
    ) -> ThreatScore:
        """Compute the threat score over the trailing ``window_hours``.

        Always recomputed from the current table contents.  Articles dated
        after ``now`` are left out.
        """

        now = now or datetime.now(UTC)
        ranks = self.ranks_since(now - timedelta(hours=window_hours), now)
        return assess_threat(ranks, window_hours=window_hours, config=config)
