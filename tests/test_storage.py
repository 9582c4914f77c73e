from __future__ import annotations

import types
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from threatnews.config import ScoringConfig, ThreatConfig
from threatnews.models import Article, ArticleQuery, Category, InsertOutcome, SortOrder, ThreatLevel
from threatnews.services.ranking import rank_score
from threatnews.storage import ArticleStore, StorageError

SOURCE_A = "https://feeds.example.com/a"
SOURCE_B = "https://feeds.example.com/b"
BASE_TIME = datetime(2025, 10, 6, 12, 0, tzinfo=UTC)


def make_article(
    url: str,
    *,
    rank: int = 0,
    title: str = "Title",
    description: str = "Description",
    source: str = SOURCE_A,
    category: Category = Category.CYBERSECURITY,
    published_at: datetime = BASE_TIME,
) -> Article:
    return Article(
        title=title,
        description=description,
        summary=description[:20],
        url=url,
        source_url=source,
        published_at=published_at,
        rank=rank,
        category=category,
    )


@pytest.fixture
def store(tmp_path: Path) -> ArticleStore:
    return ArticleStore(tmp_path / "data" / "news.db")


def test_insert_then_duplicate_is_a_no_op(store: ArticleStore) -> None:
    scoring = ScoringConfig.from_file()
    title = "Hospital hit by ransomware attack"
    first = make_article(
        "u1",
        title=title,
        rank=rank_score(title, "Description", Category.CYBERSECURITY, scoring),
    )
    second = make_article("u1", title="Completely different text", rank=0)

    assert store.insert(first) is InsertOutcome.INSERTED
    assert store.insert(second) is InsertOutcome.DUPLICATE

    assert store.count() == 1
    stored = store.get("u1")
    assert stored is not None
    assert stored.title == title
    assert stored.rank == first.rank
    assert stored.rank >= 5


def test_store_round_trips_article_fields(store: ArticleStore) -> None:
    article = Article(
        title="Zero-day in VPN appliance",
        description="Attackers exploit a zero-day.",
        summary="Attackers exploit...",
        image_url="https://img.example.com/a.png",
        url="https://news.example.com/zero-day",
        source_url=SOURCE_A,
        published_at=datetime(2025, 10, 6, 14, 30, 15, tzinfo=UTC),
        rank=13,
        category=Category.CYBERSECURITY,
    )
    store.insert(article)

    assert store.get(article.url) == article


def test_empty_store_reads_return_empty_results(store: ArticleStore) -> None:
    assert store.query() == []
    assert list(store.iter_articles()) == []
    assert store.count() == 0
    assert store.get("missing") is None
    assert store.threat_score().threat_level is ThreatLevel.INSUFFICIENT_DATA


def test_default_query_is_limited_and_newest_first(store: ArticleStore) -> None:
    for index in range(25):
        store.insert(make_article(f"u{index}", published_at=BASE_TIME + timedelta(minutes=index)))

    articles = store.query()

    assert len(articles) == 20
    assert articles[0].url == "u24"
    assert [a.published_at for a in articles] == sorted((a.published_at for a in articles), reverse=True)
    assert len(store.query(ArticleQuery(limit=5))) == 5


def test_sort_by_rank_orders_descending(store: ArticleStore) -> None:
    for index, rank in enumerate([10, 5, 8, 2]):
        store.insert(make_article(f"u{index}", rank=rank, published_at=BASE_TIME + timedelta(hours=index)))

    articles = store.query(ArticleQuery(sort_by=SortOrder.RANK))

    assert [article.rank for article in articles] == [10, 8, 5, 2]


def test_unknown_sort_falls_back_to_published_order(store: ArticleStore) -> None:
    store.insert(make_article("old", rank=9, published_at=BASE_TIME))
    store.insert(make_article("new", rank=1, published_at=BASE_TIME + timedelta(hours=1)))

    articles = store.query(ArticleQuery(sort_by="popularity"))

    assert [article.url for article in articles] == ["new", "old"]


def test_search_matches_title_or_description_case_insensitively(store: ArticleStore) -> None:
    store.insert(make_article("u1", title="RANSOMWARE gang arrested"))
    store.insert(make_article("u2", title="Weekly digest", description="New Ransomware strain spotted"))
    store.insert(make_article("u3", title="Phishing kit sold", description="Credential theft"))

    urls = {article.url for article in store.query(ArticleQuery(search="ransomware"))}

    assert urls == {"u1", "u2"}


def test_search_treats_like_wildcards_literally(store: ArticleStore) -> None:
    store.insert(make_article("u1", title="Provider promises 100% uptime"))
    store.insert(make_article("u2", title="Provider promises 100 servers"))
    store.insert(make_article("u3", title="snake_case naming"))
    store.insert(make_article("u4", title="snakeXcase naming"))

    assert [a.url for a in store.query(ArticleQuery(search="100%"))] == ["u1"]
    assert [a.url for a in store.query(ArticleQuery(search="snake_case"))] == ["u3"]


def test_source_and_category_filters_intersect(store: ArticleStore) -> None:
    index = 0
    for source in (SOURCE_A, SOURCE_B):
        for category in (Category.CYBERSECURITY, Category.TECH):
            for _ in range(2):
                store.insert(make_article(f"u{index}", source=source, category=category))
                index += 1

    def urls(**filters: object) -> set[str]:
        return {article.url for article in store.query(ArticleQuery(limit=100, **filters))}

    by_source = urls(source=SOURCE_B)
    by_category = urls(category="Tech")
    both = urls(source=SOURCE_B, category="Tech")

    assert both == by_source & by_category
    assert len(both) == 2


def test_all_filter_values_mean_no_filter(store: ArticleStore) -> None:
    store.insert(make_article("u1", source=SOURCE_A, category=Category.TECH))
    store.insert(make_article("u2", source=SOURCE_B, category=Category.GENERAL))

    assert len(store.query(ArticleQuery(source="all", category="all"))) == 2


def test_date_range_is_inclusive_with_end_of_day(store: ArticleStore) -> None:
    store.insert(make_article("before", published_at=datetime(2025, 10, 4, 23, 59, tzinfo=UTC)))
    store.insert(make_article("start", published_at=datetime(2025, 10, 5, 0, 0, tzinfo=UTC)))
    store.insert(make_article("late", published_at=datetime(2025, 10, 6, 23, 30, tzinfo=UTC)))
    store.insert(make_article("after", published_at=datetime(2025, 10, 7, 0, 0, tzinfo=UTC)))

    articles = store.query(ArticleQuery(start=date(2025, 10, 5), end=date(2025, 10, 6)))

    assert {article.url for article in articles} == {"start", "late"}


def test_datetime_bounds_are_exact(store: ArticleStore) -> None:
    store.insert(make_article("u1", published_at=datetime(2025, 10, 6, 10, 0, tzinfo=UTC)))
    store.insert(make_article("u2", published_at=datetime(2025, 10, 6, 11, 0, tzinfo=UTC)))

    articles = store.query(ArticleQuery(end=datetime(2025, 10, 6, 10, 30, tzinfo=UTC)))

    assert [article.url for article in articles] == ["u1"]


def test_iter_articles_streams_in_chronological_order(store: ArticleStore) -> None:
    store.insert(make_article("second", published_at=BASE_TIME + timedelta(hours=1)))
    store.insert(make_article("first", published_at=BASE_TIME))
    store.insert(make_article("third", published_at=BASE_TIME + timedelta(hours=2)))

    stream = store.iter_articles()

    assert isinstance(stream, types.GeneratorType)
    assert [article.url for article in stream] == ["first", "second", "third"]


def test_threat_score_only_counts_the_trailing_window(store: ArticleStore) -> None:
    now = datetime.now(UTC)
    for index, rank in enumerate([10, 5, 8]):
        store.insert(make_article(f"recent-{index}", rank=rank, published_at=now - timedelta(minutes=10 * (index + 1))))
    store.insert(make_article("old", rank=2, published_at=now - timedelta(hours=48)))

    result = store.threat_score(24, config=ThreatConfig(min_articles=3), now=now)

    assert result.article_count == 3
    assert result.score == pytest.approx((10 + 5 + 8) / 3)
    assert result.threat_level is ThreatLevel.CRITICAL
    assert result.phrase == "Code Red"


def test_threat_score_below_minimum_is_insufficient(store: ArticleStore) -> None:
    now = datetime.now(UTC)
    for index in range(4):
        store.insert(make_article(f"u{index}", rank=50, published_at=now - timedelta(minutes=index)))

    result = store.threat_score(24, now=now)

    assert result.threat_level is ThreatLevel.INSUFFICIENT_DATA
    assert result.score == 0.0
    assert result.phrase == "No Worries (Insufficient Data)"
    assert result.article_count == 4


def test_unopenable_database_raises_storage_error(tmp_path: Path) -> None:
    with pytest.raises(StorageError):
        ArticleStore(tmp_path)


def test_search_ignores_case_of_accented_letters(store: ArticleStore) -> None:
    store.insert(make_article("u1", title="ÉTÉ breach at CAFÉ chain"))
    store.insert(make_article("u2", title="Cafe menu leak"))

    assert [a.url for a in store.query(ArticleQuery(search="CAFÉ"))] == ["u1"]
    assert [a.url for a in store.query(ArticleQuery(search="café"))] == ["u1"]
    assert [a.url for a in store.query(ArticleQuery(search="été"))] == ["u1"]


def test_concurrent_inserts_of_one_url_store_a_single_row(store: ArticleStore) -> None:
    articles = [make_article("same", rank=index, title=f"Copy {index}") for index in range(16)]

    with ThreadPoolExecutor(max_workers=16) as executor:
        outcomes = list(executor.map(store.insert, articles))

    assert outcomes.count(InsertOutcome.INSERTED) == 1
    assert outcomes.count(InsertOutcome.DUPLICATE) == 15
    assert store.count() == 1


def test_threat_score_ignores_future_dated_articles(store: ArticleStore) -> None:
    now = datetime.now(UTC)
    for index in range(5):
        store.insert(make_article(f"recent-{index}", rank=1, published_at=now - timedelta(hours=index + 1)))
    store.insert(make_article("misdated", rank=50, published_at=now + timedelta(days=2)))

    result = store.threat_score(24, now=now)

    assert result.article_count == 5
    assert result.score == pytest.approx(1.0)
    assert result.threat_level is ThreatLevel.LOW
    assert store.ranks_since(now - timedelta(hours=24)) != store.ranks_since(now - timedelta(hours=24), now)


def test_store_creates_missing_parent_directories(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "deeper" / "news.db"

    store = ArticleStore(str(path))

    assert store.path == path
    assert path.is_file()
