"""API routes exposing article queries, the threat score and bulk export."""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime
from typing import Iterator, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from threatnews.context import ServiceContext
from threatnews.models import Article, ArticleQuery, Category, ThreatScore
from threatnews.services.ranking import classify_source
from threatnews.storage import ArticleStore

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_LIMIT = 20
THREAT_WINDOW_HOURS = 24
CSV_HEADER = ["Title", "Description", "URL", "Source", "Category", "Published At", "Rank"]


class SourceEntry(BaseModel):
    url: str
    category: Category


class SourcesResponse(BaseModel):
    sources: List[SourceEntry] = Field(default_factory=list)


def get_context(request: Request) -> ServiceContext:
    """Return the service context attached to the running application."""

    return request.app.state.context


def _parse_date(raw: str | None, label: str) -> date | None:
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label} date format") from exc


def iter_csv_rows(store: ArticleStore) -> Iterator[str]:
    """Yield the CSV export one encoded line at a time."""

    buffer = io.StringIO()
    writer = csv.writer(buffer)

    def flush() -> str:
        value = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return value

    writer.writerow(CSV_HEADER)
    yield flush()

    for article in store.iter_articles():
        writer.writerow(
            [
                article.title,
                article.description,
                article.url,
                article.source_url,
                article.category.value,
                article.published_at.isoformat(),
                article.rank,
            ]
        )
        yield flush()


@router.get("/news", response_model=List[Article])
async def list_news(
    source: str | None = None,
    category: str | None = None,
    search: str | None = None,
    limit: int = DEFAULT_LIMIT,
    start: str | None = None,
    end: str | None = None,
    sort_by: str | None = Query(default=None, alias="sortBy"),
    context: ServiceContext = Depends(get_context),
) -> List[Article]:
    """Return stored articles filtered by the query parameters."""

    start_date = _parse_date(start, "start")
    end_date = _parse_date(end, "end")

    try:
        filters = ArticleQuery(
            source=source,
            category=category,
            search=search,
            limit=limit if limit > 0 else DEFAULT_LIMIT,
            start=start_date,
            end=end_date,
            sort_by=sort_by,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return await run_in_threadpool(context.store.query, filters)


@router.get("/today-threat", response_model=ThreatScore)
async def today_threat(context: ServiceContext = Depends(get_context)) -> ThreatScore:
    """Return the threat score over the last 24 hours."""

    return await run_in_threadpool(
        context.store.threat_score,
        THREAT_WINDOW_HOURS,
        config=context.settings.threat,
    )


@router.get("/export.csv")
async def export_csv(context: ServiceContext = Depends(get_context)) -> StreamingResponse:
    """Stream every stored article as CSV."""

    return StreamingResponse(
        iter_csv_rows(context.store),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="news_data.csv"'},
    )


@router.get("/sources", response_model=SourcesResponse)
async def list_sources(context: ServiceContext = Depends(get_context)) -> SourcesResponse:
    """Return the configured feeds with the category each one is filed under."""

    entries = [
        SourceEntry(url=source, category=classify_source(source, context.feeds))
        for source in context.feeds.iter_sources()
    ]
    return SourcesResponse(sources=entries)
