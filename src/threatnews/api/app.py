"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from threatnews.api.middleware import log_requests, rate_limit_middleware, security_headers
from threatnews.api.routes import router
from threatnews.context import ServiceContext

logger = logging.getLogger(__name__)


def create_app(
    context: ServiceContext | None = None,
    *,
    run_ingestion: bool = False,
) -> FastAPI:
    """Build the API around ``context``.

    Without an explicit context one is built from the environment, which opens
    (and if needed creates) the article store.  With ``run_ingestion`` the
    periodic ingestion scheduler runs for the lifetime of the application.
    """

    context = context or ServiceContext.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        scheduler = context.build_scheduler() if run_ingestion else None
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop(timeout=5)

    app = FastAPI(
        title="Threat News",
        description="Security news aggregation and threat level API",
        lifespan=lifespan,
    )
    app.state.context = context
    app.include_router(router, prefix="/api")

    # Added innermost first: logging wraps security headers wraps the limiter.
    if context.settings.rate_limit:
        app.middleware("http")(rate_limit_middleware(context.settings.rate_limit))
    app.middleware("http")(security_headers)
    app.middleware("http")(log_requests)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        return "OK"

    return app
