"""HTTP middlewares wrapped around every API response."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Collection, Dict

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

__all__ = [
    "SECURITY_HEADERS",
    "log_requests",
    "rate_limit_middleware",
    "security_headers",
]

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline';"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}


async def log_requests(request: Request, call_next: CallNext) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %s %s %.1fms",
        request.method,
        request.url.path,
        request.client.host if request.client else "-",
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


async def security_headers(request: Request, call_next: CallNext) -> Response:
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


def rate_limit_middleware(
    limit: RateLimitItem | str,
    *,
    exempt_paths: Collection[str] = ("/healthz",),
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Build a middleware that applies one shared ``limit`` to all clients.

    Requests beyond the limit get ``429 Too Many Requests``.  Paths in
    ``exempt_paths`` are never counted or refused.
    """

    item = parse(limit) if isinstance(limit, str) else limit
    limiter = MovingWindowRateLimiter(MemoryStorage())

    async def limit_requests(request: Request, call_next: CallNext) -> Response:
        if request.url.path in exempt_paths:
            return await call_next(request)
        if not limiter.hit(item, "api"):
            logger.warning("Rate limit exceeded for %s %s", request.method, request.url.path)
            return PlainTextResponse("Too Many Requests", status_code=429)
        return await call_next(request)

    return limit_requests
