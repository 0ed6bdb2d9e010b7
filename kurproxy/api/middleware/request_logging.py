# kurproxy/api/middleware/request_logging.py
"""
Request logging middleware for FastAPI.

Logs one line per request: method, path, status, duration and, for provider
routes, the cache outcome (hit / miss / stale / error). The outcome travels
on request.state rather than a response header so served headers stay
exactly as cached.

Usage:
    from kurproxy.api.middleware.request_logging import RequestLoggingMiddleware

    app.add_middleware(RequestLoggingMiddleware)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, exclude_paths: list[str] | None = None):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or [])
        self.exclude_paths.update({"/health", "/healthz", "/favicon.ico"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.exclude_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000.0

        outcome = getattr(request.state, "cache_outcome", "-")
        log.info(
            "%s %s -> %d (%s) %.1fms",
            request.method,
            path,
            response.status_code,
            outcome,
            duration_ms,
        )
        return response
