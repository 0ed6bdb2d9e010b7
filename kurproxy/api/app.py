from __future__ import annotations

import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from kurproxy.api.middleware.request_logging import RequestLoggingMiddleware
from kurproxy.api.routes import Route, build_routes
from kurproxy.config import load_settings
from kurproxy.fetch import cache as cache_mod
from kurproxy.fetch.cache import JSON_CONTENT_TYPE
from kurproxy.fetch.client import UpstreamClient
from kurproxy.fetch.engine import FetchEngine
from kurproxy.refresh import Refresher

log = logging.getLogger(__name__)

_STATE_LOCK = threading.Lock()


def _get_routes(app: FastAPI) -> dict[str, Route]:
    """
    Lazily build the route table on app.state (tests may pre-seed it).
    """
    routes: dict[str, Route] | None = getattr(app.state, "routes", None)
    if routes is not None:
        return routes
    with _STATE_LOCK:
        routes = getattr(app.state, "routes", None)
        if routes is None:
            routes = build_routes(load_settings())
            app.state.routes = routes
    return routes


def _get_engine(app: FastAPI) -> FetchEngine:
    """
    Lazily construct one FetchEngine per app, bound to the process-wide
    cache store. Tests inject their own engine via app.state.engine.
    """
    engine: FetchEngine | None = getattr(app.state, "engine", None)
    if engine is not None:
        return engine
    with _STATE_LOCK:
        engine = getattr(app.state, "engine", None)
        if engine is None:
            cfg = load_settings()
            engine = FetchEngine(
                cache_mod.default(),
                UpstreamClient(user_agent=cfg.upstream.user_agent),
                timezone=cfg.upstream.timezone,
            )
            app.state.engine = engine
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    cfg = load_settings()
    refresher: Refresher | None = None
    if cfg.refresh.enabled:
        refresher = Refresher(
            _get_engine(app),
            _get_routes(app).values(),
            interval_sec=cfg.refresh.interval_sec,
        )
        refresher.start()
        app.state.refresher = refresher
    try:
        yield
    finally:
        if refresher is not None:
            refresher.stop()


app = FastAPI(title="Kur Proxy", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


def _discovery_response(app: FastAPI) -> JSONResponse:
    """
    404 payload listing every provider route.

    Example:
        { "ok": false, "routes": ["/haremaltin", "/tcmb", ...] }
    """
    return JSONResponse(
        status_code=404,
        content={"ok": False, "routes": list(_get_routes(app))},
        headers={"Content-Type": JSON_CONTENT_TYPE},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _discovery_response(request.app)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc.detail)},
        headers={"Content-Type": JSON_CONTENT_TYPE},
    )


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/{route_name}")
def provider(route_name: str, request: Request, background_tasks: BackgroundTasks) -> Response:
    """
    Serve one provider route through the fetch engine.

    The cache write after a fresh fetch is handed to background_tasks, so it
    completes after the response has been sent. Status, body and headers are
    passed through verbatim (a stale fallback is byte-identical to what was
    cached).
    """
    route = _get_routes(request.app).get(f"/{route_name}")
    if route is None:
        return _discovery_response(request.app)

    engine = _get_engine(request.app)
    resp = engine.serve(
        route.policy,
        route.cache_key,
        route.normalizer,
        defer=background_tasks.add_task,
    )
    request.state.cache_outcome = resp.outcome
    return Response(content=resp.body, status_code=resp.status, headers=dict(resp.headers))
