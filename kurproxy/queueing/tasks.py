"""
rq jobs for out-of-process cache warm-up.

Run a worker with the rq scheduler enabled (kurproxy.queueing.worker), then
seed the loop once with schedule_refresh(); every run re-enqueues itself
`interval_sec` later. Only meaningful with CACHE_BACKEND=redis, since the
worker and the API processes must share the store.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache

from rq import Queue
from rq.job import Job

from kurproxy.api.routes import Route, build_routes, route_by_name
from kurproxy.config import load_settings
from kurproxy.fetch import cache as cache_mod
from kurproxy.fetch.client import UpstreamClient
from kurproxy.fetch.engine import FetchEngine
from kurproxy.queueing.redis_conn import get_redis
from kurproxy.refresh import Refresher

log = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _engine() -> FetchEngine:
    cfg = load_settings()
    if cfg.cache.backend != "redis":
        log.warning(
            "CACHE_BACKEND=%s: refreshed entries stay inside this worker process",
            cfg.cache.backend,
        )
    return FetchEngine(
        cache_mod.default(),
        UpstreamClient(user_agent=cfg.upstream.user_agent),
        timezone=cfg.upstream.timezone,
    )


def _routes() -> list[Route]:
    return list(build_routes(load_settings()).values())


def refresh_route(name: str) -> str:
    """
    Force-refresh one route by name. Returns the engine outcome, or
    "unknown-route" / "failed".
    """
    route = route_by_name(build_routes(load_settings()), name)
    if route is None:
        log.warning("refresh_route: unknown route %r", name)
        return "unknown-route"
    resp = Refresher(_engine(), [route]).refresh(route)
    return resp.outcome if resp is not None else "failed"


def refresh_all() -> dict[str, str]:
    return Refresher(_engine(), _routes()).run_once()


def refresh_and_reschedule(interval_sec: float) -> dict[str, str]:
    try:
        return refresh_all()
    finally:
        schedule_refresh(interval_sec, delay_sec=interval_sec)


def schedule_refresh(
    interval_sec: float | None = None,
    *,
    delay_sec: float = 0.0,
    queue: Queue | None = None,
) -> Job:
    """
    Enqueue the self-rescheduling refresh job.

    delay_sec=0 runs it as soon as a worker is free; otherwise it goes through
    the rq scheduler (enqueue_in).
    """
    cfg = load_settings()
    interval = float(interval_sec if interval_sec is not None else cfg.refresh.interval_sec)
    q = queue or Queue(name=cfg.refresh.queue_name, connection=get_redis())
    if delay_sec > 0:
        job = q.enqueue_in(timedelta(seconds=delay_sec), refresh_and_reschedule, interval)
    else:
        job = q.enqueue(refresh_and_reschedule, interval)
    log.info("scheduled refresh job %s on %s (delay %.0fs)", job.id, q.name, delay_sec)
    return job


__all__ = [
    "refresh_route",
    "refresh_all",
    "refresh_and_reschedule",
    "schedule_refresh",
]
