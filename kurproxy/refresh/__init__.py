# kurproxy/refresh/__init__.py
"""
Scheduled refresher: keeps the cache warm independently of inbound traffic.

Each pass calls FetchEngine.serve() for every route with a zero freshness
window and no quiet period, so every pass fetches and stores. Responses are
discarded; failures are logged and never propagate.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import replace

from kurproxy.api.routes import Route
from kurproxy.fetch.engine import EdgeResponse, FetchEngine

log = logging.getLogger(__name__)


class Refresher:
    def __init__(self, engine: FetchEngine, routes: Iterable[Route], interval_sec: float = 60.0):
        self.engine = engine
        self.routes = list(routes)
        self.interval_sec = max(1.0, float(interval_sec))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ---- single refresh --------------------------------------------------------------

    def refresh(self, route: Route) -> EdgeResponse | None:
        forced = replace(route.policy, fresh_window=0.0, quiet_period=None)
        try:
            resp = self.engine.serve(forced, route.cache_key, route.normalizer)
        except Exception:  # noqa: BLE001
            log.exception("refresh of %s failed", route.name)
            return None
        if resp.outcome != "miss":
            log.warning(
                "refresh of %s did not store a new entry (%s: %s)",
                route.name,
                resp.outcome,
                resp.error,
            )
        return resp

    def run_once(self) -> dict[str, str]:
        """
        Refresh every route once. Returns route name -> outcome
        ("miss" on success, "stale"/"error" when the upstream failed, "failed"
        on an unexpected exception).
        """
        outcomes: dict[str, str] = {}
        for route in self.routes:
            resp = self.refresh(route)
            outcomes[route.name] = resp.outcome if resp is not None else "failed"
        log.info("refresh pass complete: %s", outcomes)
        return outcomes

    # ---- background thread -----------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="kurproxy-refresher", daemon=True)
        self._thread.start()
        log.info("refresher started (every %.0fs, %d routes)", self.interval_sec, len(self.routes))

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval_sec):
                break


__all__ = ["Refresher"]
