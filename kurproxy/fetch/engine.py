# kurproxy/fetch/engine.py
from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from kurproxy.exceptions import NormalizationError, UpstreamError, UpstreamStatusError
from kurproxy.providers.base import Normalizer, dump_payload
from kurproxy.utils import local_datetime, now_ms

from .cache import JSON_CONTENT_TYPE, CacheEntry, CacheStore
from .client import UpstreamClient
from .policy import FetchPolicy

log = logging.getLogger(__name__)

# Something that accepts (func, *args) and promises to run it later,
# e.g. fastapi.BackgroundTasks.add_task.
Defer = Callable[..., Any]

# --------------------------------------------------------------------------------------------------
# Results
# --------------------------------------------------------------------------------------------------


@dataclass(frozen=True)
class EdgeResponse:
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    outcome: str = "miss"  # "hit" | "miss" | "stale" | "error"
    error: UpstreamError | None = None

    @classmethod
    def from_entry(cls, entry: CacheEntry, outcome: str, error: UpstreamError | None = None):
        return cls(
            status=entry.status,
            body=entry.body,
            headers=dict(entry.headers),
            outcome=outcome,
            error=error,
        )

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


def error_response(exc: UpstreamError) -> EdgeResponse:
    """
    502 payload for a failed fetch with nothing cached to fall back on.

    Example:
        { "ok": false, "error": "Upstream failed", "category": "upstream_status", "status": 500 }
    """
    payload: dict[str, Any] = {"ok": False}
    if isinstance(exc, UpstreamStatusError):
        payload["error"] = "Upstream failed"
        payload["category"] = exc.category
        payload["status"] = exc.status
    else:
        payload["error"] = "Fetch error"
        payload["category"] = exc.category
        payload["detail"] = str(exc)
    return EdgeResponse(
        status=502,
        body=json.dumps(payload, separators=(",", ":")).encode("utf-8"),
        headers={"Content-Type": JSON_CONTENT_TYPE},
        outcome="error",
        error=exc,
    )


# --------------------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------------------


def _sleep(dt: float) -> None:
    # Calls real time.sleep, but tests can monkeypatch it.
    time.sleep(dt)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        "upstream attempt %d failed (%s); retrying",
        retry_state.attempt_number,
        exc,
    )


# --------------------------------------------------------------------------------------------------
# Engine
# --------------------------------------------------------------------------------------------------


class FetchEngine:
    """
    Cache-first fetch with stale-on-error fallback.

    Flow for serve():
      1) store.get(key)  -> existing (store failures read as absent)
      2) existing younger than the effective freshness window -> return it (hit)
      3) fetch upstream, up to policy.attempts tries with a fixed backoff
           success -> normalize, build a new entry, store it (deferred when a
                      defer callable is given) and return it (miss)
           failure -> existing if present, however old (stale)
                      else a 502 JSON error (error)

    Normalization problems never fail the request: the normalizer's fallback
    payload is cached and served with status 200.
    """

    def __init__(
        self,
        store: CacheStore,
        client: UpstreamClient | None = None,
        *,
        timezone: str = "Europe/Istanbul",
    ) -> None:
        self.store = store
        self.client = client or UpstreamClient()
        self.timezone = timezone

    # ---- public API ------------------------------------------------------------------

    def serve(
        self,
        policy: FetchPolicy,
        cache_key: str,
        normalizer: Normalizer,
        *,
        defer: Defer | None = None,
    ) -> EdgeResponse:
        existing = self._read(cache_key)
        now = now_ms()

        if existing is not None and existing.is_fresh(now, policy.effective_fresh_window(now)):
            log.debug("cache hit key=%s age_ms=%s", cache_key, existing.age_ms(now))
            return EdgeResponse.from_entry(existing, "hit")

        try:
            body = self._fetch_with_retries(policy)
        except UpstreamError as exc:
            if existing is not None:
                log.info(
                    "serving stale key=%s age_ms=%s after %s: %s",
                    cache_key,
                    existing.age_ms(now),
                    exc.category,
                    exc,
                )
                return EdgeResponse.from_entry(existing, "stale", error=exc)
            log.warning("upstream failed key=%s with no cached entry: %s", cache_key, exc)
            return error_response(exc)

        fetched_at = now_ms()
        entry = CacheEntry.build(
            cache_key,
            self._normalize(normalizer, body, fetched_at),
            fetched_at=fetched_at,
            fresh_window=policy.fresh_window,
            edge_ttl=policy.edge_ttl,
        )
        if defer is not None:
            defer(self._write, cache_key, entry)
        else:
            self._write(cache_key, entry)

        log.info("cache miss key=%s refreshed (%d bytes)", cache_key, len(entry.body))
        return EdgeResponse.from_entry(entry, "miss")

    # ----------------------------------------------------------------------------------
    # Internals
    # ----------------------------------------------------------------------------------

    def _fetch_with_retries(self, policy: FetchPolicy) -> bytes:
        retryer = Retrying(
            stop=stop_after_attempt(policy.attempts),
            wait=wait_fixed(policy.retry_backoff),
            retry=retry_if_exception_type(UpstreamError),
            before_sleep=_log_retry,
            sleep=_sleep,
            reraise=True,
        )
        return retryer(self.client.fetch, policy)

    def _normalize(self, normalizer: Normalizer, body: bytes, fetched_at: int) -> bytes:
        now = local_datetime(fetched_at, self.timezone)
        try:
            payload = normalizer(body, now)
        except NormalizationError as exc:
            log.warning("normalization failed for %s: %s", normalizer.name, exc.message)
            payload = normalizer.fallback(now, exc.message)
        except Exception as exc:  # noqa: BLE001
            log.exception("normalizer %s raised unexpectedly", normalizer.name)
            payload = normalizer.fallback(now, f"{type(exc).__name__}: {exc}")
        return dump_payload(payload)

    def _read(self, key: str) -> CacheEntry | None:
        try:
            return self.store.get(key)
        except Exception as exc:  # noqa: BLE001
            log.warning("cache read failed key=%s; treating as absent: %s", key, exc)
            return None

    def _write(self, key: str, entry: CacheEntry) -> None:
        try:
            ok = self.store.put(key, entry)
        except Exception as exc:  # noqa: BLE001
            log.warning("cache write failed key=%s: %s", key, exc)
            return
        if not ok:
            log.warning("cache write rejected key=%s", key)

    def close(self) -> None:
        self.client.close()


__all__ = ["FetchEngine", "EdgeResponse", "error_response", "Defer"]
