# kurproxy/fetch/cache.py
from __future__ import annotations

import base64
import json
import logging
import threading
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from redis.exceptions import RedisError

from kurproxy.config import CacheConfig, load_settings

log = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
CACHED_AT_HEADER = "X-Cached-At"

# --------------------------------------------------------------------------------------
# Model
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheEntry:
    key: str
    body: bytes
    content_type: str
    fetched_at: int | None  # epoch millis; None when it could not be recovered
    fresh_window: float  # seconds, as declared by the route when stored
    headers: Mapping[str, str] = field(default_factory=dict)
    status: int = 200

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def build(
        cls,
        key: str,
        body: bytes,
        *,
        fetched_at: int,
        fresh_window: float,
        edge_ttl: int,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> CacheEntry:
        headers = {
            "Content-Type": content_type,
            "Cache-Control": f"public, max-age={int(edge_ttl)}",
            CACHED_AT_HEADER: str(int(fetched_at)),
        }
        return cls(
            key=key,
            body=body,
            content_type=content_type,
            fetched_at=int(fetched_at),
            fresh_window=float(fresh_window),
            headers=headers,
        )

    def age_ms(self, now_ms: int) -> float | None:
        if self.fetched_at is None:
            return None
        return float(now_ms - self.fetched_at)

    def is_fresh(self, now_ms: int, window_s: float) -> bool:
        """
        True when the entry is younger than `window_s`. An entry without a
        known fetch time is never fresh.
        """
        age = self.age_ms(now_ms)
        if age is None:
            return False
        return age < window_s * 1000.0

    # ---- wire format (Redis) ---------------------------------------------------------

    def to_json(self) -> str:
        payload = {
            "key": self.key,
            "status": self.status,
            "content_type": self.content_type,
            "fetched_at": self.fetched_at,
            "fresh_window": self.fresh_window,
            "headers": dict(self.headers),
            "body": base64.b64encode(self.body).decode("ascii"),
        }
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> CacheEntry:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        headers = {str(k): str(v) for k, v in (data.get("headers") or {}).items()}
        fetched_at = data.get("fetched_at")
        if fetched_at is None:
            fetched_at = _cached_at_from_headers(headers)
        return cls(
            key=str(data["key"]),
            body=base64.b64decode(data["body"]),
            content_type=str(data.get("content_type") or JSON_CONTENT_TYPE),
            fetched_at=None if fetched_at is None else int(fetched_at),
            fresh_window=float(data.get("fresh_window") or 0.0),
            headers=headers,
            status=int(data.get("status") or 200),
        )


def _cached_at_from_headers(headers: Mapping[str, str]) -> int | None:
    for k, v in headers.items():
        if k.lower() == CACHED_AT_HEADER.lower():
            try:
                return int(v)
            except (TypeError, ValueError):
                return None
    return None


# --------------------------------------------------------------------------------------
# Store contract
# --------------------------------------------------------------------------------------


class CacheStore(Protocol):
    """
    get() returns None for a missing key (including one evicted after put()).
    put() is an idempotent overwrite and reports success as a bool; neither
    method raises.
    """

    def get(self, key: str) -> CacheEntry | None: ...

    def put(self, key: str, entry: CacheEntry) -> bool: ...


# --------------------------------------------------------------------------------------
# In-process store
# --------------------------------------------------------------------------------------


class MemoryCacheStore:
    """
    Process-wide dict of immutable entries.

    put() swaps the reference under a lock; once `max_entries` is exceeded the
    oldest insertions are evicted first.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max(1, int(max_entries))
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> bool:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug("cache evicted key=%s", evicted)
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# --------------------------------------------------------------------------------------
# Redis store
# --------------------------------------------------------------------------------------


class RedisCacheStore:
    """
    One JSON document per key, written with SETEX.

    `retention_sec` is the platform-side eviction horizon, not the freshness
    window: stale entries must outlive their window to serve as fallbacks.
    Redis errors and undecodable payloads read as a miss.

    The client is expected to support:
      - get(key: str) -> bytes | str | None
      - setex(key: str, ttl: int, value: str) -> Any
    """

    def __init__(self, client: Any, *, prefix: str = "kurproxy:cache:", retention_sec: int = 86400):
        self.client = client
        self.prefix = prefix
        self.retention_sec = max(1, int(retention_sec))

    def _redis_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> CacheEntry | None:
        try:
            raw = self.client.get(self._redis_key(key))
        except RedisError as exc:
            log.warning("cache get failed key=%s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            log.warning("cache entry undecodable key=%s: %s", key, exc)
            return None

    def put(self, key: str, entry: CacheEntry) -> bool:
        try:
            self.client.setex(self._redis_key(key), self.retention_sec, entry.to_json())
        except RedisError as exc:
            log.warning("cache put failed key=%s: %s", key, exc)
            return False
        return True


# --------------------------------------------------------------------------------------
# Construction (optional module-level singleton)
# --------------------------------------------------------------------------------------


def build_store(cfg: CacheConfig) -> CacheStore:
    if cfg.backend == "redis":
        from redis import Redis

        client = Redis.from_url(cfg.redis_url, decode_responses=False)
        return RedisCacheStore(client, prefix=cfg.key_prefix, retention_sec=cfg.retention_sec)
    return MemoryCacheStore(max_entries=cfg.max_entries)


_default_store: CacheStore | None = None
_default_lock = threading.Lock()


def default() -> CacheStore:
    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = build_store(load_settings().cache)
        return _default_store


def reset_default() -> None:
    global _default_store
    with _default_lock:
        _default_store = None


__all__ = [
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "build_store",
    "default",
    "reset_default",
    "JSON_CONTENT_TYPE",
    "CACHED_AT_HEADER",
]
