# kurproxy/fetch/__init__.py
"""
Fetch package: per-route policy, cache stores, an httpx upstream client and the
cache-first fetch engine with stale-on-error fallback.

Router-facing API:
  - FetchEngine.serve(policy, cache_key, normalizer, defer=None) -> EdgeResponse

Other public entry points:
  - FetchPolicy, QuietPeriod
  - UpstreamClient
  - cache: CacheEntry, CacheStore, MemoryCacheStore, RedisCacheStore, build_store, default_store()
"""

from .cache import (
    CacheEntry,
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    build_store,
)
from .cache import (
    default as default_store,
)
from .client import UpstreamClient
from .engine import EdgeResponse, FetchEngine, error_response
from .policy import FetchPolicy, QuietPeriod

__all__ = [
    # engine
    "FetchEngine",
    "EdgeResponse",
    "error_response",
    # policy
    "FetchPolicy",
    "QuietPeriod",
    # client
    "UpstreamClient",
    # cache
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "build_store",
    "default_store",
]

__version__ = "0.1.0"
