# kurproxy/fetch/policy.py
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import time as dtime
from types import MappingProxyType

from kurproxy.utils import local_datetime

# --------------------------------------------------------------------------------------
# Quiet period ("night mode")
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class QuietPeriod:
    """
    A daily local-time window during which cached entries never expire.

    The window is half-open [start, end) and may wrap midnight
    (e.g. 19:00-09:00). start == end is treated as an empty window.
    """

    start: dtime
    end: dtime
    tz: str = "Europe/Istanbul"

    @classmethod
    def from_hours(
        cls,
        hours: tuple[tuple[int, int], tuple[int, int]] | None,
        tz: str,
    ) -> QuietPeriod | None:
        if hours is None:
            return None
        (sh, sm), (eh, em) = hours
        return cls(start=dtime(sh, sm), end=dtime(eh, em), tz=tz)

    def is_active(self, epoch_ms: int) -> bool:
        if self.start == self.end:
            return False
        t = local_datetime(epoch_ms, self.tz).time().replace(tzinfo=None)
        if self.start < self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


# --------------------------------------------------------------------------------------
# Fetch policy
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchPolicy:
    """
    Per-route fetch/caching parameters. One instance per route, built at startup.

    Durations are in seconds.
      fresh_window   max age of a cached entry returned without a fetch
      edge_ttl       Cache-Control max-age advertised downstream
      timeout        bound on a single upstream attempt
      retry_count    total attempts (<= 1 means a single attempt)
      retry_backoff  fixed delay between attempts
    """

    target_url: str
    fresh_window: float
    edge_ttl: int
    timeout: float = 10.0
    retry_count: int = 1
    retry_backoff: float = 0.0
    headers: Mapping[str, str] = field(default_factory=dict)
    method: str = "GET"
    body: bytes | None = None
    quiet_period: QuietPeriod | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "method", self.method.upper())

    @property
    def attempts(self) -> int:
        return max(1, int(self.retry_count))

    def effective_fresh_window(self, now_ms: int) -> float:
        """
        Freshness window in seconds at `now_ms`; infinite while the quiet
        period is active.
        """
        if self.quiet_period is not None and self.quiet_period.is_active(now_ms):
            return math.inf
        return float(self.fresh_window)


__all__ = ["FetchPolicy", "QuietPeriod"]
