from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    # Fallback: any other non-empty value -> True
    return True


def _parse_hhmm(token: str, name: str) -> tuple[int, int]:
    try:
        hh, mm = token.strip().split(":", 1)
        hour, minute = int(hh), int(mm)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must look like HH:MM-HH:MM") from err
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Environment variable {name} has an out-of-range time {token!r}")
    return hour, minute


def _getenv_hours(name: str, default: str) -> tuple[tuple[int, int], tuple[int, int]] | None:
    """
    Parse a daily window like "19:00-09:00". Empty disables the window.
    """
    raw = os.getenv(name, default).strip()
    if not raw:
        return None
    if "-" not in raw:
        raise ValueError(f"Environment variable {name} must look like HH:MM-HH:MM; got {raw!r}")
    start, end = raw.split("-", 1)
    return _parse_hhmm(start, name), _parse_hhmm(end, name)


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

# Upstreams reject obvious bot agents; present a desktop browser.
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"

# Public credentials published with the Altinkaynak data service.
ALTINKAYNAK_DEFAULT_USER = "AltinkaynakWebServis"
ALTINKAYNAK_DEFAULT_PASSWORD = "AltinkaynakWebServis"


@dataclass(frozen=True)
class UpstreamConfig:
    user_agent: str
    timeout_sec: float
    timezone: str
    tcmb_quiet_hours: tuple[tuple[int, int], tuple[int, int]] | None
    altinkaynak_username: str
    altinkaynak_password: str


@dataclass(frozen=True)
class CacheConfig:
    backend: str  # "memory" | "redis"
    redis_url: str
    key_prefix: str
    retention_sec: int
    max_entries: int


@dataclass(frozen=True)
class RefreshConfig:
    enabled: bool
    interval_sec: float
    queue_name: str
    rq_redis_url: str


@dataclass(frozen=True)
class AppConfig:
    upstream: UpstreamConfig
    cache: CacheConfig
    refresh: RefreshConfig
    log_level: str


def load_settings() -> AppConfig:
    rq_redis_url = _getenv_str("RQ_REDIS_URL", DEFAULT_REDIS_URL)

    upstream = UpstreamConfig(
        user_agent=_getenv_str("PROXY_USER_AGENT", DEFAULT_USER_AGENT),
        timeout_sec=_getenv_float("UPSTREAM_TIMEOUT_SEC", 10.0),
        timezone=_getenv_str("PROXY_TIMEZONE", "Europe/Istanbul"),
        tcmb_quiet_hours=_getenv_hours("TCMB_QUIET_HOURS", "19:00-09:00"),
        altinkaynak_username=_getenv_str("ALTINKAYNAK_USERNAME", ALTINKAYNAK_DEFAULT_USER),
        altinkaynak_password=_getenv_str("ALTINKAYNAK_PASSWORD", ALTINKAYNAK_DEFAULT_PASSWORD),
    )

    backend = _getenv_str("CACHE_BACKEND", "memory").lower()
    if backend not in {"memory", "redis"}:
        raise ValueError(f"CACHE_BACKEND must be 'memory' or 'redis'; got {backend!r}")
    cache = CacheConfig(
        backend=backend,
        redis_url=_getenv_str("CACHE_REDIS_URL", rq_redis_url),
        key_prefix=_getenv_str("CACHE_KEY_PREFIX", "kurproxy:cache:"),
        retention_sec=_getenv_int("CACHE_RETENTION_SEC", 86400),
        max_entries=_getenv_int("CACHE_MAX_ENTRIES", 256),
    )

    refresh = RefreshConfig(
        enabled=_getenv_bool("REFRESH_ENABLED", False),
        interval_sec=_getenv_float("REFRESH_INTERVAL_SEC", 60.0),
        queue_name=_getenv_str("QUEUE_NAME", "refresh"),
        rq_redis_url=rq_redis_url,
    )

    return AppConfig(
        upstream=upstream,
        cache=cache,
        refresh=refresh,
        log_level=_getenv_str("LOG_LEVEL", "INFO").upper(),
    )


__all__ = [
    "UpstreamConfig",
    "CacheConfig",
    "RefreshConfig",
    "AppConfig",
    "load_settings",
    "DEFAULT_USER_AGENT",
    "DEFAULT_REDIS_URL",
]
