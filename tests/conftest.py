# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import sys
import types
from collections.abc import Iterator
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kurproxy.fetch import cache as cache_mod

# 2026-10-19 12:00:00 Europe/Istanbul (09:00 UTC): outside the default TCMB quiet hours.
DAYTIME_EPOCH = 1_792_400_400.0


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """
    Autouse: pin the environment knobs tests rely on and drop the
    process-wide cache store between tests.
    """
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("PROXY_TIMEZONE", "Europe/Istanbul")
    monkeypatch.setenv("REFRESH_ENABLED", "0")
    monkeypatch.delenv("TCMB_QUIET_HOURS", raising=False)
    cache_mod.reset_default()
    yield
    cache_mod.reset_default()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> Iterator[types.SimpleNamespace]:
    """
    Freeze wall time and capture sleeps.

    - Overrides time.time() so cache ages and quiet periods see our clock.
    - Overrides time.sleep(dt) to *advance* the frozen clock by dt and accumulate total slept time.

    Exposes:
      now_ms() -> int           current wall time in epoch millis
      advance(dt)               manually advance without calling sleep()
      slept() -> float          total seconds 'slept'
      reset_slept()             zero the sleep accumulator
    """
    t = {"now": DAYTIME_EPOCH, "slept": 0.0}

    def time_time():
        return t["now"]

    def sleep(dt):
        dt = float(dt)
        if dt <= 0:
            return
        t["slept"] += dt
        t["now"] += dt

    monkeypatch.setattr("time.time", time_time)
    monkeypatch.setattr("time.sleep", sleep)

    yield types.SimpleNamespace(
        now_ms=lambda: int(t["now"] * 1000),
        advance=lambda dt: t.__setitem__("now", t["now"] + float(dt)),
        slept=lambda: t["slept"],
        reset_slept=lambda: t.__setitem__("slept", 0.0),
    )
