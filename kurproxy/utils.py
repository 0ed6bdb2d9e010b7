# kurproxy/utils.py
"""
Shared utility functions used across the codebase.

This module centralizes clock and number helpers so the engine, the
normalizers and the tests all agree on one notion of "now".
"""
from __future__ import annotations

import math
import re
import time
from datetime import datetime
from zoneinfo import ZoneInfo

_NUMBER_NOISE_RE = re.compile(r"[\s%₺$€]")


def now_ms() -> int:
    """
    Return the current wall-clock time in epoch milliseconds.

    Reads time.time() at call time so tests can monkeypatch the clock.
    """
    return int(time.time() * 1000)


def local_datetime(epoch_ms: int, tz_name: str) -> datetime:
    """
    Convert epoch milliseconds to an aware datetime in the given IANA zone.
    """
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=ZoneInfo(tz_name))


def format_tarih(dt: datetime) -> str:
    """
    Format a datetime the way the upstream Turkish feeds do.

    Example: "19-10-2026 14:30:05"
    """
    return dt.strftime("%d-%m-%Y %H:%M:%S")


def format_clock(dt: datetime) -> str:
    """
    Example: "14:30:05"
    """
    return dt.strftime("%H:%M:%S")


def parse_decimal(raw: object) -> float | None:
    """
    Parse a loosely formatted decimal into a float, or None.

    Accepts the formats seen across the providers:
      - "1234.56" / "1234,56"
      - "1.234,56" (Turkish grouping) / "1,234.56"
      - "%0,45", "2.345,67 ₺"

    When both separators are present the right-most one is the decimal mark.
    A lone comma is always a decimal mark. Anything unparseable, empty, NaN or
    infinite yields None (never 0).
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    text = _NUMBER_NOISE_RE.sub("", str(raw))
    if not text:
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            return None
        text = text.replace(",", ".")
    elif text.count(".") > 1:
        # "1.234.567": grouping dots only
        text = text.replace(".", "")

    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def direction_from_change(change: float | None) -> str:
    """
    Map a signed change into the direction hint used in quote records.
    """
    if change is None or change == 0:
        return ""
    return "up" if change > 0 else "down"


__all__ = [
    "now_ms",
    "local_datetime",
    "format_tarih",
    "format_clock",
    "parse_decimal",
    "direction_from_change",
]
