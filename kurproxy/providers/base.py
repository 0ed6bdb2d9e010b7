# kurproxy/providers/base.py
"""
Common shapes for provider normalizers.

A normalizer turns the raw upstream body into the JSON payload that gets
cached and served. Concrete providers implement parse(); the base class owns
the envelope and the error contract:

  - numeric fields that fail to parse become None (never 0, never raise)
  - a record that cannot be read is skipped and noted in result.errors
  - a body that cannot be read at all raises NormalizationError, which the
    engine turns into fallback() (empty data + error marker)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from kurproxy.exceptions import NormalizationError
from kurproxy.utils import format_tarih


@dataclass
class Quote:
    code: str
    name: str = ""
    buy: float | None = None
    sell: float | None = None
    low: float | None = None
    high: float | None = None
    close: float | None = None
    date: str | None = None
    buy_dir: str = ""
    sell_dir: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "buy": self.buy,
            "sell": self.sell,
            "low": self.low,
            "high": self.high,
            "close": self.close,
            "date": self.date,
            "dir": {"buy": self.buy_dir, "sell": self.sell_dir},
        }


@dataclass
class NormalizedResult:
    date: str
    quotes: dict[str, Quote] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def add(self, quote: Quote) -> None:
        self.quotes[quote.code] = quote


class Normalizer:
    """
    Base normalizer: (bytes, now) -> JSON-ready payload dict.

    `now` is an aware datetime in the proxy's local zone; it feeds the "date"
    stamps and meta.time, keeping parse() free of clock reads.
    """

    name: str = "base"
    source: str | None = None

    def __call__(self, body: bytes, now: datetime) -> dict[str, Any]:
        try:
            result = self.parse(body, now)
        except NormalizationError:
            raise
        except Exception as exc:  # noqa: BLE001
            # Parser libraries raise their own types (e.g. bs4 ParserRejectedMarkup).
            raise NormalizationError(self.name, f"{type(exc).__name__}: {exc}") from exc
        return self.envelope(result, now)

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        raise NotImplementedError

    def envelope(
        self,
        result: NormalizedResult,
        now: datetime,
        *,
        error: str | None = None,
    ) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "time": int(now.timestamp() * 1000),
            "date": result.date,
        }
        if self.source:
            meta["source"] = self.source
        if error:
            meta["error"] = error
        if result.errors:
            meta["warnings"] = list(result.errors)
        return {
            "meta": meta,
            "data": {code: q.to_dict() for code, q in result.quotes.items()},
        }

    def fallback(self, now: datetime, error: str) -> dict[str, Any]:
        return self.envelope(NormalizedResult(date=format_tarih(now)), now, error=error)

    # ---- helpers for subclasses ------------------------------------------------------

    def decode_text(self, body: bytes) -> str:
        return body.decode("utf-8", errors="replace")

    def load_json(self, body: bytes) -> Any:
        try:
            return json.loads(self.decode_text(body))
        except json.JSONDecodeError as exc:
            raise NormalizationError(self.name, f"invalid JSON: {exc.msg}") from exc


def dump_payload(payload: dict[str, Any]) -> bytes:
    """Serialize a payload the way it is cached and served (compact UTF-8 JSON)."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


__all__ = ["Quote", "NormalizedResult", "Normalizer", "dump_payload"]
