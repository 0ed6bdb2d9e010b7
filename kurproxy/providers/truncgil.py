# kurproxy/providers/truncgil.py
"""
Truncgil finance feed (finans.truncgil.com/v4/today.json).

    {
      "Update_Date": "2026-10-19 14:30:02",
      "USD": {"Type": "Currency", "Change": "0.12", "Name": "ABD Doları",
              "Buying": "34.1956", "Selling": "34.2572"},
      "GRA": {"Type": "Gold", "Change": "-0.40", "Name": "Gram Altın",
              "Buying": "2.945,12", "Selling": "2.950,31"},
      ...
    }

Served with its own envelope: {"date": ..., "currencies": {code: quote}}.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from kurproxy.exceptions import NormalizationError
from kurproxy.utils import direction_from_change, format_tarih, parse_decimal

from .base import NormalizedResult, Normalizer, Quote

_METADATA_KEYS = {"Update_Date", "Meta_Data", "meta"}


class TruncgilNormalizer(Normalizer):
    name = "truncgil"
    source = "finans.truncgil.com"

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        data = self.load_json(body)
        if not isinstance(data, dict):
            raise NormalizationError(
                self.name, f"expected a JSON object, got {type(data).__name__}"
            )

        date = data.get("Update_Date")
        result = NormalizedResult(date=str(date) if date else format_tarih(now))

        for code, row in data.items():
            if code in _METADATA_KEYS:
                continue
            if not isinstance(row, dict):
                result.errors.append(f"{code}: not an object")
                continue
            direction = direction_from_change(parse_decimal(row.get("Change")))
            result.add(
                Quote(
                    code=str(code),
                    name=str(row.get("Name") or code),
                    buy=parse_decimal(row.get("Buying")),
                    sell=parse_decimal(row.get("Selling")),
                    date=result.date,
                    buy_dir=direction,
                    sell_dir=direction,
                )
            )
        return result

    def envelope(
        self,
        result: NormalizedResult,
        now: datetime,
        *,
        error: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "date": result.date,
            "currencies": {code: q.to_dict() for code, q in result.quotes.items()},
        }
        if error:
            payload["error"] = error
        return payload


__all__ = ["TruncgilNormalizer"]
