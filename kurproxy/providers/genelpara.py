# kurproxy/providers/genelpara.py
"""
GenelPara embed feed (api.genelpara.com/embed/altin.json).

    {"GA": {"satis": "2950.31", "alis": "2945.12", "degisim": "0,45",
            "d_oran": "%0,45", "d_yon": "caret-up"}, ...}
"""

from __future__ import annotations

from datetime import datetime

from kurproxy.exceptions import NormalizationError
from kurproxy.utils import direction_from_change, format_tarih, parse_decimal

from .base import NormalizedResult, Normalizer, Quote

NAMES = {
    "GA": "Gram Altın",
    "C": "Çeyrek Altın",
    "Y": "Yarım Altın",
    "T": "Tam Altın",
    "CMR": "Cumhuriyet Altını",
    "ATA": "Ata Altın",
    "GAG": "Gram Gümüş",
    "ONS": "Ons Altın",
    "USD": "ABD Doları",
    "EUR": "Euro",
    "GBP": "İngiliz Sterlini",
}

_CARETS = {"caret-up": "up", "caret-down": "down"}


class GenelparaNormalizer(Normalizer):
    name = "genelpara"
    source = "genelpara.com"

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        data = self.load_json(body)
        if not isinstance(data, dict):
            raise NormalizationError(
                self.name, f"expected a JSON object, got {type(data).__name__}"
            )

        tarih = format_tarih(now)
        result = NormalizedResult(date=tarih)
        for code, row in data.items():
            if not isinstance(row, dict):
                result.errors.append(f"{code}: not an object")
                continue
            direction = _CARETS.get(str(row.get("d_yon") or "").strip().lower())
            if direction is None:
                direction = direction_from_change(parse_decimal(row.get("degisim")))
            result.add(
                Quote(
                    code=str(code),
                    name=NAMES.get(str(code), str(code)),
                    buy=parse_decimal(row.get("alis")),
                    sell=parse_decimal(row.get("satis")),
                    date=tarih,
                    buy_dir=direction,
                    sell_dir=direction,
                )
            )
        return result


__all__ = ["GenelparaNormalizer", "NAMES"]
