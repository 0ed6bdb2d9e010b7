# kurproxy/providers/tcmb.py
"""
Central Bank of the Republic of Turkey daily rates (kurlar/today.xml).

    <Tarih_Date Tarih="17.10.2026" Date="10/17/2026" Bulten_No="2026/198">
      <Currency CrossOrder="0" Kod="USD" CurrencyCode="USD">
        <Unit>1</Unit>
        <Isim>ABD DOLARI</Isim>
        <CurrencyName>US DOLLAR</CurrencyName>
        <ForexBuying>34.1956</ForexBuying>
        <ForexSelling>34.2572</ForexSelling>
        <BanknoteBuying>34.1717</BanknoteBuying>
        <BanknoteSelling>34.3086</BanknoteSelling>
        ...
      </Currency>
    </Tarih_Date>

Low maps to BanknoteBuying; high and close both map to BanknoteSelling.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime

from kurproxy.exceptions import NormalizationError
from kurproxy.utils import format_clock, format_tarih, parse_decimal

from .base import NormalizedResult, Normalizer, Quote


def _attr(el: ET.Element, name: str) -> str | None:
    lowered = name.lower()
    for k, v in el.attrib.items():
        if k.lower() == lowered and v.strip():
            return v.strip()
    return None


def _text(el: ET.Element, tag: str) -> str | None:
    child = el.find(tag)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


class TcmbNormalizer(Normalizer):
    name = "tcmb"
    source = "tcmb.gov.tr"

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            raise NormalizationError(self.name, f"invalid XML: {exc}") from exc

        raw_date = _attr(root, "Tarih")
        if raw_date is None:
            dated = root.find(".//Tarih_Date")
            raw_date = _attr(dated, "Tarih") if dated is not None else None
        if raw_date:
            tarih = f"{raw_date.replace('.', '-')} {format_clock(now)}"
        else:
            tarih = format_tarih(now)

        result = NormalizedResult(date=tarih)
        for block in root.iter("Currency"):
            code = _attr(block, "CurrencyCode") or _attr(block, "Kod")
            if not code:
                result.errors.append("currency without code skipped")
                continue
            key = f"{code}TRY"
            banknote_selling = parse_decimal(_text(block, "BanknoteSelling"))
            result.add(
                Quote(
                    code=key,
                    name=_text(block, "Isim") or _text(block, "CurrencyName") or "",
                    buy=parse_decimal(_text(block, "ForexBuying")),
                    sell=parse_decimal(_text(block, "ForexSelling")),
                    low=parse_decimal(_text(block, "BanknoteBuying")),
                    high=banknote_selling,
                    close=banknote_selling,
                    date=tarih,
                )
            )
        return result


__all__ = ["TcmbNormalizer"]
