# kurproxy/providers/altinkaynak.py
"""
Altinkaynak SOAP data service (DataService.asmx, GetGold operation).

The request is a fixed SOAP 1.1 envelope carrying the service credentials in
an AuthHeader. The answer wraps an escaped XML document:

    <GetGoldResult>&lt;Kurlar&gt;&lt;Kur&gt;&lt;Kod&gt;GA&lt;/Kod&gt;...</GetGoldResult>

which unescapes to

    <Kurlar>
      <Kur>
        <Kod>GA</Kod><Aciklama>Gram Altın</Aciklama>
        <Alis>2945.12</Alis><Satis>2950.31</Satis>
        <GuncellenmeZamani>19.10.2026 14:30:00</GuncellenmeZamani>
      </Kur>
      ...
    </Kurlar>
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime
from xml.sax.saxutils import escape

from kurproxy.exceptions import NormalizationError
from kurproxy.utils import format_tarih, parse_decimal

from .base import NormalizedResult, Normalizer, Quote

SERVICE_URL = "http://data.altinkaynak.com/DataService.asmx"
SERVICE_NS = "http://data.altinkaynak.com/"
OPERATION = "GetGold"

_ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" \
xmlns:xsd="http://www.w3.org/2001/XMLSchema" \
xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Header>
    <AuthHeader xmlns="{ns}">
      <Username>{username}</Username>
      <Password>{password}</Password>
    </AuthHeader>
  </soap:Header>
  <soap:Body>
    <{operation} xmlns="{ns}" />
  </soap:Body>
</soap:Envelope>
"""


def soap_envelope(username: str, password: str, operation: str = OPERATION) -> bytes:
    """Build the fixed request body for one operation."""
    return _ENVELOPE.format(
        ns=SERVICE_NS,
        username=escape(username),
        password=escape(password),
        operation=operation,
    ).encode("utf-8")


def soap_headers(operation: str = OPERATION) -> dict[str, str]:
    return {
        "Content-Type": "text/xml; charset=utf-8",
        "Accept": "text/xml, application/xml;q=0.9, */*;q=0.8",
        "SOAPAction": f'"{SERVICE_NS}{operation}"',
    }


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(el: ET.Element, name: str) -> str | None:
    for child in el:
        if _local(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def _tarih(raw: str | None) -> str | None:
    # "19.10.2026 14:30:00" -> "19-10-2026 14:30:00"
    if not raw:
        return None
    day, _, clock = raw.partition(" ")
    return f"{day.replace('.', '-')} {clock}".strip()


class AltinkaynakNormalizer(Normalizer):
    name = "altinkaynak"
    source = "altinkaynak.com"

    def __init__(self, operation: str = OPERATION) -> None:
        self.operation = operation

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        try:
            envelope = ET.fromstring(body)
        except ET.ParseError as exc:
            raise NormalizationError(self.name, f"invalid SOAP envelope: {exc}") from exc

        result_tag = f"{self.operation}Result"
        inner = next((el for el in envelope.iter() if _local(el.tag) == result_tag), None)
        if inner is None or not (inner.text or "").strip():
            raise NormalizationError(self.name, f"{result_tag} missing from response")

        try:
            kurlar = ET.fromstring(inner.text.strip())
        except ET.ParseError as exc:
            raise NormalizationError(self.name, f"invalid {result_tag} payload: {exc}") from exc

        result = NormalizedResult(date=format_tarih(now))
        stamped = False
        for kur in kurlar.iter("Kur"):
            code = _child_text(kur, "Kod")
            if not code:
                result.errors.append("rate without code skipped")
                continue
            updated = _tarih(_child_text(kur, "GuncellenmeZamani"))
            if updated and not stamped:
                result.date = updated
                stamped = True
            result.add(
                Quote(
                    code=code,
                    name=_child_text(kur, "Aciklama") or code,
                    buy=parse_decimal(_child_text(kur, "Alis")),
                    sell=parse_decimal(_child_text(kur, "Satis")),
                    date=updated or result.date,
                )
            )
        return result


__all__ = [
    "AltinkaynakNormalizer",
    "soap_envelope",
    "soap_headers",
    "SERVICE_URL",
    "SERVICE_NS",
    "OPERATION",
]
