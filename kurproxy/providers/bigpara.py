# kurproxy/providers/bigpara.py
"""
Gold prices scraped from the bigpara.hurriyet.com.tr/altin/ HTML page.

The page renders each instrument as a block whose class/id/href mentions a
slug ("gram-altin", "ceyrek-altin", ...). The prices live in data-alis /
data-satis attributes on that block or on the first element after it that
comes before the next instrument's block.
"""

from __future__ import annotations

from datetime import datetime

from bs4 import BeautifulSoup, Tag

from kurproxy.utils import format_tarih, parse_decimal

from .base import NormalizedResult, Normalizer, Quote

# slug -> (code, display name)
INSTRUMENTS: tuple[tuple[str, str, str], ...] = (
    ("gram-altin", "GRAMTIN", "Gram Altın"),
    ("ceyrek-altin", "CEYREKTIN", "Çeyrek Altın"),
    ("yarim-altin", "YARIMTIN", "Yarım Altın"),
    ("tam-altin", "TAMTIN", "Tam Altın"),
)

_ANCHOR_ATTRS = ("class", "id", "href", "data-name", "data-slug")


def _mentions(tag: Tag, slug: str) -> bool:
    for attr in _ANCHOR_ATTRS:
        value = tag.get(attr)
        if value is None:
            continue
        if isinstance(value, list):
            value = " ".join(value)
        if slug in str(value).lower():
            return True
    return False


def _price_attr(anchor: Tag, attr: str, other_slugs: tuple[str, ...]) -> str | None:
    """
    Value of `attr` on the anchor or the first element after it, stopping at
    the next element that belongs to another instrument.
    """
    if anchor.has_attr(attr):
        return str(anchor[attr])
    for el in anchor.next_elements:
        if not isinstance(el, Tag):
            continue
        if any(_mentions(el, other) for other in other_slugs):
            return None
        if el.has_attr(attr):
            return str(el[attr])
    return None


class BigparaGoldNormalizer(Normalizer):
    name = "bigpara"
    source = "bigpara.hurriyet.com.tr"

    def parse(self, body: bytes, now: datetime) -> NormalizedResult:
        soup = BeautifulSoup(self.decode_text(body), "html.parser")
        tarih = format_tarih(now)
        result = NormalizedResult(date=tarih)

        for slug, code, display in INSTRUMENTS:
            anchor = soup.find(lambda t, s=slug: isinstance(t, Tag) and _mentions(t, s))
            if anchor is None:
                result.errors.append(f"{code}: not found")
                continue
            others = tuple(s for s, _, _ in INSTRUMENTS if s != slug)
            alis = _price_attr(anchor, "data-alis", others)
            satis = _price_attr(anchor, "data-satis", others)
            if alis is None and satis is None:
                result.errors.append(f"{code}: no price attributes")
                continue
            result.add(
                Quote(
                    code=code,
                    name=display,
                    buy=parse_decimal(alis),
                    sell=parse_decimal(satis),
                    date=tarih,
                )
            )
        return result


__all__ = ["BigparaGoldNormalizer", "INSTRUMENTS"]
