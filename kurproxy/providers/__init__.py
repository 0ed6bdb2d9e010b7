# kurproxy/providers/__init__.py
"""
Provider normalizers: raw upstream bytes -> cached JSON payload.

  - BigparaGoldNormalizer   HTML gold page (BeautifulSoup)
  - TcmbNormalizer          central bank XML
  - TruncgilNormalizer      JSON feed, {date, currencies} envelope
  - GenelparaNormalizer     JSON feed
  - AltinkaynakNormalizer   SOAP service (+ soap_envelope / soap_headers)
"""

from .altinkaynak import AltinkaynakNormalizer, soap_envelope, soap_headers
from .base import NormalizedResult, Normalizer, Quote, dump_payload
from .bigpara import BigparaGoldNormalizer
from .genelpara import GenelparaNormalizer
from .tcmb import TcmbNormalizer
from .truncgil import TruncgilNormalizer

__all__ = [
    "Normalizer",
    "NormalizedResult",
    "Quote",
    "dump_payload",
    "BigparaGoldNormalizer",
    "TcmbNormalizer",
    "TruncgilNormalizer",
    "GenelparaNormalizer",
    "AltinkaynakNormalizer",
    "soap_envelope",
    "soap_headers",
]
