# kurproxy/api/routes.py
from __future__ import annotations

from dataclasses import dataclass

from kurproxy.config import AppConfig
from kurproxy.fetch.policy import FetchPolicy, QuietPeriod
from kurproxy.providers import (
    AltinkaynakNormalizer,
    BigparaGoldNormalizer,
    GenelparaNormalizer,
    Normalizer,
    TcmbNormalizer,
    TruncgilNormalizer,
    soap_envelope,
    soap_headers,
)
from kurproxy.providers.altinkaynak import SERVICE_URL as ALTINKAYNAK_URL

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
XML_ACCEPT = "application/xml,text/xml;q=0.9,*/*;q=0.8"
JSON_ACCEPT = "application/json,text/plain;q=0.9,*/*;q=0.8"


@dataclass(frozen=True)
class Route:
    name: str
    path: str
    cache_key: str
    policy: FetchPolicy
    normalizer: Normalizer


def build_routes(cfg: AppConfig) -> dict[str, Route]:
    """
    The fixed route table, keyed by inbound path.

    All values are startup constants; only the shared upstream knobs
    (user agent, timeout, timezone, TCMB quiet hours, SOAP credentials) come
    from the environment.
    """
    up = cfg.upstream
    ua = up.user_agent
    timeout = up.timeout_sec

    routes = [
        Route(
            name="haremaltin",
            path="/haremaltin",
            cache_key="haremaltin",
            policy=FetchPolicy(
                target_url="https://bigpara.hurriyet.com.tr/altin/",
                fresh_window=120,
                edge_ttl=60,
                timeout=timeout,
                headers={"User-Agent": ua, "Accept": HTML_ACCEPT},
            ),
            normalizer=BigparaGoldNormalizer(),
        ),
        Route(
            name="tcmb",
            path="/tcmb",
            cache_key="tcmb-today",
            policy=FetchPolicy(
                target_url="https://www.tcmb.gov.tr/kurlar/today.xml",
                fresh_window=300,
                edge_ttl=180,
                timeout=timeout,
                headers={
                    "User-Agent": ua,
                    "Accept": XML_ACCEPT,
                    "Referer": "https://www.tcmb.gov.tr/",
                },
                quiet_period=QuietPeriod.from_hours(up.tcmb_quiet_hours, up.timezone),
            ),
            normalizer=TcmbNormalizer(),
        ),
        Route(
            name="truncgil",
            path="/truncgil",
            cache_key="truncgil-today",
            policy=FetchPolicy(
                target_url="https://finans.truncgil.com/v4/today.json",
                fresh_window=60,
                edge_ttl=60,
                timeout=timeout,
                retry_count=2,
                retry_backoff=1.0,
                headers={"User-Agent": ua, "Accept": JSON_ACCEPT},
            ),
            normalizer=TruncgilNormalizer(),
        ),
        Route(
            name="genelpara",
            path="/genelpara",
            cache_key="genelpara-altin",
            policy=FetchPolicy(
                target_url="https://api.genelpara.com/embed/altin.json",
                fresh_window=120,
                edge_ttl=60,
                timeout=timeout,
                retry_count=2,
                retry_backoff=1.0,
                headers={
                    "User-Agent": ua,
                    "Accept": JSON_ACCEPT,
                    "Referer": "https://www.genelpara.com/",
                },
            ),
            normalizer=GenelparaNormalizer(),
        ),
        Route(
            name="altinkaynak",
            path="/altinkaynak",
            cache_key="altinkaynak-gold",
            policy=FetchPolicy(
                target_url=ALTINKAYNAK_URL,
                fresh_window=120,
                edge_ttl=60,
                timeout=timeout,
                retry_count=2,
                retry_backoff=1.0,
                method="POST",
                body=soap_envelope(up.altinkaynak_username, up.altinkaynak_password),
                headers={"User-Agent": ua, **soap_headers()},
            ),
            normalizer=AltinkaynakNormalizer(),
        ),
    ]
    return {r.path: r for r in routes}


def route_by_name(routes: dict[str, Route], name: str) -> Route | None:
    for route in routes.values():
        if route.name == name:
            return route
    return None


__all__ = ["Route", "build_routes", "route_by_name"]
