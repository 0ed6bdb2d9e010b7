# tests/test_fetch_engine.py
from __future__ import annotations

import json
from dataclasses import replace
from datetime import time as dtime

import httpx
import pytest
import respx
from httpx import Response

from kurproxy.fetch.cache import CacheEntry, MemoryCacheStore
from kurproxy.fetch.client import UpstreamClient
from kurproxy.fetch.engine import FetchEngine
from kurproxy.fetch.policy import FetchPolicy, QuietPeriod
from kurproxy.providers import BigparaGoldNormalizer, GenelparaNormalizer

URL = "https://upstream.test/altin.json"
KEY = "genelpara-altin"
GOOD_BODY = {"GA": {"alis": "2945,12", "satis": "2950,31", "d_yon": "caret-up"}}

NORMALIZER = GenelparaNormalizer()


def _policy(**overrides) -> FetchPolicy:
    base = FetchPolicy(
        target_url=URL,
        fresh_window=10,
        edge_ttl=60,
        timeout=2.0,
        retry_count=1,
        retry_backoff=0.5,
        headers={"Accept": "application/json"},
    )
    return replace(base, **overrides)


@pytest.fixture
def store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def engine(store):
    eng = FetchEngine(store, UpstreamClient(), timezone="Europe/Istanbul")
    try:
        yield eng
    finally:
        eng.close()


# -------------------------------- cache hit ----------------------------------------------


@respx.mock
def test_fresh_entry_served_without_upstream_call(engine, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))

    first = engine.serve(_policy(), KEY, NORMALIZER)
    assert first.outcome == "miss"
    assert first.status == 200
    assert route.call_count == 1

    second = engine.serve(_policy(), KEY, NORMALIZER)
    third = engine.serve(_policy(), KEY, NORMALIZER)
    assert second.outcome == third.outcome == "hit"
    assert route.call_count == 1
    # idempotent: byte-identical responses while fresh
    assert second.body == third.body == first.body
    assert second.headers == third.headers == first.headers


@respx.mock
def test_window_scenario_hit_at_5s_refetch_at_11s(engine, store, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    t0 = fake_clock.now_ms()

    engine.serve(_policy(), KEY, NORMALIZER)
    assert store.get(KEY).fetched_at == t0

    fake_clock.advance(5)
    assert engine.serve(_policy(), KEY, NORMALIZER).outcome == "hit"
    assert route.call_count == 1

    fake_clock.advance(6)
    resp = engine.serve(_policy(), KEY, NORMALIZER)
    assert resp.outcome == "miss"
    assert route.call_count == 2
    assert store.get(KEY).fetched_at == t0 + 11_000
    assert resp.headers["X-Cached-At"] == str(t0 + 11_000)


@respx.mock
def test_fresh_response_headers(engine, fake_clock):
    respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))

    resp = engine.serve(_policy(edge_ttl=45), KEY, NORMALIZER)

    assert resp.headers["Content-Type"] == "application/json; charset=utf-8"
    assert resp.headers["Cache-Control"] == "public, max-age=45"
    assert resp.headers["X-Cached-At"] == str(fake_clock.now_ms())
    payload = resp.json()
    assert payload["data"]["GA"]["buy"] == pytest.approx(2945.12)
    assert payload["data"]["GA"]["dir"] == {"buy": "up", "sell": "up"}


# -------------------------------- stale-on-error -----------------------------------------


@pytest.mark.parametrize(
    "failure",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("too slow"),
        Response(503),
        Response(404),
    ],
)
@respx.mock
def test_unreachable_upstream_serves_stale_entry_unchanged(engine, store, fake_clock, failure):
    route = respx.get(URL)
    route.mock(return_value=Response(200, json=GOOD_BODY))
    cached = engine.serve(_policy(), KEY, NORMALIZER)

    # far beyond the window: staleness does not matter for the fallback
    fake_clock.advance(7 * 24 * 3600)
    if isinstance(failure, Exception):
        route.mock(side_effect=failure)
    else:
        route.mock(return_value=failure)

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.outcome == "stale"
    assert resp.status == 200
    assert resp.body == cached.body
    assert resp.headers == cached.headers
    assert resp.error is not None
    assert store.get(KEY).body == cached.body


@respx.mock
def test_no_entry_and_network_failure_is_502(engine, fake_clock):
    respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.outcome == "error"
    assert resp.status == 502
    assert resp.headers["Content-Type"] == "application/json; charset=utf-8"
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "Fetch error"
    assert body["category"] == "upstream_network"
    assert "connection refused" in body["detail"]


@respx.mock
def test_no_entry_and_timeout_is_502_with_timeout_category(engine, fake_clock):
    respx.get(URL).mock(side_effect=httpx.ReadTimeout("too slow"))

    body = engine.serve(_policy(), KEY, NORMALIZER).json()

    assert body["ok"] is False
    assert body["category"] == "upstream_timeout"


# -------------------------------- retries -------------------------------------------------


@respx.mock
def test_two_500s_with_retry_count_2_is_502_upstream_failed(engine, fake_clock):
    route = respx.get(URL).mock(return_value=Response(500))

    resp = engine.serve(_policy(retry_count=2), KEY, NORMALIZER)

    assert route.call_count == 2
    assert resp.status == 502
    assert resp.json() == {
        "ok": False,
        "error": "Upstream failed",
        "category": "upstream_status",
        "status": 500,
    }


@pytest.mark.parametrize("retry_count, expected_calls", [(0, 1), (1, 1), (2, 2), (4, 4)])
@respx.mock
def test_retry_bound_counts_total_attempts(engine, fake_clock, retry_count, expected_calls):
    route = respx.get(URL).mock(side_effect=httpx.ConnectError("down"))

    engine.serve(_policy(retry_count=retry_count), KEY, NORMALIZER)

    assert route.call_count == expected_calls


@respx.mock
def test_retry_backoff_is_fixed_not_exponential(engine, fake_clock):
    respx.get(URL).mock(return_value=Response(502))

    engine.serve(_policy(retry_count=4, retry_backoff=0.5), KEY, NORMALIZER)

    # three waits of 0.5s between four attempts
    assert fake_clock.slept() == pytest.approx(1.5, rel=0, abs=1e-6)


@respx.mock
def test_retry_then_success_stores_fresh_entry(engine, store, fake_clock):
    route = respx.get(URL)
    route.mock(side_effect=[Response(500), Response(200, json=GOOD_BODY)])
    t0 = fake_clock.now_ms()

    resp = engine.serve(_policy(retry_count=2, retry_backoff=0.5), KEY, NORMALIZER)

    assert resp.outcome == "miss"
    assert route.call_count == 2
    # fetched_at is the moment the body was produced, after the backoff
    assert store.get(KEY).fetched_at == t0 + 500


# -------------------------------- normalization -----------------------------------------


@respx.mock
def test_malformed_json_is_200_with_empty_data(engine, store, fake_clock):
    respx.get(URL).mock(return_value=Response(200, text="<html>maintenance</html>"))

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.status == 200
    assert resp.outcome == "miss"
    payload = resp.json()
    assert payload["data"] == {}
    assert "invalid JSON" in payload["meta"]["error"]
    # still cached: upstream was reachable, only interpretation failed
    assert store.get(KEY) is not None


@respx.mock
def test_partial_json_keeps_good_records(engine, fake_clock):
    body = {"GA": {"alis": "2945,12", "satis": "n/a"}, "BROKEN": "not-a-dict"}
    respx.get(URL).mock(return_value=Response(200, json=body))

    payload = engine.serve(_policy(), KEY, NORMALIZER).json()

    assert list(payload["data"]) == ["GA"]
    assert payload["data"]["GA"]["sell"] is None
    assert payload["meta"]["warnings"] == ["BROKEN: not an object"]


# -------------------------------- deferred write ----------------------------------------


@respx.mock
def test_deferred_write_runs_after_response(engine, store, fake_clock):
    respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    pending: list = []

    resp = engine.serve(_policy(), KEY, NORMALIZER, defer=lambda fn, *a: pending.append((fn, a)))

    assert resp.outcome == "miss"
    assert store.get(KEY) is None
    assert len(pending) == 1

    fn, args = pending[0]
    fn(*args)
    assert store.get(KEY).body == resp.body


# -------------------------------- store failures ----------------------------------------


class _BrokenStore:
    def __init__(self, *, fail_get: bool = False, fail_put: bool = False):
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.entries: dict[str, CacheEntry] = {}

    def get(self, key):
        if self.fail_get:
            raise ConnectionError("store unavailable")
        return self.entries.get(key)

    def put(self, key, entry):
        if self.fail_put:
            raise ConnectionError("store unavailable")
        self.entries[key] = entry
        return True


@respx.mock
def test_store_read_failure_is_treated_as_absent(fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    store = _BrokenStore(fail_get=True)
    engine = FetchEngine(store, UpstreamClient())

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.outcome == "miss"
    assert route.call_count == 1
    assert KEY in store.entries


@respx.mock
def test_store_write_failure_does_not_change_response(fake_clock):
    respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    engine = FetchEngine(_BrokenStore(fail_put=True), UpstreamClient())

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.status == 200
    assert resp.outcome == "miss"


@respx.mock
def test_evicted_entry_is_a_plain_miss(engine, store, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    engine.serve(_policy(), KEY, NORMALIZER)
    store.clear()

    assert engine.serve(_policy(), KEY, NORMALIZER).outcome == "miss"
    assert route.call_count == 2


# -------------------------------- night mode --------------------------------------------


def _quiet_now() -> QuietPeriod:
    # 12:00 local sits inside 11:00-13:00
    return QuietPeriod(start=dtime(11, 0), end=dtime(13, 0), tz="Europe/Istanbul")


@respx.mock
def test_quiet_period_serves_any_cached_entry(engine, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    engine.serve(_policy(), KEY, NORMALIZER)

    fake_clock.advance(30 * 60)  # 12:30, far past the 10s window
    resp = engine.serve(_policy(quiet_period=_quiet_now()), KEY, NORMALIZER)

    assert resp.outcome == "hit"
    assert route.call_count == 1


@respx.mock
def test_quiet_period_still_fetches_when_nothing_cached(engine, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))

    resp = engine.serve(_policy(quiet_period=_quiet_now()), KEY, NORMALIZER)

    assert resp.outcome == "miss"
    assert route.call_count == 1


@respx.mock
def test_outside_quiet_period_window_applies(engine, fake_clock):
    route = respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))
    engine.serve(_policy(), KEY, NORMALIZER)

    fake_clock.advance(2 * 3600)  # 14:00, after the quiet period ends
    resp = engine.serve(_policy(quiet_period=_quiet_now()), KEY, NORMALIZER)

    assert resp.outcome == "miss"
    assert route.call_count == 2


def test_response_body_is_compact_utf8_json(engine, store, fake_clock):
    entry = CacheEntry.build(
        KEY,
        json.dumps(
            {"meta": {}, "data": {"GA": {"name": "Gram Altın"}}}, ensure_ascii=False
        ).encode(),
        fetched_at=fake_clock.now_ms(),
        fresh_window=10,
        edge_ttl=60,
    )
    store.put(KEY, entry)

    resp = engine.serve(_policy(), KEY, NORMALIZER)

    assert resp.outcome == "hit"
    assert resp.json()["data"]["GA"]["name"] == "Gram Altın"


# -------------------------------- parser failures ---------------------------------------


class _RaisingNormalizer(GenelparaNormalizer):
    name = "raising"

    def parse(self, body, now):
        raise RuntimeError("parser gave up")


@respx.mock
def test_markup_rejected_by_html_parser_is_200_fallback(engine, store, fake_clock):
    respx.get(URL).mock(return_value=Response(200, text="<![abc]]>x"))

    resp = engine.serve(_policy(), "haremaltin", BigparaGoldNormalizer())

    assert resp.status == 200
    assert resp.outcome == "miss"
    assert resp.json()["data"] == {}
    assert store.get("haremaltin") is not None


@respx.mock
def test_any_parser_exception_becomes_fallback_payload(engine, store, fake_clock):
    respx.get(URL).mock(return_value=Response(200, json=GOOD_BODY))

    resp = engine.serve(_policy(), KEY, _RaisingNormalizer())

    assert resp.status == 200
    payload = resp.json()
    assert payload["data"] == {}
    assert payload["meta"]["error"] == "RuntimeError: parser gave up"
    assert store.get(KEY).body == resp.body
