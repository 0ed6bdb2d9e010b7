# tests/test_fetch_client.py
from __future__ import annotations

import httpx
import pytest
import respx
from httpx import Response

from kurproxy.exceptions import UpstreamNetworkError, UpstreamStatusError, UpstreamTimeoutError
from kurproxy.fetch.client import UpstreamClient
from kurproxy.fetch.policy import FetchPolicy

URL = "https://upstream.test/kurlar/today.xml"


def _policy(**kw) -> FetchPolicy:
    return FetchPolicy(target_url=kw.pop("target_url", URL), fresh_window=300, edge_ttl=180, **kw)


@respx.mock
def test_fetch_returns_raw_bytes_and_sends_headers():
    route = respx.get(URL).mock(return_value=Response(200, content=b"<Tarih_Date/>"))

    with UpstreamClient(user_agent="test-agent/1.0") as client:
        body = client.fetch(_policy(headers={"Referer": "https://www.tcmb.gov.tr/"}))

    assert body == b"<Tarih_Date/>"
    sent = route.calls.last.request
    assert sent.headers["User-Agent"] == "test-agent/1.0"
    assert sent.headers["Referer"] == "https://www.tcmb.gov.tr/"


@respx.mock
def test_fetch_posts_body():
    route = respx.post(URL).mock(return_value=Response(200, content=b"ok"))

    with UpstreamClient() as client:
        client.fetch(_policy(method="POST", body=b"<soap/>", headers={"Content-Type": "text/xml"}))

    sent = route.calls.last.request
    assert sent.method == "POST"
    assert sent.content == b"<soap/>"
    assert sent.headers["Content-Type"] == "text/xml"


@respx.mock
def test_follows_redirects():
    moved = Response(301, headers={"Location": "https://upstream.test/new"})
    respx.get(URL).mock(return_value=moved)
    respx.get("https://upstream.test/new").mock(return_value=Response(200, content=b"moved"))

    with UpstreamClient() as client:
        assert client.fetch(_policy()) == b"moved"


@pytest.mark.parametrize("status", [403, 404, 500, 503])
@respx.mock
def test_non_2xx_raises_status_error(status):
    respx.get(URL).mock(return_value=Response(status))

    with UpstreamClient() as client, pytest.raises(UpstreamStatusError) as ei:
        client.fetch(_policy())

    assert ei.value.status == status
    assert ei.value.category == "upstream_status"
    assert ei.value.url == URL


@respx.mock
def test_timeout_maps_to_timeout_error():
    respx.get(URL).mock(side_effect=httpx.ConnectTimeout("slow"))

    with UpstreamClient() as client, pytest.raises(UpstreamTimeoutError) as ei:
        client.fetch(_policy(timeout=1.5))

    assert "1.5s" in str(ei.value)


@respx.mock
def test_transport_failure_maps_to_network_error():
    respx.get(URL).mock(side_effect=httpx.ConnectError("name resolution failed"))

    with UpstreamClient() as client, pytest.raises(UpstreamNetworkError) as ei:
        client.fetch(_policy())

    assert ei.value.category == "upstream_network"
    assert "name resolution failed" in str(ei.value)


def test_injected_client_is_not_closed():
    http = httpx.Client()
    UpstreamClient(http=http).close()
    assert not http.is_closed
    http.close()
