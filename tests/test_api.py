from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from fakes import FakeYahoo, quote_payload
from valora.config import Settings
from valora.main import create_app
from valora.schemas import ProxiedResource, ScoredQuote

AAPL = httpx.Response(
    200, json=quote_payload("AAPL", regularMarketPrice=150, trailingPE=25, forwardPE=20)
)


@pytest.fixture
def make_client(settings: Settings):
    clients: list[TestClient] = []

    def _make(handler) -> TestClient:
        client = TestClient(create_app(settings, transport=httpx.MockTransport(handler)))
        client.__enter__()  # run lifespan
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


def test_quote_scenario(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)

    resp = client.get("/api/quote", params={"symbol": "aapl"})

    assert resp.status_code == 200
    assert resp.json() == {
        "symbol": "AAPL",
        "price": 150,
        "pe": 25,
        "forwardPE": 20,
        "score": 5,
    }


def test_missing_symbol_is_400(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)

    for params in ({}, {"symbol": ""}, {"symbol": "   "}):
        resp = client.get("/api/quote", params=params)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing symbol query parameter"}
    assert fake.requests == []


def test_invalid_symbol_is_400(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)

    resp = client.get("/api/quote", params={"symbol": "AAPL; DROP"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid symbol"}
    assert fake.requests == []


def test_miss_writes_one_entry_under_quote_key(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)
    cache = client.app.state.cache

    client.get("/api/quote", params={"symbol": "aapl"})

    assert len(cache) == 1
    cached = cache.get("quote:AAPL")
    assert isinstance(cached, ScoredQuote)
    assert cached.score == 5


def test_cache_hit_skips_upstream(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)

    first = client.get("/api/quote", params={"symbol": "AAPL"})
    second = client.get("/api/quote", params={"symbol": "aapl"})

    assert first.json() == second.json()
    assert len(fake.quote_requests) == 1


def test_preseeded_cache_is_served_without_any_upstream_call(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)
    client.app.state.cache.set(
        "quote:MSFT",
        ScoredQuote(symbol="MSFT", price=400.0, trailing_pe=None, forward_pe=None, score=50),
    )

    resp = client.get("/api/quote", params={"symbol": "msft"})

    assert resp.json() == {
        "symbol": "MSFT",
        "price": 400.0,
        "pe": None,
        "forwardPE": None,
        "score": 50,
    }
    assert fake.requests == []


def test_unknown_ticker_is_404_and_not_cached(make_client) -> None:
    fake = FakeYahoo(quote_steps=[httpx.Response(404)])
    client = make_client(fake)

    resp = client.get("/api/quote", params={"symbol": "ZZZZZ"})

    assert resp.status_code == 404
    assert resp.json() == {"error": "Ticker not found"}
    assert len(fake.quote_requests) == 1
    assert len(client.app.state.cache) == 0


def test_empty_result_is_404(make_client) -> None:
    fake = FakeYahoo(
        quote_steps=[httpx.Response(200, json={"quoteResponse": {"result": [], "error": None}})]
    )
    client = make_client(fake)

    assert client.get("/api/quote", params={"symbol": "ZZZZZ"}).status_code == 404


def test_auth_exhaustion_is_400_not_404(make_client) -> None:
    fake = FakeYahoo(quote_steps=[httpx.Response(401)])
    client = make_client(fake)

    resp = client.get("/api/quote", params={"symbol": "AAPL"})

    assert resp.status_code == 400
    assert "error" in resp.json()


@pytest.mark.parametrize(
    "step",
    [
        httpx.Response(500),
        httpx.Response(200, text="not json"),
        httpx.ConnectError("down"),
    ],
)
def test_upstream_failures_are_502(make_client, settings, step) -> None:
    fake = FakeYahoo(quote_steps=[step])
    client = make_client(fake)
    client.app.state.fetcher._sleep = _no_sleep

    resp = client.get("/api/quote", params={"symbol": "AAPL"})

    assert resp.status_code == 502
    body = resp.json()
    assert set(body) == {"error"}
    assert "query1" not in body["error"]


async def _no_sleep(_: float) -> None:
    return None


def test_undecodable_quote_body_is_502(make_client) -> None:
    def corrupt_gzip(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-encoding": "gzip"}, stream=httpx.ByteStream(b"not gzip")
        )

    client = make_client(FakeYahoo(quote_steps=[corrupt_gzip]))

    resp = client.get("/api/quote", params={"symbol": "AAPL"})

    assert resp.status_code == 502
    assert set(resp.json()) == {"error"}
    assert client.app.state.cache.get("quote:AAPL") is None


def test_health_is_always_ok(make_client) -> None:
    client = make_client(FakeYahoo(quote_steps=[httpx.ConnectError("down")]))
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_version_and_metrics(make_client) -> None:
    client = make_client(FakeYahoo(quote_steps=[AAPL]))
    client.get("/api/quote", params={"symbol": "AAPL"})

    assert client.get("/version").json()["service"].startswith("valora:")
    metrics = client.get("/metrics").text
    assert "valora_http_requests_total" in metrics
    assert "valora_upstream_attempts_total" in metrics


# --- passthrough proxy ---


class ProxyTarget:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        r = self.response
        return httpx.Response(r.status_code, headers=r.headers, content=r.content)


def test_proxy_requires_url(make_client) -> None:
    client = make_client(ProxyTarget(httpx.Response(200)))
    resp = client.get("/api/proxy")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing url query parameter"}


def test_proxy_caches_json_by_url(make_client) -> None:
    target = ProxyTarget(httpx.Response(200, json={"rates": [1, 2]}))
    client = make_client(target)
    url = "https://api.example.com/rates?base=USD"

    first = client.get("/api/proxy", params={"url": url})
    second = client.get("/api/proxy", params={"url": url})

    assert first.json() == second.json() == {"rates": [1, 2]}
    assert target.calls == 1
    assert client.app.state.cache.get(url) == ProxiedResource(body={"rates": [1, 2]}, is_json=True)


def test_proxy_passes_text_through(make_client) -> None:
    client = make_client(ProxyTarget(httpx.Response(200, text="a,b\n1,2\n")))

    resp = client.get("/api/proxy", params={"url": "https://example.com/data.csv"})

    assert resp.status_code == 200
    assert resp.text == "a,b\n1,2\n"


def test_proxy_forwards_upstream_status(make_client) -> None:
    client = make_client(ProxyTarget(httpx.Response(403)))

    resp = client.get("/api/proxy", params={"url": "https://example.com/secret"})

    assert resp.status_code == 403
    assert resp.json() == {"error": "Upstream responded with status 403"}


def test_proxy_fetch_failure_is_500(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)

    resp = client.get("/api/proxy", params={"url": "https://example.com/x"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch resource"}


def test_proxy_ignores_non_proxy_value_cached_under_url(make_client) -> None:
    target = ProxyTarget(httpx.Response(200, json={"ok": True}))
    client = make_client(target)
    url = "https://example.com/quote"
    client.app.state.cache.set(
        url,
        ScoredQuote(symbol="AAPL", price=150.0, trailing_pe=25.0, forward_pe=20.0, score=5),
    )

    resp = client.get("/api/proxy", params={"url": url})

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert target.calls == 1
    assert client.app.state.cache.get(url) == ProxiedResource(body={"ok": True}, is_json=True)


def test_quote_ignores_non_quote_value_cached_under_quote_key(make_client) -> None:
    fake = FakeYahoo(quote_steps=[AAPL])
    client = make_client(fake)
    client.app.state.cache.set("quote:AAPL", ProxiedResource(body="junk", is_json=False))

    resp = client.get("/api/quote", params={"symbol": "AAPL"})

    assert resp.status_code == 200
    assert resp.json()["price"] == 150.0
    assert len(fake.quote_requests) == 1
    assert isinstance(client.app.state.cache.get("quote:AAPL"), ScoredQuote)
