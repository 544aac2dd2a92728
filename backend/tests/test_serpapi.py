"""Tests for the SerpApi client, response cache and result parsing."""

import asyncio

import httpx
import pytest

from conftest import make_settings
from shopwatch.core.serpapi import (
    ProviderConfigError,
    ProviderHTTPError,
    ProviderPayloadError,
    ProviderTimeoutError,
    ResponseCache,
    SerpApiClient,
    parse_amazon_product,
    parse_price_value,
    parse_serp_results,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def recording_transport(handler):
    """MockTransport that records every request it serves."""
    calls = []

    def _handle(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.MockTransport(_handle), calls


def make_client(handler, **overrides):
    transport, calls = recording_transport(handler)
    config = make_settings(SERPAPI_API_KEY="secret-key", **overrides)
    return SerpApiClient(config=config, transport=transport), calls


def test_cache_expires_after_ttl():
    clock = FakeClock()
    cache = ResponseCache(ttl_seconds=300, max_entries=10, clock=clock)
    cache.set("k", {"v": 1})

    clock.now += 299
    assert cache.get("k") == {"v": 1}
    clock.now += 2
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_evicts_oldest_insert():
    cache = ResponseCache(ttl_seconds=300, max_entries=2, clock=FakeClock())
    cache.set("a", {"v": "a"})
    cache.set("b", {"v": "b"})
    cache.set("c", {"v": "c"})

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("b") == {"v": "b"}
    assert cache.get("c") == {"v": "c"}


def test_parse_serp_results_mixed_shapes():
    """Test every known array is flattened, duplicates and bad links dropped."""
    payload = {
        "organic_results": [
            {"title": "Widget  on eBay", "link": "https://www.ebay.com/itm/111", "snippet": "Ships in 3 days"},
            {"title": "No link"},
            {"title": "Relative", "link": "/itm/222"},
        ],
        "shopping_results": [
            {"title": "Widget", "product_link": "https://www.walmart.com/ip/333", "extracted_price": 19.5},
            {"title": "Dup", "link": "https://www.ebay.com/itm/111"},
        ],
        "inline_shopping_results": [
            {"title": "Inline", "link": "https://www.target.com/p/444", "price": "$21.00"},
        ],
        "ads": [{"link": "https://ads.example.com"}],
    }
    results = parse_serp_results(payload)

    assert [r.link for r in results] == [
        "https://www.ebay.com/itm/111",
        "https://www.walmart.com/ip/333",
        "https://www.target.com/p/444",
    ]
    assert results[0].title == "Widget on eBay"
    assert results[0].kind == "organic"
    assert results[1].extracted_price == 19.5
    assert results[2].price == "$21.00"


def test_parse_serp_results_host_filter_and_limit():
    payload = {
        "organic_results": [
            {"link": "https://www.ebay.com/itm/1"},
            {"link": "https://www.walmart.com/ip/2"},
            {"link": "https://ebay.com/itm/3"},
        ]
    }
    assert [r.link for r in parse_serp_results(payload, host_filter="www.ebay.com")] == [
        "https://www.ebay.com/itm/1",
        "https://ebay.com/itm/3",
    ]
    assert len(parse_serp_results(payload, limit=1)) == 1
    assert parse_serp_results(["not", "a", "dict"]) == []


def test_list_valued_delivery_is_joined():
    payload = {"organic_results": [{"link": "https://www.amazon.com/dp/B0ABCDEFGH", "delivery": ["FREE delivery", "in 2 days"]}]}
    assert parse_serp_results(payload)[0].delivery == "FREE delivery in 2 days"


@pytest.mark.parametrize(
    "value,expected",
    [
        (499.99, 499.99),
        ("$599.99", 599.99),
        ("From $499.99", 499.99),
        ("$1,402.58", 1402.58),
        ("free", None),
        (0, None),
        (None, None),
        (True, None),
    ],
)
def test_parse_price_value(value, expected):
    assert parse_price_value(value) == expected


def test_parse_amazon_product():
    payload = {
        "product_results": {"title": "Acme  Widget", "link": "https://www.amazon.com/whatever"},
        "buybox_winner": {"price": "$24.99", "delivery": "Get it in 2 days"},
    }
    detail = parse_amazon_product("B0ABCDEFGH", payload)
    assert detail.title == "Acme Widget"
    assert detail.link == "https://www.amazon.com/dp/B0ABCDEFGH"
    assert detail.price_text == "$24.99"
    assert detail.extracted_price == 24.99
    assert detail.delivery == "Get it in 2 days"


def test_parse_amazon_product_empty_payload():
    detail = parse_amazon_product("B0ABCDEFGH", {})
    assert detail.extracted_price is None
    assert detail.title == ""


@pytest.mark.asyncio
async def test_query_is_cached():
    """Test the second identical query is served from the cache."""
    client, calls = make_client(lambda r: httpx.Response(200, json={"organic_results": []}))

    first = await client.query("widget", engine="google")
    second = await client.query("widget", engine="google")

    assert first == second
    assert len(calls) == 1
    assert calls[0].url.params["q"] == "widget"
    assert calls[0].url.params["api_key"] == "secret-key"
    metrics = client.get_metrics()
    assert metrics["attempts"] == 1
    assert metrics["successes"] == 1
    assert metrics["cache_size"] == 1
    assert "secret-key" not in metrics["last_url"]


@pytest.mark.asyncio
async def test_no_cache_bypasses_cache():
    client, calls = make_client(lambda r: httpx.Response(200, json={"organic_results": []}))

    await client.query("widget", no_cache=True)
    await client.query("widget", no_cache=True)

    assert len(calls) == 2
    assert calls[0].url.params["no_cache"] == "true"
    assert len(client.cache) == 0


@pytest.mark.asyncio
async def test_host_scopes_google_query():
    client, calls = make_client(lambda r: httpx.Response(200, json={}))
    await client.query("widget", host="www.ebay.com")
    assert calls[0].url.params["q"] == "site:ebay.com widget"


@pytest.mark.asyncio
async def test_http_error_is_recorded():
    client, _ = make_client(lambda r: httpx.Response(503, json={"error": "busy"}))

    with pytest.raises(ProviderHTTPError) as exc_info:
        await client.query("widget")

    assert exc_info.value.status_code == 503
    metrics = client.get_metrics()
    assert metrics["failures"] == 1
    assert metrics["last_status_code"] == 503
    assert metrics["cache_size"] == 0


@pytest.mark.asyncio
async def test_error_payload_raises():
    client, _ = make_client(lambda r: httpx.Response(200, json={"error": "Invalid API key"}))
    with pytest.raises(ProviderPayloadError):
        await client.query("widget")


@pytest.mark.asyncio
async def test_non_json_body_raises():
    client, _ = make_client(lambda r: httpx.Response(200, text="<html>nope</html>"))
    with pytest.raises(ProviderPayloadError):
        await client.query("widget")


@pytest.mark.asyncio
async def test_transport_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client, _ = make_client(handler)
    with pytest.raises(ProviderTimeoutError):
        await client.query("widget")
    assert client.metrics.failures == 1


@pytest.mark.asyncio
async def test_hanging_transport_is_aborted():
    """Test a reply that never arrives is cut off by the hard timeout."""
    async def handler(request):
        await asyncio.sleep(30)
        return httpx.Response(200, json={})

    client, _ = make_client(handler)
    with pytest.raises(ProviderTimeoutError, match="timed out after 2.0s"):
        await client.query("widget", timeout=0.1)

    metrics = client.get_metrics()
    assert metrics["failures"] == 1
    assert "timed out" in metrics["last_error"]
    assert metrics["cache_size"] == 0


@pytest.mark.asyncio
async def test_disabled_without_key():
    transport, calls = recording_transport(lambda r: httpx.Response(200, json={}))
    client = SerpApiClient(config=make_settings(SERPAPI_API_KEY=""), transport=transport)

    assert client.enabled is False
    with pytest.raises(ProviderConfigError):
        await client.query("widget")
    assert calls == []


@pytest.mark.asyncio
async def test_search_offers_blank_query_makes_no_call():
    client, calls = make_client(lambda r: httpx.Response(200, json={}))
    assert await client.search_offers("   ") == []
    assert calls == []


@pytest.mark.asyncio
async def test_fetch_amazon_product_rejects_bad_asin():
    client, calls = make_client(lambda r: httpx.Response(200, json={}))
    assert await client.fetch_amazon_product("not-an-asin") is None
    assert calls == []
