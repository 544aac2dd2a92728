"""Tests for pushing the watchlist to the shared remote mirror."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_settings
from shopwatch.services import remote_watchlist
from shopwatch.services.remote_watchlist import (
    build_remote_items,
    domain_from_url,
    normalize_email,
    push_remote_watchlist,
    schedule_remote_sync,
    sync_remote_watchlist_from_local,
)

ENABLED = dict(ENABLE_SHARED_REMOTE_WATCHLIST_SYNC=True, SHARED_REMOTE_WATCHLIST_BASE_URL="https://mirror.example.com/api/")


def capture(status=200, body=None):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, json=body if body is not None else {"ok": True})

    return httpx.MockTransport(handler), requests


def test_helpers():
    assert normalize_email("  Shopper@Example.COM ") == "shopper@example.com"
    assert normalize_email("not-an-email") == ""
    assert domain_from_url("https://www.ebay.com/itm/1") == "ebay.com"
    assert domain_from_url("") == ""


def test_build_remote_items():
    product = SimpleNamespace(title="Widget")
    items = [
        SimpleNamespace(product_id="p1", product=product, preferred_offer_id=None, preferred_vendor_id=None,
                        preferred_product_url=None, preferred_vendor_name=None),
        SimpleNamespace(product_id="p2", product=product, preferred_offer_id=None, preferred_vendor_id=None,
                        preferred_product_url=None, preferred_vendor_name=None),
    ]
    offers = [
        SimpleNamespace(id="o1", product_id="p1", vendor_id="web:ebay", price_cents=1999, shipping_cents=0,
                        eta_days=5, in_stock=True, product_url="https://www.ebay.com/itm/1"),
        SimpleNamespace(id="o2", product_id="p1", vendor_id="web:walmart", price_cents=2999, shipping_cents=0,
                        eta_days=2, in_stock=True, product_url="https://www.walmart.com/ip/2"),
    ]

    remote = build_remote_items(items, offers)

    assert remote == [
        {"url": "https://www.ebay.com/itm/1", "title": "Widget", "domain": "ebay.com", "price": 19.99, "currency": "USD"}
    ]


@pytest.mark.asyncio
async def test_push_posts_items():
    transport, requests = capture()
    config = make_settings(**ENABLED)
    items = [{"url": "https://www.ebay.com/itm/1", "title": "Widget", "domain": "ebay.com", "price": 19.99, "currency": "USD"}]

    result = await push_remote_watchlist("Shopper@Example.com", items, config=config, transport=transport)

    assert result["ok"] is True
    assert result["endpoint"] == "https://mirror.example.com/api/watchlist/sync"
    request = requests[0]
    assert request.method == "POST"
    assert request.url.params["email"] == "shopper@example.com"
    assert json.loads(request.content) == {"items": items}


@pytest.mark.asyncio
async def test_push_failure_raises():
    transport, _ = capture(status=502, body={"error": "down"})
    with pytest.raises(ValueError):
        await push_remote_watchlist("a@b.com", [], config=make_settings(**ENABLED), transport=transport)


@pytest.mark.asyncio
async def test_push_skipped_when_disabled_or_invalid():
    transport, requests = capture()

    result = await push_remote_watchlist("a@b.com", [], config=make_settings(), transport=transport)
    assert result == {"ok": False, "skipped": True, "reason": "disabled"}

    result = await push_remote_watchlist("nope", [], config=make_settings(**ENABLED), transport=transport)
    assert result["reason"] == "invalid_email"
    assert requests == []


@pytest.mark.asyncio
async def test_sync_from_local_rows(session_factory, build):
    user = await build.user("mirror@example.com")
    product = await build.product("Widget")
    await build.offer(product, "web:ebay", 1500, product_url="https://www.ebay.com/itm/9")
    await build.offer(product, "web:target", 1400, in_stock=False, product_url="https://www.target.com/p/9")
    await build.watch_item(user, product)
    transport, requests = capture()

    result = await sync_remote_watchlist_from_local(user.id, session_factory, config=make_settings(**ENABLED), transport=transport)

    assert result["ok"] is True
    body = json.loads(requests[0].content)
    assert body["items"] == [
        {"url": "https://www.ebay.com/itm/9", "title": "Widget", "domain": "ebay.com", "price": 15.0, "currency": "USD"}
    ]


@pytest.mark.asyncio
async def test_sync_unknown_user(session_factory):
    transport, requests = capture()
    assert await sync_remote_watchlist_from_local("missing", session_factory, config=make_settings(**ENABLED), transport=transport) is None
    assert requests == []


@pytest.mark.asyncio
async def test_schedule_disabled_returns_none(session_factory):
    assert schedule_remote_sync("u1", session_factory, make_settings()) is None


@pytest.mark.asyncio
async def test_scheduled_push_failure_is_contained(session_factory, monkeypatch):
    """Test a failing background push never raises out of its task."""
    failing = AsyncMock(side_effect=RuntimeError("mirror unreachable"))
    monkeypatch.setattr(remote_watchlist, "sync_remote_watchlist_from_local", failing)

    task = schedule_remote_sync("u1", session_factory, make_settings(**ENABLED))
    await task

    assert task.exception() is None
    failing.assert_awaited_once()
