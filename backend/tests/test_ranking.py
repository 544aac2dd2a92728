"""Tests for offer ranking."""

from types import SimpleNamespace

import pytest

from shopwatch.services.ranking import (
    Strategy,
    best_offer,
    pick_best,
    rank_offers,
    recommended_offer_id,
    select_tracked_offer,
)


def offer(id, price, eta=5, shipping=0, in_stock=True, vendor_id="", url=""):
    return SimpleNamespace(
        id=id,
        price_cents=price,
        shipping_cents=shipping,
        eta_days=eta,
        in_stock=in_stock,
        vendor_id=vendor_id or f"v-{id}",
        product_url=url or f"https://example.com/{id}",
    )


OFFER_SETS = [
    [offer("a", 1000, 3), offer("b", 900, 7), offer("c", 900, 2)],
    [offer("a", 1000, 1, shipping=200), offer("b", 1150, 9)],
    [offer("a", 500, 5), offer("b", 500, 5)],
    [offer("a", 2500, 2, in_stock=False), offer("b", 3000, 8)],
]


def test_best_price_orders_by_total_then_eta():
    """Test BEST_PRICE picks the lowest price+shipping, ETA breaks ties."""
    ranked = rank_offers(OFFER_SETS[0], Strategy.BEST_PRICE)
    assert [o.id for o in ranked] == ["c", "b", "a"]


def test_shipping_counts_toward_total():
    ranked = rank_offers(OFFER_SETS[1], "BEST_PRICE")
    assert [o.id for o in ranked] == ["b", "a"]


@pytest.mark.parametrize("offers", OFFER_SETS)
def test_balanced_matches_best_price(offers):
    """Test BALANCED recommends exactly what BEST_PRICE does."""
    assert recommended_offer_id(offers, Strategy.BALANCED) == recommended_offer_id(offers, Strategy.BEST_PRICE)


def test_fastest_shipping_orders_by_eta_then_total():
    offers = [offer("a", 1000, 3), offer("b", 900, 3), offer("c", 100, 6)]
    assert [o.id for o in rank_offers(offers, Strategy.FASTEST_SHIPPING)] == ["b", "a", "c"]


def test_full_tie_keeps_input_order():
    offers = OFFER_SETS[2]
    assert pick_best(offers, Strategy.BEST_PRICE).id == "a"
    assert pick_best(list(reversed(offers)), Strategy.BEST_PRICE).id == "b"


def test_out_of_stock_never_recommended():
    assert recommended_offer_id(OFFER_SETS[3], Strategy.FASTEST_SHIPPING) == "b"
    assert recommended_offer_id([offer("a", 100, in_stock=False)], Strategy.BEST_PRICE) is None


def test_empty_input():
    assert rank_offers([], Strategy.BALANCED) == []
    assert pick_best([], Strategy.BALANCED) is None
    assert best_offer([]) is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("best_price", Strategy.BEST_PRICE),
        ("Fastest_Shipping", Strategy.FASTEST_SHIPPING),
        ("balanced", Strategy.BALANCED),
        ("cheapest", Strategy.BALANCED),
        (None, Strategy.BALANCED),
        ("", Strategy.BALANCED),
        (Strategy.BEST_PRICE, Strategy.BEST_PRICE),
    ],
)
def test_strategy_parse(raw, expected):
    assert Strategy.parse(raw) is expected


def test_select_tracked_offer_prefers_pin():
    """Test a pinned offer is followed even when it is not the cheapest."""
    offers = [
        offer("a", 1000, vendor_id="web:amazon", url="https://www.amazon.com/dp/B000000001"),
        offer("b", 500, vendor_id="web:ebay"),
    ]
    assert select_tracked_offer(offers, preferred_offer_id="a").id == "a"
    assert select_tracked_offer(offers, preferred_offer_id="gone", preferred_vendor_id="web:amazon").id == "a"
    assert select_tracked_offer(
        offers, preferred_product_url="https://www.amazon.com/dp/B000000001"
    ).id == "a"
    assert select_tracked_offer(offers, preferred_offer_id="gone").id == "b"
    assert select_tracked_offer(offers).id == "b"
