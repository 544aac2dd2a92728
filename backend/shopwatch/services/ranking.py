"""
Offer ranking policies.

Works on anything exposing price_cents / shipping_cents / eta_days / in_stock
(ORM offers, normalized offers, provider candidates).

BALANCED orders exactly like BEST_PRICE (total, then ETA); clients rely on
the two returning the same recommendation.
"""
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

# Sort value for a candidate whose price is still unknown
_MISSING_PRICE = 10**12
_MISSING_ETA = 99


class Strategy(str, Enum):
    BALANCED = "BALANCED"
    BEST_PRICE = "BEST_PRICE"
    FASTEST_SHIPPING = "FASTEST_SHIPPING"

    @classmethod
    def parse(cls, value: Any) -> "Strategy":
        """Case-insensitive; anything unknown is BALANCED."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return cls.BALANCED


def total_cents(offer: Any) -> int:
    price = getattr(offer, "price_cents", None)
    shipping = getattr(offer, "shipping_cents", None) or 0
    return (price if price else _MISSING_PRICE) + shipping


def _eta(offer: Any) -> int:
    eta = getattr(offer, "eta_days", None)
    return eta if eta else _MISSING_ETA


def ordering_key(strategy: Any) -> Callable[[Any], tuple]:
    if Strategy.parse(strategy) is Strategy.FASTEST_SHIPPING:
        return lambda o: (_eta(o), total_cents(o))
    # BEST_PRICE and BALANCED
    return lambda o: (total_cents(o), _eta(o))


def rank_offers(offers: Iterable[Any], strategy: Any) -> List[Any]:
    """In-stock offers, best first. sorted() is stable so input order breaks full ties."""
    in_stock = [o for o in offers if o is not None and getattr(o, "in_stock", True)]
    return sorted(in_stock, key=ordering_key(strategy))


def pick_best(offers: Iterable[Any], strategy: Any) -> Optional[Any]:
    ranked = rank_offers(offers, strategy)
    return ranked[0] if ranked else None


def recommended_offer_id(offers: Iterable[Any], strategy: Any) -> Optional[str]:
    best = pick_best(offers, strategy)
    return getattr(best, "id", None) if best is not None else None


def best_offer(offers: Iterable[Any]) -> Optional[Any]:
    """Lowest price+shipping, then lowest ETA; the first one wins a full tie."""
    return pick_best(offers, Strategy.BEST_PRICE)


def select_tracked_offer(
    offers: Sequence[Any],
    preferred_offer_id: Optional[str] = None,
    preferred_vendor_id: Optional[str] = None,
    preferred_product_url: Optional[str] = None,
) -> Optional[Any]:
    """
    The offer a watch item follows: its pinned offer when that still exists
    (matched by id, then vendor, then URL), otherwise the best offer.
    """
    if preferred_offer_id:
        for o in offers:
            if getattr(o, "id", None) == preferred_offer_id:
                return o
    if preferred_vendor_id:
        for o in offers:
            if getattr(o, "vendor_id", None) == preferred_vendor_id:
                return o
    if preferred_product_url:
        wanted = str(preferred_product_url).strip()
        for o in offers:
            if str(getattr(o, "product_url", "") or "").strip() == wanted:
                return o
    return best_offer(offers)
