"""Persisted offer -> wire shape."""
from typing import Any

from shopwatch.core.retailers import is_listing_url
from shopwatch.schemas.offers import NormalizedOffer


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def normalize_offer(offer: Any) -> NormalizedOffer:
    """
    Total and side-effect free: missing attributes become ''/0/False.

    listing_verified only when the URL matches a vendor product-page marker
    and carries no search marker; everything else is ESTIMATED.
    """
    product_url = str(getattr(offer, "product_url", None) or "").strip()
    listing_verified = is_listing_url(product_url)

    return NormalizedOffer(
        id=getattr(offer, "id", None),
        vendor_id=str(getattr(offer, "vendor_id", None) or ""),
        vendor_name=str(getattr(offer, "vendor_name", None) or ""),
        product_id=str(getattr(offer, "product_id", None) or ""),
        title=str(getattr(offer, "title", None) or ""),
        price_cents=_int(getattr(offer, "price_cents", 0)),
        shipping_cents=_int(getattr(offer, "shipping_cents", 0)),
        eta_days=_int(getattr(offer, "eta_days", 0)),
        in_stock=bool(getattr(offer, "in_stock", False)),
        product_url=product_url,
        listing_verified=listing_verified,
        listing_type="EXACT" if listing_verified else "ESTIMATED",
        item_condition=None,
    )
