from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

AMAZON_ASIN_RE = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})\b", re.IGNORECASE)
EBAY_ITEM_RE = re.compile(r"https?://(?:www\.)?ebay\.com/itm/(\d+)", re.IGNORECASE)

# A URL containing any of these is a product-detail page ...
LISTING_MARKERS: tuple[str, ...] = (
    "/dp/",
    "/gp/product/",
    "/itm/",
    "walmart.com/ip/",
    "target.com/p/",
    "bestbuy.com/site/",
    "newegg.com/p/",
)

# ... unless it also carries one of these search-page markers.
SEARCH_MARKERS: tuple[str, ...] = (
    "/s?",
    "/search",
    "?q=",
    "&q=",
    "_nkw=",
)


@dataclass(frozen=True)
class Retailer:
    vendor_id: str
    name: str
    domain: str
    listing_path: str  # path segment that marks a product page on this site


# Retailers the shopping adapter accepts. Amazon is handled by its own adapter.
KNOWN_RETAILERS: list[Retailer] = [
    Retailer("web:ebay", "eBay", "ebay.com", "/itm/"),
    Retailer("web:walmart", "Walmart", "walmart.com", "/ip/"),
    Retailer("web:target", "Target", "target.com", "/p/"),
    Retailer("web:bestbuy", "Best Buy", "bestbuy.com", "/site/"),
    Retailer("web:newegg", "Newegg", "newegg.com", "/p/"),
]

AMAZON = Retailer("web:amazon", "Amazon", "amazon.com", "/dp/")

_BY_VENDOR_ID = {r.vendor_id: r for r in KNOWN_RETAILERS + [AMAZON]}


def hostname_from_url(url: Optional[str]) -> str:
    """Lowercased host without a leading 'www.'; '' when unparseable."""
    try:
        host = urlsplit(str(url or "").strip()).hostname or ""
    except ValueError:
        return ""
    return re.sub(r"^www\.", "", host.lower())


def retailer_for_host(host: str) -> Optional[Retailer]:
    for r in KNOWN_RETAILERS:
        if host.endswith(r.domain):
            return r
    return None


def friendly_vendor_name(host: Optional[str]) -> str:
    """
    Readable vendor name from a hostname:
      "www.bestbuy.com" => "Best Buy"
      "shop.example.co.uk" => "Shop"
    """
    h = re.sub(r"^www\.", "", (host or "").strip().lower())
    if not h:
        return "Vendor"
    for r in KNOWN_RETAILERS + [AMAZON]:
        if h.endswith(r.domain):
            return r.name
    first = h.split(".")[0] or h
    return first[:1].upper() + first[1:]


def extract_amazon_asin(url: Optional[str]) -> str:
    m = AMAZON_ASIN_RE.search(str(url or ""))
    return m.group(1).upper() if m else ""


def is_search_url(url: Optional[str]) -> bool:
    u = str(url or "").strip().lower()
    return any(marker in u for marker in SEARCH_MARKERS)


def is_listing_url(url: Optional[str]) -> bool:
    """True when the URL looks like a product-detail page and not a search page."""
    u = str(url or "").strip().lower()
    if is_search_url(u):
        return False
    return any(marker in u for marker in LISTING_MARKERS)


def canonicalize_url(url: Optional[str]) -> str:
    """Force https and drop the fragment. Unparseable input passes through."""
    raw = str(url or "").strip()
    if not raw:
        return ""
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw
    return urlunsplit(("https", parts.netloc, parts.path, parts.query, ""))


def canonicalize_vendor_url(vendor_id: str, url: Optional[str]) -> str:
    """
    Vendor-specific canonical listing URL.

    Amazon and eBay have stable item ids and are rebuilt from them; the rest
    keep their path but lose the query string when the product segment is there.
    """
    raw = canonicalize_url(url)
    if not raw:
        return ""

    if vendor_id == AMAZON.vendor_id:
        asin = extract_amazon_asin(raw)
        return f"https://www.amazon.com/dp/{asin}" if asin else raw

    if vendor_id == "web:ebay":
        m = EBAY_ITEM_RE.search(raw)
        return f"https://www.ebay.com/itm/{m.group(1)}" if m else raw

    retailer = _BY_VENDOR_ID.get(vendor_id)
    if retailer is None:
        return raw

    parts = urlsplit(raw)
    host = (parts.hostname or "").lower()
    if retailer.domain in host and retailer.listing_path in parts.path:
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return raw
