"""
Live offer adapters on top of SerpApi.

Two adapters per aggregation cycle, at most three outbound calls:
  1) Amazon engine search + one ASIN hydration call
  2) Google Shopping search (eBay and other known retailers)
"""
import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, List, Optional

from shopwatch.core.config import Settings, settings as default_settings
from shopwatch.core.retailers import (
    AMAZON,
    canonicalize_vendor_url,
    extract_amazon_asin,
    hostname_from_url,
    is_search_url,
    retailer_for_host,
)
from shopwatch.core.serpapi import ProviderError, SerpApiClient, SerpResult, normalize_whitespace, parse_price_value
from shopwatch.services.ranking import pick_best

logger = logging.getLogger(__name__)

AMAZON_DEFAULT_ETA_DAYS = 4
SHOPPING_DEFAULT_ETA_DAYS = 5
MAX_SHOPPING_VENDORS = 2

_ETA_RE = re.compile(r"(\d+)\s*days?")


@dataclass
class CandidateOffer:
    vendor_id: str
    vendor_name: str
    title: str = ""
    price_cents: Optional[int] = None
    shipping_cents: int = 0
    eta_days: int = 5
    in_stock: bool = True
    product_url: str = ""
    listing_verified: bool = False
    listing_type: str = "ESTIMATED"
    # adapter-internal hints
    rank: int = 0
    asin: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.vendor_id and self.product_url and self.price_cents and self.price_cents > 0)


def to_cents(amount: Optional[float]) -> Optional[int]:
    if amount is None or amount <= 0:
        return None
    return int(round(amount * 100))


def parse_price_cents(value: Any) -> Optional[int]:
    """Structured number or the first decimal number in a formatted string, in cents."""
    return to_cents(parse_price_value(value))


def estimate_eta_days(text: Optional[str]) -> Optional[int]:
    """'Get it in 3 days' -> 3. Clamped to 1..14; None when no day count is present."""
    m = _ETA_RE.search(str(text or "").lower())
    if not m:
        return None
    return max(1, min(14, int(m.group(1))))


def _result_price_cents(r: SerpResult) -> Optional[int]:
    if r.extracted_price:
        return to_cents(r.extracted_price)
    return parse_price_cents(r.price)


class OfferProviders:
    """Adapter layer; owns nothing but a reference to the process-scoped SerpApi client."""

    def __init__(self, client: SerpApiClient, config: Optional[Settings] = None):
        self.client = client
        self.config = config or client.config or default_settings

    @property
    def enabled(self) -> bool:
        return bool(self.config.ENABLE_WEB_SEARCH_OFFERS and self.client.enabled)

    @property
    def timeout(self) -> float:
        return max(3.5, float(self.config.WEB_SEARCH_REQUEST_TIMEOUT_SECONDS or 5.5))

    async def fetch_amazon_offer(self, query: str, strategy: Any) -> Optional[CandidateOffer]:
        results = await self.client.search_offers(
            query, host="amazon.com", engine="amazon", limit=8, timeout=self.timeout
        )

        candidates: List[CandidateOffer] = []
        for idx, r in enumerate(results):
            asin = extract_amazon_asin(r.link)
            if not asin:
                continue
            candidates.append(
                CandidateOffer(
                    vendor_id=AMAZON.vendor_id,
                    vendor_name=AMAZON.name,
                    title=r.title,
                    price_cents=_result_price_cents(r),
                    eta_days=estimate_eta_days(r.delivery or r.snippet) or AMAZON_DEFAULT_ETA_DAYS,
                    product_url=canonicalize_vendor_url(AMAZON.vendor_id, r.link),
                    rank=idx,
                    asin=asin,
                )
            )

        seed = pick_best(candidates, strategy)
        if seed is None:
            return None

        # Second call: authoritative price/title/ETA for the chosen ASIN.
        try:
            detail = await self.client.fetch_amazon_product(seed.asin, timeout=self.timeout)
        except ProviderError as e:
            logger.warning("Amazon hydration failed for %s, keeping search result: %s", seed.asin, e)
            return seed
        if detail is None:
            return seed

        price_cents = to_cents(detail.extracted_price) or parse_price_cents(detail.price_text) or seed.price_cents
        url = detail.link or seed.product_url
        verified = "/dp/" in url
        return replace(
            seed,
            title=normalize_whitespace(detail.title) or seed.title,
            price_cents=price_cents,
            eta_days=estimate_eta_days(detail.delivery) or seed.eta_days or AMAZON_DEFAULT_ETA_DAYS,
            product_url=canonicalize_vendor_url(AMAZON.vendor_id, url),
            listing_verified=verified,
            listing_type="EXACT" if verified else seed.listing_type,
        )

    async def fetch_shopping_vendors(self, query: str, strategy: Any) -> List[CandidateOffer]:
        results = await self.client.search_offers(
            query, engine="google_shopping", limit=12, timeout=self.timeout
        )

        candidates: List[CandidateOffer] = []
        for idx, r in enumerate(results):
            host = hostname_from_url(r.link)
            # Amazon goes through the dedicated adapter
            if not host or "amazon." in host:
                continue
            retailer = retailer_for_host(host)
            if retailer is None or retailer.listing_path not in r.link or is_search_url(r.link):
                continue
            price_cents = _result_price_cents(r)
            if not price_cents:
                continue
            candidates.append(
                CandidateOffer(
                    vendor_id=retailer.vendor_id,
                    vendor_name=retailer.name,
                    title=r.title,
                    price_cents=price_cents,
                    eta_days=estimate_eta_days(r.delivery or r.snippet) or SHOPPING_DEFAULT_ETA_DAYS,
                    product_url=canonicalize_vendor_url(retailer.vendor_id, r.link),
                    rank=idx,
                )
            )

        # eBay first when present, then the cheapest other vendors
        out: List[CandidateOffer] = []
        seen: set[str] = set()
        ebay = pick_best([c for c in candidates if c.vendor_id == "web:ebay"], strategy)
        if ebay is not None:
            out.append(ebay)
            seen.add(ebay.vendor_id)

        for c in sorted(candidates, key=lambda c: c.price_cents or 0):
            if len(out) >= MAX_SHOPPING_VENDORS:
                break
            if c.vendor_id in seen:
                continue
            out.append(c)
            seen.add(c.vendor_id)
        return out

    async def fetch_top_offers(self, query: str, strategy: Any) -> List[CandidateOffer]:
        """
        Run every adapter concurrently. A failing adapter contributes nothing;
        it never cancels or fails the others.
        """
        if not self.enabled:
            return []
        q = normalize_whitespace(query)
        if not q:
            return []

        amazon, shopping = await asyncio.gather(
            self.fetch_amazon_offer(q, strategy),
            self.fetch_shopping_vendors(q, strategy),
            return_exceptions=True,
        )

        out: List[CandidateOffer] = []
        if isinstance(amazon, BaseException):
            logger.warning("Amazon offer adapter failed for %r: %s", q, amazon)
        elif amazon is not None:
            out.append(amazon)
        if isinstance(shopping, BaseException):
            logger.warning("Shopping offer adapter failed for %r: %s", q, shopping)
        else:
            out.extend(shopping)

        unique: List[CandidateOffer] = []
        seen: set[str] = set()
        for o in out:
            if not o.vendor_id or o.vendor_id in seen:
                continue
            seen.add(o.vendor_id)
            unique.append(o)
        return unique[: max(1, int(self.config.WEB_SEARCH_RETAILER_LIMIT or 4))]
