"""Offer Service - merge live provider offers, top up fallbacks, rank."""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from shopwatch.core.retailers import friendly_vendor_name, hostname_from_url
from shopwatch.core.serpapi import normalize_whitespace
from shopwatch.models.offer import Offer
from shopwatch.models.product import Product
from shopwatch.schemas.offers import (
    OfferCandidate,
    OfferSearchResponse,
    ProductOut,
    RankedOffersResponse,
)
from shopwatch.services.normalizer import normalize_offer
from shopwatch.services.providers import CandidateOffer, OfferProviders
from shopwatch.services.ranking import Strategy, recommended_offer_id

logger = logging.getLogger(__name__)

MIN_OFFERS = 3
DEFAULT_BASE_PRICE_CENTS = 1999
MIN_FALLBACK_PRICE_CENTS = 99
DEFAULT_ETA_DAYS = 5


@dataclass(frozen=True)
class FallbackVendor:
    vendor_id: str
    vendor_name: str
    search_url: str  # formatted with the url-quoted query
    price_mult: float
    eta_days: int


# Order matters: earlier vendors are used first.
FALLBACK_VENDORS: List[FallbackVendor] = [
    FallbackVendor("fallback:ebay", "eBay", "https://www.ebay.com/sch/i.html?_nkw={q}", 0.92, 6),
    FallbackVendor("fallback:walmart", "Walmart", "https://www.walmart.com/search?q={q}", 0.98, 4),
    FallbackVendor("fallback:target", "Target", "https://www.target.com/s?searchTerm={q}", 1.03, 5),
    FallbackVendor("fallback:bestbuy", "Best Buy", "https://www.bestbuy.com/site/searchpage.jsp?st={q}", 1.05, 5),
]


def fallback_price_cents(base_price_cents: int, price_mult: float) -> int:
    return max(MIN_FALLBACK_PRICE_CENTS, int(math.floor(base_price_cents * price_mult + 0.5)))


def product_query(product: Product) -> str:
    return normalize_whitespace(f"{product.brand or ''} {product.title or ''}")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _insert_for(db: AsyncSession):
    """Dialect insert with ON CONFLICT support (SQLite locally, Postgres in prod)."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class OfferService:
    """
    Builds the ranked offer set for a product.

    Provider trouble only ever means fewer (or fallback) offers; storage
    errors propagate to the caller.
    """

    def __init__(self, db: AsyncSession, providers: Optional[OfferProviders] = None):
        self.db = db
        self.providers = providers

    async def _offers_for(self, product_id: str, in_stock_only: bool = True) -> List[Offer]:
        # rows are written with Core upserts, so never trust the identity map here
        stmt = (
            select(Offer)
            .where(Offer.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        if in_stock_only:
            stmt = stmt.where(Offer.in_stock.is_(True))
        result = await self.db.execute(stmt.order_by(Offer.created_at, Offer.id))
        return list(result.scalars().all())

    async def upsert_offer(self, product: Product, candidate: CandidateOffer) -> None:
        """
        One complete row per (product, vendor); vendor_id is never rewritten.

        A single INSERT .. ON CONFLICT DO UPDATE, so concurrent refreshes of
        the same product end with the last write instead of a key violation.
        """
        product_url = candidate.product_url.strip()
        values = {
            "vendor_name": candidate.vendor_name or friendly_vendor_name(hostname_from_url(product_url)),
            "title": candidate.title or product.title,
            "price_cents": candidate.price_cents,
            "shipping_cents": candidate.shipping_cents if candidate.shipping_cents is not None else 0,
            "eta_days": candidate.eta_days or DEFAULT_ETA_DAYS,
            "in_stock": candidate.in_stock is not False,
            "product_url": product_url,
        }
        insert = _insert_for(self.db)
        stmt = insert(Offer).values(product_id=product.id, vendor_id=candidate.vendor_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Offer.product_id, Offer.vendor_id],
            set_={**{k: getattr(stmt.excluded, k) for k in values}, "updated_at": func.now()},
        )
        await self.db.execute(stmt)

    async def refresh_web_offers(self, product: Product, strategy: Strategy) -> int:
        """Pull live candidates and merge them. Returns how many rows were written."""
        if self.providers is None or not self.providers.enabled:
            return 0
        query = product_query(product)
        if not query:
            return 0

        try:
            candidates = await self.providers.fetch_top_offers(query, strategy)
        except Exception as e:
            logger.warning("Live offer refresh failed for product %s: %s", product.id, e)
            return 0

        written = 0
        for candidate in candidates:
            if not candidate.is_valid:
                continue
            await self.upsert_offer(product, candidate)
            written += 1
        await self.db.commit()
        logger.info("Merged %d live offers for product %s", written, product.id)
        return written

    async def top_up_fallback_offers(self, product: Product) -> int:
        """
        Make sure at least MIN_OFFERS in-stock offers exist by adding search-page
        offers on well-known vendors, priced off the cheapest existing offer.
        """
        in_stock = await self._offers_for(product.id)
        if len(in_stock) >= MIN_OFFERS:
            return 0

        present = {o.vendor_id for o in in_stock}
        # Out-of-stock rows still own their (product, vendor) key
        taken = {o.vendor_id for o in await self._offers_for(product.id, in_stock_only=False)}
        prices = [o.price_cents for o in in_stock if o.price_cents]
        base = min(prices) if prices else DEFAULT_BASE_PRICE_CENTS
        q = quote(product_query(product) or product.title or "", safe="")

        insert = _insert_for(self.db)
        added = 0
        for fb in FALLBACK_VENDORS:
            if len(present) >= MIN_OFFERS:
                break
            if fb.vendor_id in taken:
                continue
            # another aggregation may have added the same vendor since we looked
            result = await self.db.execute(
                insert(Offer)
                .values(
                    product_id=product.id,
                    vendor_id=fb.vendor_id,
                    vendor_name=fb.vendor_name,
                    title=product.title,
                    price_cents=fallback_price_cents(base, fb.price_mult),
                    shipping_cents=0,
                    eta_days=fb.eta_days,
                    in_stock=True,
                    product_url=fb.search_url.format(q=q),
                )
                .on_conflict_do_nothing(index_elements=[Offer.product_id, Offer.vendor_id])
            )
            present.add(fb.vendor_id)
            added += max(result.rowcount or 0, 0)

        await self.db.commit()
        return added

    async def get_ranked_offers(
        self,
        product_id: str,
        strategy: Optional[str] = None,
        refresh_live: bool = False,
    ) -> RankedOffersResponse:
        resolved = Strategy.parse(strategy)
        product = await self.db.get(Product, product_id)
        if product is None:
            return RankedOffersResponse(offers=[], recommended_offer_id=None, strategy=resolved.value)

        if refresh_live:
            await self.refresh_web_offers(product, resolved)
            await self.top_up_fallback_offers(product)

        offers = [normalize_offer(o) for o in await self._offers_for(product_id)]
        return RankedOffersResponse(
            offers=offers,
            recommended_offer_id=recommended_offer_id(offers, resolved),
            strategy=resolved.value,
        )

    async def find_or_create_products(self, query: str, brand_hint: Optional[str], limit: int) -> List[Product]:
        q = normalize_whitespace(query).lower()
        if not q:
            return []

        like = f"%{_escape_like(q)}%"
        result = await self.db.execute(
            select(Product)
            .where(
                or_(
                    func.lower(Product.title).like(like, escape="\\"),
                    func.lower(Product.brand).like(like, escape="\\"),
                )
            )
            .order_by(Product.created_at, Product.id)
            .limit(limit)
        )
        products = list(result.scalars().all())
        if products:
            return products

        created = Product(
            title=normalize_whitespace(query),
            brand=normalize_whitespace(brand_hint) or "Unknown",
        )
        self.db.add(created)
        await self.db.commit()
        return [created]

    async def search_offer_candidates(
        self,
        query: str,
        brand_hint: Optional[str] = None,
        strategy: Optional[str] = None,
        limit: int = 8,
    ) -> OfferSearchResponse:
        resolved = Strategy.parse(strategy)
        try:
            take = max(1, min(20, int(limit or 8)))
        except (TypeError, ValueError):
            take = 8

        candidates: List[OfferCandidate] = []
        for product in await self.find_or_create_products(query, brand_hint, take):
            bundle = await self.get_ranked_offers(product.id, resolved.value, refresh_live=True)
            best = None
            if bundle.recommended_offer_id:
                best = next((o for o in bundle.offers if o.id == bundle.recommended_offer_id), None)
            elif bundle.offers:
                best = bundle.offers[0]
            candidates.append(
                OfferCandidate(
                    product=ProductOut.model_validate(product),
                    offers=bundle.offers,
                    recommended_offer_id=bundle.recommended_offer_id,
                    best_offer=best,
                )
            )
        return OfferSearchResponse(candidates=candidates, strategy=resolved.value)
