"""Watchlist Service - watch items with their tracked offer."""
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopwatch.core.config import Settings, settings as default_settings
from shopwatch.models.offer import Offer
from shopwatch.models.product import Product
from shopwatch.models.user import User
from shopwatch.models.watch_item import WatchItem
from shopwatch.schemas.offers import NormalizedOffer
from shopwatch.schemas.watchlist import AlertRules, WatchItemOut
from shopwatch.services.normalizer import normalize_offer
from shopwatch.services.offer_service import OfferService
from shopwatch.services.ranking import Strategy, select_tracked_offer
from shopwatch.services.remote_watchlist import schedule_remote_sync

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    pass


def delta_pct(last_seen_cents: Optional[int], offer: Optional[NormalizedOffer]) -> float:
    """Signed change vs. the baseline, in percent (negative = cheaper)."""
    baseline = last_seen_cents or (offer.price_cents if offer else 0)
    if not offer or baseline <= 0:
        return 0.0
    return round((offer.price_cents - baseline) / baseline * 100, 1)


def _to_out(item: WatchItem, best: Optional[NormalizedOffer], delta: float) -> WatchItemOut:
    return WatchItemOut.model_validate(item).model_copy(update={"best_offer": best, "delta_pct": delta})


class WatchlistService:
    def __init__(
        self,
        db: AsyncSession,
        offer_service: OfferService,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        config: Settings = default_settings,
    ):
        self.db = db
        self.offer_service = offer_service
        self.session_factory = session_factory
        self.config = config

    def _schedule_sync(self, user_id: str) -> None:
        if self.session_factory is not None:
            schedule_remote_sync(user_id, self.session_factory, self.config)

    async def _items_for(self, user_id: str) -> List[WatchItem]:
        result = await self.db.execute(
            select(WatchItem).where(WatchItem.user_id == user_id).order_by(WatchItem.created_at.desc())
        )
        return list(result.unique().scalars().all())

    async def upsert_watch_item(
        self,
        user_id: str,
        product_id: str,
        preferred_offer_id: Optional[str] = None,
        rules: Optional[AlertRules] = None,
    ) -> WatchItemOut:
        rules = rules or AlertRules()
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")

        bundle = await self.offer_service.get_ranked_offers(product_id, Strategy.BEST_PRICE.value, refresh_live=True)
        preferred = next((o for o in bundle.offers if preferred_offer_id and o.id == preferred_offer_id), None)

        pct = rules.pct_drop_threshold
        if pct is None:
            pct = user.default_pct_drop_threshold
        if pct is None:
            pct = self.config.DEFAULT_PCT_DROP_THRESHOLD
        target = rules.target_price_cents if rules.target_price_cents is not None else user.default_target_price_cents
        shipping_on = (
            rules.shipping_improvement_on
            if rules.shipping_improvement_on is not None
            else bool(user.shipping_improvement_on)
        )

        result = await self.db.execute(
            select(WatchItem).where(WatchItem.user_id == user_id, WatchItem.product_id == product_id)
        )
        item = result.unique().scalar_one_or_none()
        is_new = item is None
        if is_new:
            item = WatchItem(user_id=user_id, product_id=product_id)
            item.product = product
            self.db.add(item)

        item.pct_drop_threshold = pct
        item.target_price_cents = target
        item.shipping_improvement_on = shipping_on

        if preferred is not None:
            item.preferred_offer_id = preferred.id
            item.preferred_vendor_id = preferred.vendor_id
            item.preferred_vendor_name = preferred.vendor_name
            item.preferred_product_url = preferred.product_url

        tracked = select_tracked_offer(
            bundle.offers,
            preferred_offer_id=item.preferred_offer_id,
            preferred_vendor_id=item.preferred_vendor_id,
            preferred_product_url=item.preferred_product_url,
        )
        # the baseline only moves on create or when a new offer gets pinned
        if (is_new or preferred is not None) and tracked is not None:
            item.last_seen_best_price_cents = tracked.price_cents
            item.last_seen_best_eta_days = tracked.eta_days

        await self.db.commit()
        self._schedule_sync(user_id)
        return _to_out(item, tracked, 0.0)

    async def _enrich(self, items: Sequence[WatchItem]) -> List[WatchItemOut]:
        product_ids = list({i.product_id for i in items})
        offers_by_product: Dict[str, List[NormalizedOffer]] = {}
        if product_ids:
            result = await self.db.execute(
                select(Offer)
                .where(Offer.product_id.in_(product_ids), Offer.in_stock.is_(True))
                .order_by(Offer.created_at, Offer.id)
                .execution_options(populate_existing=True)
            )
            for offer in result.scalars().all():
                offers_by_product.setdefault(offer.product_id, []).append(normalize_offer(offer))

        out: List[WatchItemOut] = []
        for item in items:
            best = select_tracked_offer(
                offers_by_product.get(item.product_id, []),
                preferred_offer_id=item.preferred_offer_id,
                preferred_vendor_id=item.preferred_vendor_id,
                preferred_product_url=item.preferred_product_url,
            )
            out.append(_to_out(item, best, delta_pct(item.last_seen_best_price_cents, best)))
        return out

    async def list_watch_items(self, user_id: str) -> List[WatchItemOut]:
        return await self._enrich(await self._items_for(user_id))

    async def refresh_watch_items(self, user_id: str) -> List[WatchItemOut]:
        items = await self._items_for(user_id)
        for item in items:
            await self.offer_service.get_ranked_offers(item.product_id, Strategy.BEST_PRICE.value, refresh_live=True)
        logger.info("Refreshed offers for %d watch items of user %s", len(items), user_id)
        return await self._enrich(items)

    async def delete_watch_item(self, watch_item_id: str) -> bool:
        item = await self.db.get(WatchItem, watch_item_id)
        if item is None:
            return False
        user_id = item.user_id
        await self.db.delete(item)
        await self.db.commit()
        self._schedule_sync(user_id)
        return True
