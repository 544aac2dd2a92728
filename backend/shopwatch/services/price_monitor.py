"""
Price Monitor - simulated market movement plus watchlist alerting.

A blunt "make some movement happen" routine, not a market model. One call is
one tick: drift every offer, then evaluate every watch item. The whole tick
is a single transaction; a storage error rolls it back.
"""
import logging
import random
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shopwatch.models.offer import Offer
from shopwatch.models.watch_item import WatchItem
from shopwatch.schemas.notifications import ChangedItem, PriceTickResponse, TickNotification
from shopwatch.services.notification_service import DEAL_ALERT, create_notification
from shopwatch.services.ranking import select_tracked_offer

logger = logging.getLogger(__name__)

MAX_DRIFT = 0.02
MIN_PRICE_CENTS = 50
MAX_PRICE_CENTS = 500_000
ETA_SHIFT_PROBABILITY = 0.2
MIN_ETA_DAYS = 1
MAX_ETA_DAYS = 10


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def drift_price(price_cents: int, rng: random.Random) -> int:
    drift = rng.uniform(-MAX_DRIFT, MAX_DRIFT)
    return clamp(int(round(price_cents * (1 + drift))), MIN_PRICE_CENTS, MAX_PRICE_CENTS)


def shift_eta(eta_days: int, rng: random.Random) -> int:
    shift = 0
    if rng.random() < ETA_SHIFT_PROBABILITY:
        shift = -1 if rng.random() < 0.5 else 1
    return clamp(eta_days + shift, MIN_ETA_DAYS, MAX_ETA_DAYS)


def drop_pct(baseline_cents: Optional[int], price_cents: int) -> float:
    if not baseline_cents or baseline_cents <= 0:
        return 0.0
    return (baseline_cents - price_cents) / baseline_cents * 100


def should_alert(item: WatchItem, offer: Offer, pct: float) -> bool:
    if pct >= item.pct_drop_threshold:
        return True
    if item.target_price_cents and offer.price_cents <= item.target_price_cents:
        return True
    return bool(
        item.shipping_improvement_on
        and item.last_seen_best_eta_days is not None
        and offer.eta_days < item.last_seen_best_eta_days
    )


def alert_message(product_title: str, offer: Offer, pct: float) -> str:
    rounded = round(pct, 1)
    label = f"dropped {rounded}%" if rounded > 0 else "has a new best offer"
    return f"Deal found: {product_title} {label} to ${offer.price_cents / 100:.2f}. Ships in {offer.eta_days} days."


async def run_price_tick(db: AsyncSession, rng: Optional[random.Random] = None) -> PriceTickResponse:
    rng = rng or random.Random()
    try:
        result = await _tick(db, rng)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Price tick: %d offers moved, %d alerts queued",
        len(result.changed_items),
        len(result.notifications),
    )
    return result


async def _tick(db: AsyncSession, rng: random.Random) -> PriceTickResponse:
    offers = list((await db.execute(select(Offer).order_by(Offer.created_at, Offer.id))).scalars().all())

    changed: List[ChangedItem] = []
    in_stock_by_product: Dict[str, List[Offer]] = defaultdict(list)
    for offer in offers:
        old_price, old_eta = offer.price_cents, offer.eta_days
        offer.price_cents = drift_price(old_price, rng)
        offer.eta_days = shift_eta(old_eta, rng)
        changed.append(
            ChangedItem(
                offer_id=offer.id,
                product_id=offer.product_id,
                old_price_cents=old_price,
                new_price_cents=offer.price_cents,
                old_eta_days=old_eta,
                new_eta_days=offer.eta_days,
            )
        )
        if offer.in_stock:
            in_stock_by_product[offer.product_id].append(offer)
    await db.flush()

    items = (await db.execute(select(WatchItem).order_by(WatchItem.created_at))).unique().scalars().all()

    notifications: List[TickNotification] = []
    for item in items:
        best = select_tracked_offer(
            in_stock_by_product.get(item.product_id, []),
            preferred_offer_id=item.preferred_offer_id,
            preferred_vendor_id=item.preferred_vendor_id,
            preferred_product_url=item.preferred_product_url,
        )
        if best is None:
            continue

        pct = drop_pct(item.last_seen_best_price_cents, best.price_cents)
        if not should_alert(item, best, pct):
            # baseline stays put so slow drops still add up
            continue

        title = item.product.title if item.product is not None else "Your item"
        message = alert_message(title, best, pct)
        payload = {
            "watch_item_id": item.id,
            "product_id": item.product_id,
            "best_offer_id": best.id,
            "price_cents": best.price_cents,
            "eta_days": best.eta_days,
            "drop_pct": round(pct, 1),
        }
        await create_notification(db, item.user_id, item.product_id, DEAL_ALERT, message, payload)
        notifications.append(TickNotification(watch_item_id=item.id, message=message, payload=payload))

        item.last_notified_at = datetime.now(timezone.utc)
        item.last_seen_best_price_cents = best.price_cents
        item.last_seen_best_eta_days = best.eta_days

    return PriceTickResponse(changed_items=changed, notifications=notifications)
