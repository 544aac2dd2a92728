"""
Push the local watchlist to the shared remote watchlist mirror.

Pushes run as detached tasks after a local write; their failures are logged
and never reach the request that triggered them.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
from urllib.parse import urlsplit

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopwatch.core.config import Settings, settings as default_settings
from shopwatch.models.offer import Offer
from shopwatch.models.user import User
from shopwatch.models.watch_item import WatchItem
from shopwatch.services.ranking import select_tracked_offer

logger = logging.getLogger(__name__)

# Strong references so running sync tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def normalize_base_url(value: Optional[str]) -> str:
    return str(value or "").strip().rstrip("/")


def normalize_email(value: Optional[str]) -> str:
    email = str(value or "").strip().lower()
    if "@" not in email or len(email) > 254:
        return ""
    return email


def domain_from_url(url: Optional[str]) -> str:
    try:
        host = urlsplit(str(url or "").strip()).netloc
    except ValueError:
        return ""
    return host.lower().removeprefix("www.")


def is_enabled(config: Settings = default_settings) -> bool:
    return bool(config.ENABLE_SHARED_REMOTE_WATCHLIST_SYNC and normalize_base_url(config.SHARED_REMOTE_WATCHLIST_BASE_URL))


def build_remote_items(items: Iterable[WatchItem], offers: Sequence[Offer]) -> List[Dict[str, Any]]:
    """Remote shape: {url, title, domain, price, currency}. Incomplete items are skipped."""
    by_product: Dict[str, List[Offer]] = {}
    for o in offers:
        by_product.setdefault(o.product_id, []).append(o)

    remote: List[Dict[str, Any]] = []
    for item in items:
        best = select_tracked_offer(
            by_product.get(item.product_id, []),
            preferred_offer_id=item.preferred_offer_id,
            preferred_vendor_id=item.preferred_vendor_id,
            preferred_product_url=item.preferred_product_url,
        )
        url = str(item.preferred_product_url or (best.product_url if best else "") or "").strip()
        if not url:
            continue
        domain = domain_from_url(url) or str(item.preferred_vendor_name or "").strip().lower()
        price = round(best.price_cents / 100, 2) if best is not None and best.price_cents else None
        if not domain or not price:
            continue
        remote.append(
            {
                "url": url,
                "title": item.product.title if item.product is not None else "",
                "domain": domain,
                "price": price,
                "currency": "USD",
            }
        )
    return remote


async def push_remote_watchlist(
    email: str,
    items: List[Dict[str, Any]],
    *,
    config: Settings = default_settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    if not is_enabled(config):
        return {"ok": False, "skipped": True, "reason": "disabled"}
    normalized = normalize_email(email)
    if not normalized:
        return {"ok": False, "skipped": True, "reason": "invalid_email"}

    endpoint = f"{normalize_base_url(config.SHARED_REMOTE_WATCHLIST_BASE_URL)}/watchlist/sync"
    timeout = max(1.2, float(config.SHARED_REMOTE_WATCHLIST_TIMEOUT_SECONDS or 7.0))

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        r = await client.post(endpoint, params={"email": normalized}, json={"items": items})
    if r.status_code >= 400:
        raise ValueError(f"Remote watchlist sync failed ({r.status_code}): {r.text[:240]}")

    try:
        response = r.json()
    except ValueError:
        response = None
    return {"ok": True, "endpoint": endpoint, "response": response}


async def sync_remote_watchlist_from_local(
    user_id: str,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    config: Settings = default_settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, Any]]:
    async with session_factory() as db:
        user = await db.get(User, user_id)
        if user is None or not user.email:
            return None

        items = (
            await db.execute(
                select(WatchItem).where(WatchItem.user_id == user_id).order_by(WatchItem.created_at.desc())
            )
        ).unique().scalars().all()
        product_ids = list({i.product_id for i in items})
        offers = (
            await db.execute(select(Offer).where(Offer.product_id.in_(product_ids), Offer.in_stock.is_(True)))
        ).scalars().all() if product_ids else []

        remote_items = build_remote_items(items, offers)

    return await push_remote_watchlist(user.email, remote_items, config=config, transport=transport)


async def _sync_quietly(user_id: str, session_factory, config: Settings) -> None:
    try:
        await sync_remote_watchlist_from_local(user_id, session_factory, config=config)
    except Exception as e:
        logger.warning("Remote watchlist push failed for user %s: %s", user_id, e)


def schedule_remote_sync(
    user_id: str,
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings = default_settings,
) -> Optional[asyncio.Task]:
    """Fire-and-forget push; returns the task (None when sync is disabled)."""
    if not is_enabled(config):
        return None
    task = asyncio.create_task(_sync_quietly(user_id, session_factory, config))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
