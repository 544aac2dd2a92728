"""Pending notification sink: append, list undelivered, acknowledge."""
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shopwatch.models.notification import PendingNotification

DEAL_ALERT = "DEAL_ALERT"


async def create_notification(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    type: str,
    message: str,
    payload: Optional[Any] = None,
) -> PendingNotification:
    """Queue a notification. Caller owns the commit."""
    notification = PendingNotification(
        user_id=user_id,
        product_id=product_id,
        type=type,
        message=message,
        payload=payload,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_pending(db: AsyncSession, user_id: str, limit: int = 25) -> List[PendingNotification]:
    result = await db.execute(
        select(PendingNotification)
        .where(
            PendingNotification.user_id == user_id,
            PendingNotification.delivered_at.is_(None),
        )
        .order_by(PendingNotification.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def acknowledge(db: AsyncSession, notification_id: str) -> Optional[PendingNotification]:
    notification = await db.get(PendingNotification, notification_id)
    if notification is None:
        return None
    if notification.delivered_at is None:
        notification.delivered_at = datetime.now(timezone.utc)
        await db.commit()
    return notification
