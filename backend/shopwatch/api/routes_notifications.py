from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shopwatch.api.deps import get_db
from shopwatch.schemas.notifications import NotificationOut, PendingNotificationsResponse, PriceTickResponse
from shopwatch.services import notification_service
from shopwatch.services.price_monitor import run_price_tick

router = APIRouter(prefix="/v1", tags=["notifications"])


@router.get("/notifications/pending", response_model=PendingNotificationsResponse)
async def pending_notifications(user_id: str, db: AsyncSession = Depends(get_db)):
    notifications = await notification_service.list_pending(db, user_id)
    return PendingNotificationsResponse(
        notifications=[NotificationOut.model_validate(n) for n in notifications]
    )


@router.post("/notifications/{notification_id}/ack")
async def ack_notification(notification_id: str, db: AsyncSession = Depends(get_db)):
    if await notification_service.acknowledge(db, notification_id) is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"ok": True}


@router.post("/simulate/price-tick", response_model=PriceTickResponse)
async def price_tick(db: AsyncSession = Depends(get_db)):
    """One drift tick: move every offer a little, then evaluate every watch item."""
    return await run_price_tick(db)
