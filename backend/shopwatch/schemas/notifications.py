from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    product_id: str
    type: str
    message: str
    payload: Optional[Any] = None
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class PendingNotificationsResponse(BaseModel):
    notifications: List[NotificationOut]


class ChangedItem(BaseModel):
    offer_id: str
    product_id: str
    old_price_cents: int
    new_price_cents: int
    old_eta_days: int
    new_eta_days: int


class TickNotification(BaseModel):
    watch_item_id: str
    message: str
    payload: dict


class PriceTickResponse(BaseModel):
    changed_items: List[ChangedItem]
    notifications: List[TickNotification]
