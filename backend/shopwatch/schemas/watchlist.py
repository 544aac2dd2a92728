from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shopwatch.schemas.offers import NormalizedOffer, ProductOut


class AlertRules(BaseModel):
    pct_drop_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    target_price_cents: Optional[int] = Field(default=None, gt=0)
    shipping_improvement_on: Optional[bool] = None


class WatchRequest(BaseModel):
    user_id: str
    product_id: str
    preferred_offer_id: Optional[str] = None
    alert_rules: AlertRules = Field(default_factory=AlertRules)


class WatchItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    product_id: str
    pct_drop_threshold: int
    target_price_cents: Optional[int] = None
    shipping_improvement_on: bool = False
    preferred_offer_id: Optional[str] = None
    preferred_vendor_id: Optional[str] = None
    preferred_vendor_name: Optional[str] = None
    preferred_product_url: Optional[str] = None
    last_seen_best_price_cents: Optional[int] = None
    last_seen_best_eta_days: Optional[int] = None
    last_notified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    product: Optional[ProductOut] = None
    best_offer: Optional[NormalizedOffer] = None
    delta_pct: float = 0.0


class WatchItemResponse(BaseModel):
    watch_item: WatchItemOut


class WatchlistResponse(BaseModel):
    items: List[WatchItemOut]


class WatchlistRefreshRequest(BaseModel):
    user_id: str


class WatchlistRefreshResponse(BaseModel):
    ok: bool = True
    refreshed_count: int
    items: List[WatchItemOut]
