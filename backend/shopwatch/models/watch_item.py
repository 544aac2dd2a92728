"""WatchItem model: a user's price/ETA subscription for one product"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from shopwatch.core.database import Base


class WatchItem(Base):
    __tablename__ = "watch_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)

    # Alert rules
    pct_drop_threshold = Column(Integer, nullable=False, default=15)
    target_price_cents = Column(Integer)
    shipping_improvement_on = Column(Boolean, nullable=False, default=False)

    # Optional pin to one specific offer
    preferred_offer_id = Column(String(36))
    preferred_vendor_id = Column(String(64))
    preferred_vendor_name = Column(String(100))
    preferred_product_url = Column(String)

    # Baseline, only advanced when an alert fires
    last_seen_best_price_cents = Column(Integer)
    last_seen_best_eta_days = Column(Integer)
    last_notified_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    product = relationship("Product", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_watch_user_product"),
    )
