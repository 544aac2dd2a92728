"""Offer model: one vendor's price/availability for a product"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from shopwatch.core.database import Base


class Offer(Base):
    __tablename__ = "offers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)

    # Stable id of the supplying source, e.g. 'web:amazon' or 'fallback:ebay'
    vendor_id = Column(String(64), nullable=False)
    vendor_name = Column(String(100), nullable=False)

    title = Column(String, nullable=False)
    price_cents = Column(Integer, nullable=False)
    shipping_cents = Column(Integer, nullable=False, default=0)
    eta_days = Column(Integer, nullable=False, default=5)
    in_stock = Column(Boolean, nullable=False, default=True)
    product_url = Column(String, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("product_id", "vendor_id", name="uq_offer_product_vendor"),
    )
