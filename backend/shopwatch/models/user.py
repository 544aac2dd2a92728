"""User model (only the fields the watchlist needs)"""
import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from shopwatch.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), unique=True)

    # Defaults applied when a watch request carries no explicit alert rules
    default_pct_drop_threshold = Column(Integer, nullable=False, default=15)
    default_target_price_cents = Column(Integer)
    shipping_improvement_on = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
