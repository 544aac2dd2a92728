"""Pending notification model (append-only until acknowledged)"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Index

from shopwatch.core.database import Base


class PendingNotification(Base):
    __tablename__ = "pending_notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)

    type = Column(String(32), nullable=False)  # DEAL_ALERT
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    delivered_at = Column(DateTime(timezone=True))  # NULL = undelivered

    __table_args__ = (
        Index("ix_notification_user_delivered", "user_id", "delivered_at"),
    )
