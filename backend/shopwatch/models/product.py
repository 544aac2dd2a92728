"""Product model"""
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from shopwatch.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    brand = Column(String(100), nullable=False, default="Unknown")
    upc = Column(String(14), index=True)
    image_url = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
