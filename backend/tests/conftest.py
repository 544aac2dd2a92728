"""Shared fixtures: in-memory SQLite, settings, and a small data builder."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shopwatch.core.config import Settings
from shopwatch.core.database import Base
from shopwatch.models import Offer, Product, User, WatchItem


def make_settings(**overrides) -> Settings:
    """Settings with live search off unless a test turns it on."""
    values = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "SERPAPI_API_KEY": "",
        "ENABLE_SHARED_REMOTE_WATCHLIST_SYNC": False,
        "PRICE_TICK_INTERVAL_SECONDS": 0,
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


class Builder:
    """Adds rows and commits; returns the persisted objects."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def product(self, title="Widget", brand="Acme") -> Product:
        product = Product(title=title, brand=brand)
        self.db.add(product)
        await self.db.commit()
        return product

    async def user(self, email="shopper@example.com", **fields) -> User:
        user = User(email=email, **fields)
        self.db.add(user)
        await self.db.commit()
        return user

    async def offer(
        self,
        product: Product,
        vendor_id: str,
        price_cents: int,
        eta_days: int = 5,
        shipping_cents: int = 0,
        in_stock: bool = True,
        product_url: str = "",
        vendor_name: str = "",
    ) -> Offer:
        offer = Offer(
            product_id=product.id,
            vendor_id=vendor_id,
            vendor_name=vendor_name or vendor_id,
            title=product.title,
            price_cents=price_cents,
            shipping_cents=shipping_cents,
            eta_days=eta_days,
            in_stock=in_stock,
            product_url=product_url or f"https://example.com/{vendor_id}",
        )
        self.db.add(offer)
        await self.db.commit()
        return offer

    async def watch_item(self, user: User, product: Product, **fields) -> WatchItem:
        fields.setdefault("pct_drop_threshold", 15)
        item = WatchItem(user_id=user.id, product_id=product.id, **fields)
        item.product = product
        self.db.add(item)
        await self.db.commit()
        return item


@pytest_asyncio.fixture
async def build(db_session):
    return Builder(db_session)
