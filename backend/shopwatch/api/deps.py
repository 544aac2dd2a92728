from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shopwatch.services.offer_service import OfferService
from shopwatch.services.providers import OfferProviders
from shopwatch.services.watchlist_service import WatchlistService


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_offer_providers(request: Request) -> OfferProviders:
    return request.app.state.offer_providers


def get_offer_service(
    db: AsyncSession = Depends(get_db),
    providers: OfferProviders = Depends(get_offer_providers),
) -> OfferService:
    return OfferService(db, providers)


def get_watchlist_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    offer_service: OfferService = Depends(get_offer_service),
) -> WatchlistService:
    return WatchlistService(
        db,
        offer_service,
        session_factory=request.app.state.session_factory,
        config=request.app.state.config,
    )
