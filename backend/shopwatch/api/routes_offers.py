from typing import Optional

from fastapi import APIRouter, Depends

from shopwatch.api.deps import get_offer_service
from shopwatch.schemas.offers import OfferSearchResponse, RankedOffersResponse
from shopwatch.services.offer_service import OfferService

router = APIRouter(prefix="/v1", tags=["offers"])


@router.get("/offers", response_model=RankedOffersResponse)
async def ranked_offers(
    product_id: str,
    strategy: str = "BALANCED",
    refresh_live: bool = False,
    service: OfferService = Depends(get_offer_service),
):
    """
    Offers for one product, with the recommended offer id for the strategy.
    refresh_live=true pulls live offers first; provider trouble never fails this call.
    """
    return await service.get_ranked_offers(product_id, strategy, refresh_live=refresh_live)


@router.get("/offers/search", response_model=OfferSearchResponse)
async def search_offers(
    q: str,
    brand: Optional[str] = None,
    strategy: str = "BALANCED",
    limit: int = 8,
    service: OfferService = Depends(get_offer_service),
):
    """Candidate products with their offers; limit is clamped to 1..20."""
    return await service.search_offer_candidates(q, brand_hint=brand, strategy=strategy, limit=limit)
