from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from shopwatch.api.deps import get_offer_providers
from shopwatch.schemas.offers import ProviderMetricsResponse
from shopwatch.services.providers import OfferProviders

router = APIRouter(prefix="/v1/meta", tags=["meta"])


@router.get("/providers", response_model=ProviderMetricsResponse)
def provider_metrics(providers: OfferProviders = Depends(get_offer_providers)):
    return ProviderMetricsResponse(
        live_search_enabled=providers.enabled,
        serpapi=providers.client.get_metrics(),
        checked_at=datetime.now(timezone.utc),
    )
