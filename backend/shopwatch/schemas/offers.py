from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

ListingType = Literal["EXACT", "ESTIMATED"]


class NormalizedOffer(BaseModel):
    id: Optional[str] = None
    vendor_id: str = ""
    vendor_name: str = ""
    product_id: str = ""
    title: str = ""
    price_cents: int = 0
    shipping_cents: int = 0
    eta_days: int = 0
    in_stock: bool = False
    product_url: str = ""
    listing_verified: bool = False     # URL looks like a product page, not a search page
    listing_type: ListingType = "ESTIMATED"
    item_condition: Optional[str] = None


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    brand: Optional[str] = None
    upc: Optional[str] = None
    image_url: Optional[str] = None


class RankedOffersResponse(BaseModel):
    offers: List[NormalizedOffer]
    recommended_offer_id: Optional[str] = None
    strategy: str


class OfferCandidate(BaseModel):
    product: ProductOut
    offers: List[NormalizedOffer]
    recommended_offer_id: Optional[str] = None
    best_offer: Optional[NormalizedOffer] = None


class OfferSearchResponse(BaseModel):
    candidates: List[OfferCandidate]
    strategy: str


class ProviderMetricsResponse(BaseModel):
    live_search_enabled: bool
    serpapi: dict
    checked_at: datetime
