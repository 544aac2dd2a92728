from fastapi import APIRouter, Depends, HTTPException

from shopwatch.api.deps import get_watchlist_service
from shopwatch.schemas.watchlist import (
    WatchItemResponse,
    WatchlistRefreshRequest,
    WatchlistRefreshResponse,
    WatchlistResponse,
    WatchRequest,
)
from shopwatch.services.watchlist_service import NotFoundError, WatchlistService

router = APIRouter(prefix="/v1/watchlist", tags=["watchlist"])


@router.post("", response_model=WatchItemResponse)
async def watch(data: WatchRequest, service: WatchlistService = Depends(get_watchlist_service)):
    try:
        item = await service.upsert_watch_item(
            data.user_id,
            data.product_id,
            preferred_offer_id=data.preferred_offer_id,
            rules=data.alert_rules,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return WatchItemResponse(watch_item=item)


@router.get("", response_model=WatchlistResponse)
async def watchlist(user_id: str, service: WatchlistService = Depends(get_watchlist_service)):
    return WatchlistResponse(items=await service.list_watch_items(user_id))


@router.post("/refresh", response_model=WatchlistRefreshResponse)
async def refresh_watchlist(data: WatchlistRefreshRequest, service: WatchlistService = Depends(get_watchlist_service)):
    items = await service.refresh_watch_items(data.user_id)
    return WatchlistRefreshResponse(refreshed_count=len(items), items=items)


@router.delete("/{watch_item_id}")
async def unwatch(watch_item_id: str, service: WatchlistService = Depends(get_watchlist_service)):
    if not await service.delete_watch_item(watch_item_id):
        raise HTTPException(status_code=404, detail="Watch item not found")
    return {"ok": True}
