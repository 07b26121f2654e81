from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_cache, get_current_user, get_listing_cache, get_session
from backend.app.core.auth import CurrentUser
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import MarketStandCreate, MarketStandUpdate
from backend.app.services.cache import CacheService, ListingCache
from backend.app.services.catalog import ProducerCatalogService

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", status_code=201)
async def create_market_stand(
    data: MarketStandCreate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Submit a new market stand for admin review."""
    try:
        stand = await ProducerCatalogService(session, cache).create_stand(caller, data.model_dump())
        return {"success": True, "marketStand": stand}
    except ServiceError as e:
        logger.warning("Market stand creation failed", caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.patch("/{stand_id}")
async def update_market_stand(
    stand_id: str,
    data: MarketStandUpdate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    try:
        stand = await ProducerCatalogService(session, cache, listing_cache).update_stand(
            caller, stand_id, data.model_dump(exclude_unset=True)
        )
        return {"success": True, "marketStand": stand}
    except ServiceError as e:
        logger.warning("Market stand update failed", stand_id=stand_id,
                       caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)
