from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_listing_cache, get_session
from backend.app.core.exceptions import ServiceError
from backend.app.services.cache import ListingCache
from backend.app.services.delivery_eligibility import DeliveryEligibilityService
from backend.app.services.delivery_zones import Address, DeliveryZoneService, quote_delivery
from backend.app.services.products import ProductListingService

router = APIRouter()


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/products")
async def list_products(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    cursor: Optional[str] = Query(None),
    radiusKm: Optional[float] = Query(None, gt=0),
    session: AsyncSession = Depends(get_session),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    """Approved products near a point (or newest first without one), cached for a few minutes."""
    try:
        return await ProductListingService(session, listing_cache).list_products(lat, lng, cursor, radiusKm)
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/delivery-zones/{zone_id}/quote")
async def delivery_quote(
    zone_id: str,
    subtotal: int = Query(..., ge=0),
    session: AsyncSession = Depends(get_session),
):
    """Delivery fee, minimum-order status and free-delivery progress for a cart subtotal (cents)."""
    try:
        zone = await DeliveryZoneService(session).get_active_zone(zone_id)
        return quote_delivery(zone, subtotal)
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/products/{product_id}/delivery-eligibility")
async def delivery_eligibility(
    product_id: str,
    zipCode: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    try:
        address = Address(zip_code=zipCode, city=city, state=state)
        return await DeliveryEligibilityService(session).check_delivery_eligibility(product_id, address)
    except ServiceError as e:
        _handle_service_error(e)
