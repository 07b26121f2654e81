"""Public product listing with location-aware ordering and caching."""
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import ApprovalStatus
from backend.app.core.exceptions import ValidationError
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.market_stand import MarketStand
from backend.app.models.product import Product
from backend.app.services.cache import ListingCache, listing_cache_key

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_PAGE_SIZE = 20


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _parse_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except ValueError:
        raise ValidationError("Invalid cursor", {"cursor": cursor})
    if offset < 0:
        raise ValidationError("Invalid cursor", {"cursor": cursor})
    return offset


def _listing_item(product: Product, stand: MarketStand, distance: Optional[float]) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "images": list(product.images or []),
        "inventory": product.inventory,
        "deliveryAvailable": product.delivery_available,
        "deliveryZoneId": product.delivery_zone_id,
        "deliveryType": product.delivery_type,
        "distance": round(distance, 2) if distance is not None else None,
        "marketStand": {
            "id": stand.id,
            "name": stand.name,
            "locationName": stand.location_name or stand.name,
            "latitude": stand.latitude,
            "longitude": stand.longitude,
        },
    }


class ProductListingService:
    def __init__(self, session: AsyncSession, listing_cache: Optional[ListingCache] = None):
        self.session = session
        self.listing_cache = listing_cache

    async def list_products(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        cursor: Optional[str] = None,
        radius_km: Optional[float] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """
        Approved, active products at approved stands.

        With a location, only stands within `radius_km` are included and the
        closest come first; without one, newest first. Pages are cached per
        rounded location, radius and cursor.
        """
        offset = _parse_cursor(cursor)
        has_location = latitude is not None and longitude is not None
        radius = radius_km if radius_km is not None else get_settings().NEARBY_RADIUS_KM
        key = listing_cache_key(latitude, longitude, cursor, radius if has_location else None)
        if self.listing_cache is not None:
            cached = await self.listing_cache.get(key)
            if cached is not None:
                return cached

        result = await self.session.execute(
            select(Product, MarketStand)
            .join(MarketStand, MarketStand.id == Product.market_stand_id)
            .where(
                Product.status == ApprovalStatus.APPROVED.value,
                Product.is_active.is_(True),
                MarketStand.status == ApprovalStatus.APPROVED.value,
                MarketStand.is_active.is_(True),
            )
            .order_by(Product.created_at.desc(), Product.id)
        )
        rows = result.all()

        items: List[Dict[str, Any]] = []
        if has_location:
            for product, stand in rows:
                if stand.latitude is None or stand.longitude is None:
                    continue
                distance = haversine_km(latitude, longitude, stand.latitude, stand.longitude)
                if distance <= radius:
                    items.append(_listing_item(product, stand, distance))
            items.sort(key=lambda item: item["distance"])
        else:
            items = [_listing_item(product, stand, None) for product, stand in rows]

        page = items[offset:offset + limit]
        next_offset = offset + limit
        listing = {
            "products": page,
            "nextCursor": str(next_offset) if next_offset < len(items) else None,
        }
        if self.listing_cache is not None:
            await self.listing_cache.put(key, listing)
        logger.debug("Product listing built", key=key, count=len(page))
        return listing
