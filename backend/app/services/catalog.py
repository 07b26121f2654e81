"""
Producer-side creation and editing of market stands and products.

New stands and products always start PENDING and wait for admin review. The
status column is never written here; `services.approvals` owns it.
"""
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser, require_identity, require_owner
from backend.app.core.constants import ApprovalStatus
from backend.app.core.exceptions import NotFoundError, UnexpectedError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import catalog_submissions_total
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.market_stand import MarketStand
from backend.app.models.product import Product
from backend.app.services.approvals import product_to_dict, stand_to_dict
from backend.app.services.cache import CacheService, ListingCache, invalidate_listings

logger = get_logger(__name__)

# Request field -> column
_STAND_FIELDS = {
    "name": "name",
    "description": "description",
    "locationName": "location_name",
    "latitude": "latitude",
    "longitude": "longitude",
}
_NON_NULLABLE_STAND_FIELDS = frozenset({"name", "latitude", "longitude"})

_PRODUCT_FIELDS = {
    "name": "name",
    "description": "description",
    "price": "price",
    "images": "images",
    "inventory": "inventory",
    "isActive": "is_active",
    "deliveryAvailable": "delivery_available",
    "deliveryZoneId": "delivery_zone_id",
}
_NON_NULLABLE_PRODUCT_FIELDS = frozenset({"name", "price", "images", "inventory", "isActive", "deliveryAvailable"})


def _reject_nulls(data: Dict[str, Any], non_nullable: frozenset) -> None:
    cleared = sorted(f for f in non_nullable if f in data and data[f] is None)
    if cleared:
        raise ValidationError("Validation error", {f: "cannot be null" for f in cleared})


def _apply(entity, data: Dict[str, Any], fields: Dict[str, str]) -> None:
    for field, column in fields.items():
        if field in data:
            setattr(entity, column, data[field])


class ProducerCatalogService:
    """Owner-only create and update of market stands and products."""

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheService] = None,
        listing_cache: Optional[ListingCache] = None,
    ):
        self.session = session
        self.cache = cache
        self.listing_cache = listing_cache

    # ----- Market stands -----

    async def create_stand(self, caller: Optional[CurrentUser], data: Dict[str, Any]) -> Dict[str, Any]:
        caller = require_identity(caller)
        _reject_nulls(data, _NON_NULLABLE_STAND_FIELDS)
        stand = MarketStand(user_id=caller.id, status=ApprovalStatus.PENDING.value, is_active=True)
        _apply(stand, data, _STAND_FIELDS)
        self.session.add(stand)
        await self._commit(caller, "stand", "create")
        await self._invalidate("stand", stand.id, listings=False)
        return stand_to_dict(stand)

    async def update_stand(
        self,
        caller: Optional[CurrentUser],
        stand_id: str,
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Apply only the fields present in `data`."""
        caller = require_identity(caller)
        _reject_nulls(data, _NON_NULLABLE_STAND_FIELDS)
        stand = await self.session.get(MarketStand, stand_id)
        if stand is None:
            raise NotFoundError("Market stand", stand_id)
        require_owner(caller, stand.user_id, "You do not own this market stand")
        _apply(stand, data, _STAND_FIELDS)
        await self._commit(caller, "stand", "update")
        await self._invalidate("stand", stand.id)
        return stand_to_dict(stand)

    # ----- Products -----

    async def create_product(self, caller: Optional[CurrentUser], data: Dict[str, Any]) -> Dict[str, Any]:
        caller = require_identity(caller)
        _reject_nulls(data, _NON_NULLABLE_PRODUCT_FIELDS)
        stand_id = data.get("marketStandId")
        if stand_id is not None:
            stand = await self.session.get(MarketStand, stand_id)
            if stand is None:
                raise NotFoundError("Market stand", stand_id)
            require_owner(caller, stand.user_id, "You do not own this market stand")

        product = Product(
            user_id=caller.id,
            market_stand_id=stand_id,
            status=ApprovalStatus.PENDING.value,
            images=[],
            delivery_dates=[],
        )
        _apply(product, data, _PRODUCT_FIELDS)
        await self._check_delivery(caller, product)
        self.session.add(product)
        await self._commit(caller, "product", "create")
        await self._invalidate("product", product.id, listings=False)
        return product_to_dict(product)

    async def update_product(
        self,
        caller: Optional[CurrentUser],
        product_id: str,
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Apply only the fields present in `data`."""
        caller = require_identity(caller)
        _reject_nulls(data, _NON_NULLABLE_PRODUCT_FIELDS)
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        require_owner(caller, product.user_id, "You do not own this product")
        _apply(product, data, _PRODUCT_FIELDS)
        await self._check_delivery(caller, product)
        await self._commit(caller, "product", "update")
        await self._invalidate("product", product.id)
        return product_to_dict(product)

    async def _check_delivery(self, caller: CurrentUser, product: Product) -> None:
        """A delivering product needs a zone, and the zone must be the caller's own."""
        if product.delivery_zone_id is not None:
            # Another producer's zone is reported as missing
            zone_id = await self.session.scalar(
                select(DeliveryZone.id).where(
                    DeliveryZone.id == product.delivery_zone_id,
                    DeliveryZone.user_id == caller.id,
                )
            )
            if zone_id is None:
                raise NotFoundError("Delivery zone", product.delivery_zone_id)
        elif product.delivery_available:
            raise ValidationError(
                "A delivery zone is required when delivery is available",
                {"deliveryZoneId": "required when deliveryAvailable is true"},
            )

    async def _commit(self, caller: CurrentUser, entity: str, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Catalog change failed", entity=entity, operation=operation,
                         caller_id=caller.id, error=str(e))
            raise UnexpectedError(f"Failed to {operation} {entity}")
        catalog_submissions_total.labels(entity=entity, operation=operation).inc()

    async def _invalidate(self, kind: str, entity_id: str, listings: bool = True) -> None:
        logger.info("Catalog entry saved", entity=kind, entity_id=entity_id)
        if self.cache is not None:
            try:
                await self.cache.invalidate_pending(kind)
            except RedisError as e:
                logger.warning("Pending list cache invalidation failed", entity=kind, error=str(e))
        if listings:
            await invalidate_listings(self.listing_cache, "catalog entry edited", entity=kind, entity_id=entity_id)
