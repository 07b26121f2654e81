"""
Admin review of market stands and products.

Both entities follow the same state machine: PENDING -> APPROVED | REJECTED.
`ApprovalWorkflow._transition` is the only code that writes the status column
and the status history table, and it writes both in one transaction.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser, require_admin_privilege
from backend.app.core.constants import DEFAULT_APPROVAL_NOTE, ApprovalStatus
from backend.app.core.exceptions import InvalidTransitionError, NotFoundError, UnexpectedError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import approval_transitions_total
from backend.app.models.market_stand import MarketStand, StandStatusHistory
from backend.app.models.product import Product, ProductStatusHistory
from backend.app.services.cache import CacheService, ListingCache, invalidate_listings

logger = get_logger(__name__)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "userId": product.user_id,
        "marketStandId": product.market_stand_id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "images": list(product.images or []),
        "inventory": product.inventory,
        "status": product.status,
        "isActive": product.is_active,
        "deliveryAvailable": product.delivery_available,
        "deliveryZoneId": product.delivery_zone_id,
        "createdAt": _iso(product.created_at),
        "updatedAt": _iso(product.updated_at),
    }


def stand_to_dict(stand: MarketStand) -> Dict[str, Any]:
    return {
        "id": stand.id,
        "userId": stand.user_id,
        "name": stand.name,
        "description": stand.description,
        "locationName": stand.location_name,
        "latitude": stand.latitude,
        "longitude": stand.longitude,
        "status": stand.status,
        "isActive": stand.is_active,
        "createdAt": _iso(stand.created_at),
        "updatedAt": _iso(stand.updated_at),
    }


@dataclass(frozen=True)
class ReviewTarget:
    """Describes one reviewable entity type."""
    kind: str
    label: str
    model: Type
    history_model: Type
    history_fk: str
    to_dict: Callable[[Any], Dict[str, Any]]
    deactivate_on_reject: bool = False


PRODUCT_REVIEW = ReviewTarget(
    kind="product",
    label="Product",
    model=Product,
    history_model=ProductStatusHistory,
    history_fk="product_id",
    to_dict=product_to_dict,
)

# Rejected stands are also taken off the map
STAND_REVIEW = ReviewTarget(
    kind="stand",
    label="Market stand",
    model=MarketStand,
    history_model=StandStatusHistory,
    history_fk="market_stand_id",
    to_dict=stand_to_dict,
    deactivate_on_reject=True,
)

REVIEW_TARGETS = {t.kind: t for t in (PRODUCT_REVIEW, STAND_REVIEW)}


def get_review_target(kind: str) -> ReviewTarget:
    target = REVIEW_TARGETS.get(kind)
    if target is None:
        raise NotFoundError("Review type", kind)
    return target


class ApprovalWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        target: ReviewTarget,
        cache: Optional[CacheService] = None,
        listing_cache: Optional[ListingCache] = None,
    ):
        self.session = session
        self.target = target
        self.cache = cache
        self.listing_cache = listing_cache

    async def approve(
        self,
        caller: Optional[CurrentUser],
        entity_id: str,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        caller = require_admin_privilege(caller)
        note = (note or "").strip() or DEFAULT_APPROVAL_NOTE
        return await self._transition(caller, entity_id, ApprovalStatus.APPROVED, note)

    async def reject(
        self,
        caller: Optional[CurrentUser],
        entity_id: str,
        note: Optional[str],
    ) -> Dict[str, Any]:
        """Reject a pending entity. A non-blank note is mandatory."""
        caller = require_admin_privilege(caller)
        note = (note or "").strip()
        if not note:
            raise ValidationError("Rejection note is required", {"note": "must not be empty"})
        return await self._transition(caller, entity_id, ApprovalStatus.REJECTED, note)

    async def _transition(
        self,
        caller: CurrentUser,
        entity_id: str,
        new_status: ApprovalStatus,
        note: str,
    ) -> Dict[str, Any]:
        target = self.target
        entity = await self.session.get(target.model, entity_id)
        if entity is None:
            raise NotFoundError(target.label, entity_id)
        old_status = entity.status
        if old_status != ApprovalStatus.PENDING.value:
            raise InvalidTransitionError(target.label, old_status, new_status.value)

        try:
            entity.status = new_status.value
            if new_status == ApprovalStatus.REJECTED and target.deactivate_on_reject:
                entity.is_active = False
            await self.session.flush()
            await self._append_history(entity_id, old_status, new_status.value, caller.id, note)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Status transition failed",
                entity=target.kind,
                entity_id=entity_id,
                caller_id=caller.id,
                new_status=new_status.value,
                error=str(e),
            )
            raise UnexpectedError(f"Failed to update {target.label.lower()} status")

        approval_transitions_total.labels(entity=target.kind, new_status=new_status.value).inc()
        logger.info(
            "Status transition",
            entity=target.kind,
            entity_id=entity_id,
            caller_id=caller.id,
            old_status=old_status,
            new_status=new_status.value,
        )
        await self._invalidate(entity_id)
        return target.to_dict(entity)

    async def _append_history(
        self,
        entity_id: str,
        old_status: str,
        new_status: str,
        changed_by_id: str,
        note: Optional[str],
    ) -> None:
        row = self.target.history_model(
            old_status=old_status,
            new_status=new_status,
            changed_by_id=changed_by_id,
            note=note,
        )
        setattr(row, self.target.history_fk, entity_id)
        self.session.add(row)
        await self.session.flush()

    async def _invalidate(self, entity_id: str) -> None:
        if self.cache is not None:
            try:
                await self.cache.invalidate_pending(self.target.kind)
            except RedisError as e:
                logger.warning("Pending list cache invalidation failed", entity=self.target.kind, error=str(e))
        await invalidate_listings(self.listing_cache, "review decision", entity=self.target.kind, entity_id=entity_id)

    async def list_pending(self, caller: Optional[CurrentUser]) -> List[Dict[str, Any]]:
        """Entities awaiting review, newest first."""
        require_admin_privilege(caller)
        kind = self.target.kind
        if self.cache is not None:
            try:
                cached = await self.cache.get_pending(kind)
                if cached is not None:
                    return cached
            except RedisError as e:
                logger.warning("Pending list cache read failed", entity=kind, error=str(e))

        model = self.target.model
        result = await self.session.execute(
            select(model)
            .where(model.status == ApprovalStatus.PENDING.value)
            .order_by(model.created_at.desc(), model.id)
        )
        items = [self.target.to_dict(e) for e in result.scalars().all()]

        if self.cache is not None:
            try:
                await self.cache.set_pending(kind, items)
            except RedisError as e:
                logger.warning("Pending list cache write failed", entity=kind, error=str(e))
        return items

    async def get_history(self, caller: Optional[CurrentUser], entity_id: str) -> List[Dict[str, Any]]:
        """Status history of one entity, newest first."""
        require_admin_privilege(caller)
        if await self.session.get(self.target.model, entity_id) is None:
            raise NotFoundError(self.target.label, entity_id)
        history = self.target.history_model
        result = await self.session.execute(
            select(history)
            .where(getattr(history, self.target.history_fk) == entity_id)
            .order_by(history.created_at.desc(), history.id)
        )
        return [
            {
                "id": row.id,
                "entityId": entity_id,
                "oldStatus": row.old_status,
                "newStatus": row.new_status,
                "changedById": row.changed_by_id,
                "note": row.note,
                "createdAt": _iso(row.created_at),
            }
            for row in result.scalars().all()
        ]
