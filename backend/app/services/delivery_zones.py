"""Delivery zone management, address matching and fee calculation."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser, require_admin_privilege, require_identity
from backend.app.core.base import utcnow
from backend.app.core.constants import ACTIVE_ORDER_STATUSES
from backend.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.order import Order
from backend.app.models.product import Product
from backend.app.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class Address:
    zip_code: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


# ---------------------------------------------------------------------------
# Pure rules (no I/O)
# ---------------------------------------------------------------------------

def is_address_in_zone(zone: DeliveryZone, address: Address) -> bool:
    """
    True when any one coverage dimension matches.

    ZIP codes match exactly; city and state match case-insensitively. A
    dimension the zone leaves empty never matches.
    """
    if address.zip_code and zone.zip_codes:
        if address.zip_code in zone.zip_codes:
            return True

    if address.city and zone.cities:
        city = address.city.lower()
        if any(c.lower() == city for c in zone.cities):
            return True

    if address.state and zone.states:
        state = address.state.upper()
        if any(s.upper() == state for s in zone.states):
            return True

    return False


def calculate_delivery_fee(zone: DeliveryZone, subtotal: int) -> int:
    """Delivery fee in cents: free at or above the threshold, flat fee otherwise."""
    if zone.free_delivery_threshold is not None and subtotal >= zone.free_delivery_threshold:
        return 0
    return zone.delivery_fee


def meets_minimum_order(zone: DeliveryZone, subtotal: int) -> bool:
    if zone.minimum_order is None:
        return True
    return subtotal >= zone.minimum_order


def minimum_order_shortfall(zone: DeliveryZone, subtotal: int) -> int:
    """Cents still needed to reach the zone minimum (0 when met or unset)."""
    if meets_minimum_order(zone, subtotal):
        return 0
    return zone.minimum_order - subtotal


def free_delivery_progress(zone: DeliveryZone, subtotal: int) -> Dict[str, Any]:
    threshold = zone.free_delivery_threshold
    if threshold is None:
        return {"qualifies": False, "threshold": None, "current": subtotal, "needed": None}
    qualifies = subtotal >= threshold
    return {
        "qualifies": qualifies,
        "threshold": threshold,
        "current": subtotal,
        "needed": 0 if qualifies else threshold - subtotal,
    }


def quote_delivery(zone: DeliveryZone, subtotal: int) -> Dict[str, Any]:
    """Fee, minimum-order status and free-delivery progress for one subtotal."""
    if subtotal < 0:
        raise ValidationError("Subtotal must be non-negative", {"subtotal": "must be >= 0"})
    return {
        "zoneId": zone.id,
        "subtotal": subtotal,
        "deliveryFee": calculate_delivery_fee(zone, subtotal),
        "meetsMinimum": meets_minimum_order(zone, subtotal),
        "minimumOrder": zone.minimum_order,
        "shortfall": minimum_order_shortfall(zone, subtotal),
        "freeDelivery": free_delivery_progress(zone, subtotal),
    }


def zone_to_dict(zone: DeliveryZone) -> Dict[str, Any]:
    return {
        "id": zone.id,
        "userId": zone.user_id,
        "name": zone.name,
        "description": zone.description,
        "zipCodes": list(zone.zip_codes or []),
        "cities": list(zone.cities or []),
        "states": list(zone.states or []),
        "deliveryFee": zone.delivery_fee,
        "freeDeliveryThreshold": zone.free_delivery_threshold,
        "minimumOrder": zone.minimum_order,
        "deliveryDays": list(zone.delivery_days or []),
        "deliveryTimeWindows": zone.delivery_time_windows,
        "isActive": zone.is_active,
        "flaggedForReview": zone.flagged_for_review,
        "flagReason": zone.flag_reason,
        "isSuspended": zone.is_suspended,
        "suspendedAt": zone.suspended_at.isoformat() if zone.suspended_at else None,
        "suspensionReason": zone.suspension_reason,
        "createdAt": zone.created_at.isoformat() if zone.created_at else None,
        "updatedAt": zone.updated_at.isoformat() if zone.updated_at else None,
    }


# Request field -> column
_ZONE_FIELDS = {
    "name": "name",
    "description": "description",
    "zipCodes": "zip_codes",
    "cities": "cities",
    "states": "states",
    "deliveryFee": "delivery_fee",
    "freeDeliveryThreshold": "free_delivery_threshold",
    "minimumOrder": "minimum_order",
    "deliveryDays": "delivery_days",
    "deliveryTimeWindows": "delivery_time_windows",
    "isActive": "is_active",
}
_NON_NULLABLE_ZONE_FIELDS = frozenset({"name", "zipCodes", "cities", "states", "deliveryFee", "deliveryDays", "isActive"})


class DeliveryZoneService:
    """Producer-side CRUD plus admin moderation of delivery zones."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_owned_zone(self, caller: CurrentUser, zone_id: str) -> DeliveryZone:
        # Another producer's zone is reported as missing
        result = await self.session.execute(
            select(DeliveryZone).where(DeliveryZone.id == zone_id, DeliveryZone.user_id == caller.id)
        )
        zone = result.scalar_one_or_none()
        if zone is None:
            raise NotFoundError("Delivery zone", zone_id)
        return zone

    async def list_zones(self, caller: Optional[CurrentUser]) -> List[Dict[str, Any]]:
        """Caller's zones, newest first."""
        caller = require_identity(caller)
        result = await self.session.execute(
            select(DeliveryZone)
            .where(DeliveryZone.user_id == caller.id)
            .order_by(DeliveryZone.created_at.desc(), DeliveryZone.id)
        )
        return [zone_to_dict(z) for z in result.scalars().all()]

    async def get_zone(self, caller: Optional[CurrentUser], zone_id: str) -> Dict[str, Any]:
        caller = require_identity(caller)
        zone = await self._get_owned_zone(caller, zone_id)
        return zone_to_dict(zone)

    async def create_zone(self, caller: Optional[CurrentUser], data: Dict[str, Any]) -> Dict[str, Any]:
        caller = require_identity(caller)
        zone = DeliveryZone(user_id=caller.id)
        for field, column in _ZONE_FIELDS.items():
            if field in data:
                setattr(zone, column, data[field])
        self.session.add(zone)
        await self.session.flush()
        logger.info("Delivery zone created", zone_id=zone.id, caller_id=caller.id)
        return zone_to_dict(zone)

    async def update_zone(self, caller: Optional[CurrentUser], zone_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply only the fields present in `data`."""
        caller = require_identity(caller)
        cleared = sorted(f for f in _NON_NULLABLE_ZONE_FIELDS if f in data and data[f] is None)
        if cleared:
            raise ValidationError("Validation error", {f: "cannot be null" for f in cleared})
        zone = await self._get_owned_zone(caller, zone_id)
        for field, column in _ZONE_FIELDS.items():
            if field in data:
                setattr(zone, column, data[field])
        await self.session.flush()
        logger.info("Delivery zone updated", zone_id=zone.id, caller_id=caller.id, fields=sorted(data))
        return zone_to_dict(zone)

    async def delete_zone(self, caller: Optional[CurrentUser], zone_id: str) -> None:
        caller = require_identity(caller)
        zone = await self._get_owned_zone(caller, zone_id)
        products_count = await self.session.scalar(
            select(func.count(Product.id)).where(Product.delivery_zone_id == zone_id)
        )
        if products_count:
            raise ConflictError(f"Cannot delete zone. It is being used by {products_count} product(s).")
        await self.session.delete(zone)
        await self.session.flush()
        logger.info("Delivery zone deleted", zone_id=zone_id, caller_id=caller.id)

    async def toggle_zone(self, caller: Optional[CurrentUser], zone_id: str) -> Dict[str, Any]:
        caller = require_identity(caller)
        zone = await self._get_owned_zone(caller, zone_id)
        zone.is_active = not zone.is_active
        await self.session.flush()
        return zone_to_dict(zone)

    # ----- Admin moderation -----

    async def list_zones_for_admin(
        self,
        caller: Optional[CurrentUser],
        flagged: bool = False,
        suspended: bool = False,
    ) -> List[Dict[str, Any]]:
        """All zones (optionally only flagged / suspended) with owner and order counts."""
        require_admin_privilege(caller)
        query = select(DeliveryZone, User).join(User, User.id == DeliveryZone.user_id)
        if flagged:
            query = query.where(DeliveryZone.flagged_for_review.is_(True))
        if suspended:
            query = query.where(DeliveryZone.is_suspended.is_(True))
        query = query.order_by(DeliveryZone.created_at.desc(), DeliveryZone.id)
        rows = (await self.session.execute(query)).all()
        if not rows:
            return []

        zone_ids = [zone.id for zone, _ in rows]
        active_counts = dict((await self.session.execute(
            select(Order.delivery_zone_id, func.count(Order.id))
            .where(Order.delivery_zone_id.in_(zone_ids), Order.status.in_(ACTIVE_ORDER_STATUSES))
            .group_by(Order.delivery_zone_id)
        )).all())
        order_counts = dict((await self.session.execute(
            select(Order.delivery_zone_id, func.count(Order.id))
            .where(Order.delivery_zone_id.in_(zone_ids))
            .group_by(Order.delivery_zone_id)
        )).all())
        product_counts = dict((await self.session.execute(
            select(Product.delivery_zone_id, func.count(Product.id))
            .where(Product.delivery_zone_id.in_(zone_ids))
            .group_by(Product.delivery_zone_id)
        )).all())

        zones = []
        for zone, owner in rows:
            item = zone_to_dict(zone)
            item["user"] = _owner_to_dict(owner)
            item["activeOrdersCount"] = active_counts.get(zone.id, 0)
            item["ordersCount"] = order_counts.get(zone.id, 0)
            item["productsCount"] = product_counts.get(zone.id, 0)
            zones.append(item)
        return zones

    async def moderate_zone(
        self,
        caller: Optional[CurrentUser],
        zone_id: str,
        action: str,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply an admin moderation action.

        FLAG / UNFLAG toggle the review flag. SUSPEND records who suspended the
        zone and deactivates it; UNSUSPEND clears that metadata and reactivates.
        """
        caller = require_admin_privilege(caller)
        zone = await self.session.get(DeliveryZone, zone_id)
        if zone is None:
            raise NotFoundError("Delivery zone", zone_id)

        if action == "FLAG":
            zone.flagged_for_review = True
            zone.flag_reason = reason or "Flagged by admin for review"
        elif action == "UNFLAG":
            zone.flagged_for_review = False
            zone.flag_reason = None
        elif action == "SUSPEND":
            zone.is_suspended = True
            zone.suspended_at = utcnow()
            zone.suspended_by_id = caller.id
            zone.suspension_reason = reason or "Suspended by admin"
            zone.is_active = False
        elif action == "UNSUSPEND":
            zone.is_suspended = False
            zone.suspended_at = None
            zone.suspended_by_id = None
            zone.suspension_reason = None
            zone.is_active = True
        else:
            raise ValidationError("Invalid action", {"action": action})

        await self.session.flush()
        logger.info("Delivery zone moderated", zone_id=zone_id, action=action, caller_id=caller.id)

        owner = await self.session.get(User, zone.user_id)
        item = zone_to_dict(zone)
        item["user"] = _owner_to_dict(owner) if owner else None
        return item

    async def get_active_zone(self, zone_id: str) -> DeliveryZone:
        """Zone usable for delivery: active and not suspended."""
        zone = await self.session.get(DeliveryZone, zone_id)
        if zone is None or not zone.is_active or zone.is_suspended:
            raise NotFoundError("Delivery zone", zone_id)
        return zone


def _owner_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
    }
