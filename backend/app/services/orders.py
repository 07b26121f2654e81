# backend/app/services/orders.py
"""
Order service - producer fulfillment views and admin order listing.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.auth import CurrentUser, require_admin_privilege, require_identity, require_owner
from backend.app.core.constants import ACTIVE_ORDER_STATUSES, ADMIN_ORDERS_LIMIT, OrderStatus, OrderType, weekday_name
from backend.app.core.database import run_with_retry
from backend.app.core.exceptions import NotFoundError, UnexpectedError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.market_stand import MarketStand
from backend.app.models.order import Order, OrderIssue, OrderItem

logger = get_logger(__name__)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _item_to_dict(item: OrderItem) -> Dict[str, Any]:
    images = item.product.images or []
    return {
        "productId": item.product.id,
        "productName": item.product.name,
        "productImage": images[0] if images else None,
        "quantity": item.quantity,
        "priceAtTime": item.price_at_time,
    }


def order_summary(order: Order) -> Dict[str, Any]:
    """Fulfillment view of one order with customer and product details inlined."""
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerName": order.customer.display_name,
        "customerEmail": order.customer.email,
        "deliveryAddress": order.delivery_address or "",
        "deliveryDate": _iso(order.delivery_date),
        "status": order.status,
        "items": [_item_to_dict(item) for item in order.items],
        "totalAmount": order.total_amount,
        "notes": order.notes,
    }


def group_orders_by_day_and_zone(orders: List[Order]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Bucket orders by the calendar weekday of their delivery date, then by zone.

    Orders must arrive sorted by delivery date; zone groups are created on
    first encounter so both levels keep that order.
    """
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for order in orders:
        if order.delivery_date is None or order.delivery_zone is None:
            continue
        day = weekday_name(order.delivery_date)
        day_groups = grouped.setdefault(day, [])
        zone_group = next((g for g in day_groups if g["zoneId"] == order.delivery_zone.id), None)
        if zone_group is None:
            zone_group = {"zoneId": order.delivery_zone.id, "zoneName": order.delivery_zone.name, "orders": []}
            day_groups.append(zone_group)
        zone_group["orders"].append(order_summary(order))
    return grouped


class OrderService:
    """Service class for order operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_delivery_orders_by_day_and_zone(self, producer_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """
        Active delivery orders across the producer's active zones, grouped by
        weekday and zone. Returns {} when the producer has no active zones.
        """
        async def fetch() -> List[Order]:
            zone_ids = (await self.session.execute(
                select(DeliveryZone.id).where(
                    DeliveryZone.user_id == producer_id,
                    DeliveryZone.is_active.is_(True),
                )
            )).scalars().all()
            if not zone_ids:
                return []
            result = await self.session.execute(
                select(Order)
                .where(
                    Order.delivery_zone_id.in_(zone_ids),
                    Order.status.in_(ACTIVE_ORDER_STATUSES),
                    Order.type == OrderType.DELIVERY.value,
                    Order.delivery_date.is_not(None),
                )
                .options(
                    selectinload(Order.customer),
                    selectinload(Order.delivery_zone),
                    selectinload(Order.items).selectinload(OrderItem.product),
                )
                .order_by(Order.delivery_date.asc(), Order.id)
            )
            return list(result.scalars().all())

        try:
            orders = await run_with_retry(fetch, session=self.session)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch delivery orders", producer_id=producer_id, error=str(e))
            raise UnexpectedError("Failed to fetch delivery orders")
        return group_orders_by_day_and_zone(orders)

    async def update_order_status(
        self,
        caller: Optional[CurrentUser],
        order_id: str,
        status: str,
    ) -> Dict[str, Any]:
        """Producer update of an order delivered through one of their zones."""
        caller = require_identity(caller)
        try:
            new_status = OrderStatus(status)
        except ValueError:
            raise ValidationError("Invalid order status", {"status": status})

        result = await self.session.execute(
            select(Order).where(Order.id == order_id).options(selectinload(Order.delivery_zone))
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        zone_owner = order.delivery_zone.user_id if order.delivery_zone else None
        require_owner(caller, zone_owner, "Order is not delivered through your zones")

        old_status = order.status
        order.status = new_status.value
        await self.session.flush()
        logger.info("Order status updated", order_id=order_id, caller_id=caller.id,
                    old_status=old_status, new_status=new_status.value)
        return {"id": order.id, "orderNumber": order.order_number, "status": order.status}

    async def list_orders_for_admin(
        self,
        caller: Optional[CurrentUser],
        status: Optional[str] = None,
        zone_id: Optional[str] = None,
        producer_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Delivery orders for the admin console, newest first."""
        caller = require_admin_privilege(caller)
        query = select(Order).where(Order.type == OrderType.DELIVERY.value)
        if status:
            query = query.where(Order.status == status)
        if zone_id:
            query = query.where(Order.delivery_zone_id == zone_id)
        if producer_id:
            query = query.join(MarketStand, MarketStand.id == Order.market_stand_id).where(
                MarketStand.user_id == producer_id
            )
        query = (
            query.options(
                selectinload(Order.customer),
                selectinload(Order.delivery_zone),
                selectinload(Order.items).selectinload(OrderItem.product),
            )
            .order_by(Order.created_at.desc(), Order.id)
            .limit(ADMIN_ORDERS_LIMIT)
        )
        try:
            orders = list((await self.session.execute(query)).scalars().all())
            issues: Dict[str, List[Dict[str, Any]]] = {}
            if orders:
                rows = await self.session.execute(
                    select(OrderIssue).where(OrderIssue.order_id.in_([o.id for o in orders]))
                )
                for issue in rows.scalars().all():
                    issues.setdefault(issue.order_id, []).append({
                        "id": issue.id,
                        "issueType": issue.issue_type,
                        "status": issue.status,
                        "createdAt": _iso(issue.created_at),
                    })
        except SQLAlchemyError as e:
            logger.error("Failed to fetch admin orders", caller_id=caller.id, error=str(e))
            raise UnexpectedError("Failed to fetch orders")

        items = []
        for order in orders:
            item = order_summary(order)
            item.update({
                "type": order.type,
                "marketStandId": order.market_stand_id,
                "deliveryZone": (
                    {"id": order.delivery_zone.id, "name": order.delivery_zone.name}
                    if order.delivery_zone else None
                ),
                "createdAt": _iso(order.created_at),
                "issues": issues.get(order.id, []),
            })
            items.append(item)
        return items
