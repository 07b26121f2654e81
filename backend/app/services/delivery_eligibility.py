"""Whether a product can be delivered to an address, and on which dates."""
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import DEFAULT_TIME_WINDOW, RECURRING_LOOKAHEAD_DAYS, weekday_name
from backend.app.core.exceptions import NotFoundError
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.product import Product
from backend.app.services.delivery_schedule import OneTimePlan, RecurringPlan, plan_from_product
from backend.app.services.delivery_zones import Address, is_address_in_zone


def time_window_for(zone: DeliveryZone, day: str) -> str:
    for window in zone.delivery_time_windows or []:
        if window.get("day") == day:
            return f"{window.get('startTime')} - {window.get('endTime')}"
    return DEFAULT_TIME_WINDOW


def _option(zone: DeliveryZone, when: date, inventory: int, recurring: bool) -> Dict[str, Any]:
    day = weekday_name(when)
    return {
        "date": when.isoformat(),
        "dayOfWeek": day,
        "timeWindow": time_window_for(zone, day),
        "deliveryFee": zone.delivery_fee,
        "freeDeliveryThreshold": zone.free_delivery_threshold,
        "minimumOrder": zone.minimum_order,
        "inventory": inventory,
        "isRecurring": recurring,
        "deliveryZoneId": zone.id,
    }


def build_delivery_options(product: Product, zone: DeliveryZone, today: date) -> List[Dict[str, Any]]:
    """
    Delivery options for a product, sorted by date.

    One-time plans offer their dates. Recurring plans offer every day in the
    next eight weeks whose weekday is enabled with stock; products without a
    schedule fall back to the zone's delivery days and the product inventory.
    """
    plan = plan_from_product(product)
    options = []
    if isinstance(plan, OneTimePlan):
        options = [_option(zone, d, product.inventory, False) for d in plan.dates]
    elif isinstance(plan, RecurringPlan) and plan.schedule:
        for offset in range(RECURRING_LOOKAHEAD_DAYS):
            when = today + timedelta(days=offset)
            day = plan.schedule.get(weekday_name(when))
            if day is not None and day.enabled and day.inventory > 0:
                options.append(_option(zone, when, day.inventory, True))
    elif zone.delivery_days:
        days = set(zone.delivery_days)
        for offset in range(RECURRING_LOOKAHEAD_DAYS):
            when = today + timedelta(days=offset)
            if weekday_name(when) in days:
                options.append(_option(zone, when, product.inventory, True))
    options.sort(key=lambda o: o["date"])
    return options


def _ineligible(reason: str) -> Dict[str, Any]:
    return {"isEligible": False, "reason": reason, "deliveryOptions": []}


class DeliveryEligibilityService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def check_delivery_eligibility(
        self,
        product_id: str,
        address: Address,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if not product.delivery_available:
            return _ineligible("Delivery not available for this product")
        if product.delivery_zone_id is None:
            return _ineligible("No delivery zone configured")

        zone = await self.session.get(DeliveryZone, product.delivery_zone_id)
        if zone is None or not zone.is_active or zone.is_suspended:
            return _ineligible("Delivery zone is not active")

        if not is_address_in_zone(zone, address):
            if address.zip_code:
                return _ineligible(f"Delivery not available to {address.zip_code}")
            return _ineligible("Please provide your ZIP code to check delivery availability")

        matched_zip = address.zip_code if address.zip_code and address.zip_code in (zone.zip_codes or []) else None
        matched_city = None
        if matched_zip is None and address.city:
            if any(c.lower() == address.city.lower() for c in zone.cities or []):
                matched_city = address.city

        return {
            "isEligible": True,
            "reason": None,
            "matchedZipCode": matched_zip,
            "matchedCity": matched_city,
            "deliveryOptions": build_delivery_options(product, zone, today or date.today()),
        }
