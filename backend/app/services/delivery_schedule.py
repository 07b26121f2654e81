"""
Product delivery plans.

A product is delivered either on a recurring weekly schedule, on a list of
one-time dates, or not at all. The two storage columns (`delivery_schedule`
and `delivery_dates`) are only ever written by `_write_plan`, so a product can
never carry both a schedule and dates.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser, require_identity, require_owner
from backend.app.core.constants import DAYS_SUNDAY_FIRST, WEEKDAY_NAMES, DeliveryType
from backend.app.core.exceptions import DayNotEnabledError, NotFoundError, UnexpectedError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import delivery_schedule_changes_total
from backend.app.models.product import Product
from backend.app.services.cache import ListingCache, invalidate_listings

logger = get_logger(__name__)


@dataclass(frozen=True)
class DayAvailability:
    enabled: bool
    inventory: int


@dataclass(frozen=True)
class RecurringPlan:
    schedule: Dict[str, DayAvailability] = field(default_factory=dict)


@dataclass(frozen=True)
class OneTimePlan:
    dates: Tuple[date, ...] = ()


@dataclass(frozen=True)
class NoPlan:
    pass


DeliveryPlan = Union[RecurringPlan, OneTimePlan, NoPlan]


def parse_schedule(schedule: Mapping[str, Any]) -> Dict[str, DayAvailability]:
    """
    Validate a weekday -> {enabled, inventory} map.

    Weekday names are case-sensitive ("Monday" .. "Sunday"); inventory must be
    a non-negative integer.
    """
    errors: Dict[str, str] = {}
    parsed: Dict[str, DayAvailability] = {}
    for day, value in schedule.items():
        if day not in WEEKDAY_NAMES:
            errors[day] = "unknown weekday"
            continue
        if isinstance(value, DayAvailability):
            enabled, inventory = value.enabled, value.inventory
        elif isinstance(value, Mapping):
            enabled, inventory = value.get("enabled"), value.get("inventory")
        else:
            errors[day] = "expected {enabled, inventory}"
            continue
        if not isinstance(enabled, bool):
            errors[day] = "enabled must be a boolean"
            continue
        if isinstance(inventory, bool) or not isinstance(inventory, int) or inventory < 0:
            errors[day] = "inventory must be a non-negative integer"
            continue
        parsed[day] = DayAvailability(enabled=enabled, inventory=inventory)
    if errors:
        raise ValidationError("Invalid delivery schedule", errors)
    return parsed


def plan_from_product(product: Product) -> DeliveryPlan:
    if product.delivery_type == DeliveryType.RECURRING.value and product.delivery_schedule is not None:
        return RecurringPlan(schedule={
            day: DayAvailability(enabled=bool(v.get("enabled")), inventory=int(v.get("inventory") or 0))
            for day, v in product.delivery_schedule.items()
        })
    if product.delivery_type == DeliveryType.ONE_TIME.value and product.delivery_dates:
        return OneTimePlan(dates=tuple(sorted(date.fromisoformat(d[:10]) for d in product.delivery_dates)))
    return NoPlan()


def _write_plan(product: Product, plan: DeliveryPlan) -> None:
    if isinstance(plan, RecurringPlan):
        product.delivery_type = DeliveryType.RECURRING.value
        product.delivery_schedule = {
            day: {"enabled": a.enabled, "inventory": a.inventory} for day, a in plan.schedule.items()
        }
        product.delivery_dates = []
    elif isinstance(plan, OneTimePlan):
        product.delivery_type = DeliveryType.ONE_TIME.value
        product.delivery_schedule = None
        product.delivery_dates = [d.isoformat() for d in plan.dates]
    else:
        product.delivery_type = None
        product.delivery_schedule = None
        product.delivery_dates = []


def plan_to_dict(plan: DeliveryPlan) -> Dict[str, Any]:
    if isinstance(plan, RecurringPlan):
        # Stable Sunday-first ordering for clients
        schedule = {
            day: {"enabled": plan.schedule[day].enabled, "inventory": plan.schedule[day].inventory}
            for day in DAYS_SUNDAY_FIRST if day in plan.schedule
        }
        return {"deliveryType": DeliveryType.RECURRING.value, "deliverySchedule": schedule, "deliveryDates": []}
    if isinstance(plan, OneTimePlan):
        return {
            "deliveryType": DeliveryType.ONE_TIME.value,
            "deliverySchedule": None,
            "deliveryDates": [d.isoformat() for d in plan.dates],
        }
    return {"deliveryType": None, "deliverySchedule": None, "deliveryDates": []}


class DeliveryScheduleService:
    """Owner-only mutations of a product's delivery plan."""

    def __init__(self, session: AsyncSession, listing_cache: Optional[ListingCache] = None):
        self.session = session
        self.listing_cache = listing_cache

    async def _get_owned_product(self, caller: Optional[CurrentUser], product_id: str) -> Product:
        caller = require_identity(caller)
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        require_owner(caller, product.user_id, "You do not own this product")
        return product

    async def _save(self, caller: CurrentUser, product: Product, plan: DeliveryPlan, operation: str) -> DeliveryPlan:
        _write_plan(product, plan)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Delivery plan update failed", product_id=product.id, caller_id=caller.id,
                         operation=operation, error=str(e))
            raise UnexpectedError("Failed to update delivery schedule")

        delivery_schedule_changes_total.labels(operation=operation).inc()
        logger.info("Delivery plan updated", product_id=product.id, caller_id=caller.id, operation=operation)
        await invalidate_listings(self.listing_cache, "delivery availability changed", product_id=product.id)
        return plan

    async def get_delivery_plan(self, product_id: str) -> DeliveryPlan:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return plan_from_product(product)

    async def set_recurring_schedule(
        self,
        caller: Optional[CurrentUser],
        product_id: str,
        schedule: Mapping[str, Any],
    ) -> DeliveryPlan:
        """Replace the plan with a weekly schedule; any one-time dates are dropped."""
        product = await self._get_owned_product(caller, product_id)
        plan = RecurringPlan(schedule=parse_schedule(schedule))
        return await self._save(caller, product, plan, "set_recurring")

    async def set_one_time_dates(
        self,
        caller: Optional[CurrentUser],
        product_id: str,
        dates: Iterable[date],
    ) -> DeliveryPlan:
        """Replace the plan with specific dates (deduplicated, ascending); any schedule is dropped."""
        product = await self._get_owned_product(caller, product_id)
        plan = OneTimePlan(dates=tuple(sorted(set(dates))))
        return await self._save(caller, product, plan, "set_one_time")

    async def update_day_inventory(
        self,
        caller: Optional[CurrentUser],
        product_id: str,
        day: str,
        inventory: int,
    ) -> DeliveryPlan:
        if day not in WEEKDAY_NAMES:
            raise ValidationError("Invalid weekday", {"day": day})
        if isinstance(inventory, bool) or not isinstance(inventory, int) or inventory < 0:
            raise ValidationError("Inventory must be a non-negative integer", {"inventory": inventory})

        product = await self._get_owned_product(caller, product_id)
        plan = plan_from_product(product)
        if not isinstance(plan, RecurringPlan):
            raise DayNotEnabledError(day)
        current = plan.schedule.get(day)
        if current is None or not current.enabled:
            raise DayNotEnabledError(day)

        schedule = dict(plan.schedule)
        schedule[day] = DayAvailability(enabled=True, inventory=inventory)
        return await self._save(caller, product, RecurringPlan(schedule=schedule), "update_day_inventory")

    async def clear_schedule(self, caller: Optional[CurrentUser], product_id: str) -> DeliveryPlan:
        product = await self._get_owned_product(caller, product_id)
        return await self._save(caller, product, NoPlan(), "clear")
