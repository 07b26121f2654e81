from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_cache, get_current_user, get_listing_cache, get_session
from backend.app.core.auth import CurrentUser
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import (
    DayInventoryBody,
    OneTimeDatesBody,
    ProductCreate,
    ProductUpdate,
    RecurringScheduleBody,
)
from backend.app.services.cache import CacheService, ListingCache
from backend.app.services.catalog import ProducerCatalogService
from backend.app.services.delivery_schedule import DeliveryScheduleService, plan_to_dict

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


def _log_failure(action: str, product_id: str, caller: Optional[CurrentUser], e: ServiceError):
    logger.warning(
        "Delivery schedule change rejected",
        action=action,
        product_id=product_id,
        caller_id=caller.id if caller else None,
        error=e.message,
        error_code=e.status_code,
    )


@router.post("", status_code=201)
async def create_product(
    data: ProductCreate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Submit a new product for admin review."""
    try:
        product = await ProducerCatalogService(session, cache).create_product(caller, data.model_dump())
        return {"success": True, "product": product}
    except ServiceError as e:
        logger.warning("Product creation failed", caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.patch("/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    """Edit a product, including its delivery zone and delivery availability."""
    try:
        product = await ProducerCatalogService(session, cache, listing_cache).update_product(
            caller, product_id, data.model_dump(exclude_unset=True)
        )
        return {"success": True, "product": product}
    except ServiceError as e:
        logger.warning("Product update failed", product_id=product_id,
                       caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.get("/{product_id}/delivery-schedule")
async def get_delivery_schedule(
    product_id: str,
    session: AsyncSession = Depends(get_session),
):
    try:
        plan = await DeliveryScheduleService(session).get_delivery_plan(product_id)
        return {"productId": product_id, **plan_to_dict(plan)}
    except ServiceError as e:
        _handle_service_error(e)


@router.put("/{product_id}/delivery-schedule")
async def set_recurring_schedule(
    product_id: str,
    data: RecurringScheduleBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    try:
        schedule = {day: value.model_dump() for day, value in data.schedule.items()}
        plan = await DeliveryScheduleService(session, listing_cache).set_recurring_schedule(
            caller, product_id, schedule
        )
        return {"success": True, "productId": product_id, **plan_to_dict(plan)}
    except ServiceError as e:
        _log_failure("set_recurring", product_id, caller, e)
        _handle_service_error(e)


@router.put("/{product_id}/delivery-dates")
async def set_one_time_dates(
    product_id: str,
    data: OneTimeDatesBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    try:
        plan = await DeliveryScheduleService(session, listing_cache).set_one_time_dates(
            caller, product_id, data.dates
        )
        return {"success": True, "productId": product_id, **plan_to_dict(plan)}
    except ServiceError as e:
        _log_failure("set_one_time", product_id, caller, e)
        _handle_service_error(e)


@router.patch("/{product_id}/delivery-schedule/{day}")
async def update_day_inventory(
    product_id: str,
    day: str,
    data: DayInventoryBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    try:
        plan = await DeliveryScheduleService(session, listing_cache).update_day_inventory(
            caller, product_id, day, data.inventory
        )
        return {"success": True, "productId": product_id, **plan_to_dict(plan)}
    except ServiceError as e:
        _log_failure("update_day_inventory", product_id, caller, e)
        _handle_service_error(e)


@router.delete("/{product_id}/delivery-schedule")
async def clear_delivery_schedule(
    product_id: str,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    try:
        plan = await DeliveryScheduleService(session, listing_cache).clear_schedule(caller, product_id)
        return {"success": True, "productId": product_id, **plan_to_dict(plan)}
    except ServiceError as e:
        _log_failure("clear", product_id, caller, e)
        _handle_service_error(e)
