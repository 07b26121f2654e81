from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_current_user, get_session
from backend.app.core.auth import CurrentUser
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import DeliveryZoneCreate, DeliveryZoneUpdate
from backend.app.services.delivery_zones import DeliveryZoneService

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("")
async def list_zones(
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zones = await DeliveryZoneService(session).list_zones(caller)
        return {"success": True, "zones": zones}
    except ServiceError as e:
        _handle_service_error(e)


@router.post("", status_code=201)
async def create_zone(
    data: DeliveryZoneCreate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zone = await DeliveryZoneService(session).create_zone(caller, data.model_dump(mode="json"))
        await session.commit()
        return {"success": True, "zone": zone}
    except ServiceError as e:
        await session.rollback()
        logger.warning("Delivery zone creation failed", caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.get("/{zone_id}")
async def get_zone(
    zone_id: str,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zone = await DeliveryZoneService(session).get_zone(caller, zone_id)
        return {"success": True, "zone": zone}
    except ServiceError as e:
        _handle_service_error(e)


@router.patch("/{zone_id}")
async def update_zone(
    zone_id: str,
    data: DeliveryZoneUpdate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zone = await DeliveryZoneService(session).update_zone(
            caller, zone_id, data.model_dump(mode="json", exclude_unset=True)
        )
        await session.commit()
        return {"success": True, "zone": zone}
    except ServiceError as e:
        await session.rollback()
        logger.warning("Delivery zone update failed", zone_id=zone_id,
                       caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.delete("/{zone_id}")
async def delete_zone(
    zone_id: str,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        await DeliveryZoneService(session).delete_zone(caller, zone_id)
        await session.commit()
        return {"success": True}
    except ServiceError as e:
        await session.rollback()
        logger.warning("Delivery zone deletion failed", zone_id=zone_id,
                       caller_id=caller.id if caller else None, error=e.message)
        _handle_service_error(e)


@router.post("/{zone_id}/toggle")
async def toggle_zone(
    zone_id: str,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zone = await DeliveryZoneService(session).toggle_zone(caller, zone_id)
        await session.commit()
        return {"success": True, "zone": zone}
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
