from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_current_user, get_session
from backend.app.core.auth import CurrentUser, require_identity
from backend.app.core.exceptions import ServiceError
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.schemas import OrderStatusUpdate, ReportIssueBody
from backend.app.services.order_issues import OrderIssueService
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Producer fulfillment view ---
@router.get("/delivery")
async def get_delivery_orders(
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Active delivery orders across the caller's zones, grouped by weekday and zone."""
    try:
        caller = require_identity(caller)
        return await OrderService(session).get_delivery_orders_by_day_and_zone(caller.id)
    except ServiceError as e:
        _handle_service_error(e)


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        order = await OrderService(session).update_order_status(caller, order_id, data.status.value)
        await session.commit()
        return {"success": True, "order": order}
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Order status update failed",
            order_id=order_id,
            caller_id=caller.id if caller else None,
            error=e.message,
            error_code=e.status_code,
        )
        _handle_service_error(e)


# --- Customer issue reporting ---
@router.post("/{order_id}/report-issue", status_code=201)
@limiter.limit("5/minute")
async def report_issue(
    request: Request,
    order_id: str,
    data: ReportIssueBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Rate limited to 5 reports per minute per IP address."""
    try:
        issue = await OrderIssueService(session).report_issue(
            caller, order_id, data.issueType.value, data.description
        )
        await session.commit()
        return {"success": True, "issue": issue}
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Order issue report rejected",
            order_id=order_id,
            caller_id=caller.id if caller else None,
            error=e.message,
            error_code=e.status_code,
        )
        _handle_service_error(e)
