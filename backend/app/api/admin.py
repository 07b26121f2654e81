from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_cache, get_current_user, get_listing_cache, get_session
from backend.app.core.auth import CurrentUser
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import ApproveBody, IssueUpdateBody, RejectBody, ZoneModerationAction
from backend.app.services.approvals import ApprovalWorkflow, ReviewTarget, get_review_target
from backend.app.services.cache import CacheService, ListingCache
from backend.app.services.delivery_zones import DeliveryZoneService
from backend.app.services.order_issues import OrderIssueService
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


def _log_rejected(action: str, entity_id: str, caller: Optional[CurrentUser], e: ServiceError):
    logger.warning(
        "Admin action failed",
        action=action,
        entity_id=entity_id,
        caller_id=caller.id if caller else None,
        error=e.message,
        error_code=e.status_code,
    )


# ============================================
# APPROVAL WORKFLOW
# ============================================

async def _approve(
    target: ReviewTarget,
    data: ApproveBody,
    caller: Optional[CurrentUser],
    session: AsyncSession,
    cache: CacheService,
    listing_cache: ListingCache,
):
    try:
        entity = await ApprovalWorkflow(session, target, cache, listing_cache).approve(caller, data.id, data.note)
        return {"success": True, target.kind: entity}
    except ServiceError as e:
        _log_rejected(f"{target.kind}.approve", data.id, caller, e)
        _handle_service_error(e)


async def _reject(
    target: ReviewTarget,
    data: RejectBody,
    caller: Optional[CurrentUser],
    session: AsyncSession,
    cache: CacheService,
    listing_cache: ListingCache,
):
    try:
        entity = await ApprovalWorkflow(session, target, cache, listing_cache).reject(caller, data.id, data.note)
        return {"success": True, target.kind: entity}
    except ServiceError as e:
        _log_rejected(f"{target.kind}.reject", data.id, caller, e)
        _handle_service_error(e)


@router.post("/product/approve")
async def approve_product(
    data: ApproveBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    return await _approve(get_review_target("product"), data, caller, session, cache, listing_cache)


@router.post("/product/reject")
async def reject_product(
    data: RejectBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    return await _reject(get_review_target("product"), data, caller, session, cache, listing_cache)


@router.post("/stand/approve")
async def approve_stand(
    data: ApproveBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    return await _approve(get_review_target("stand"), data, caller, session, cache, listing_cache)


@router.post("/stand/reject")
async def reject_stand(
    data: RejectBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    listing_cache: ListingCache = Depends(get_listing_cache),
):
    return await _reject(get_review_target("stand"), data, caller, session, cache, listing_cache)


@router.get("/products/pending")
async def pending_products(
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        items = await ApprovalWorkflow(session, get_review_target("product"), cache).list_pending(caller)
        return {"products": items}
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/stands/pending")
async def pending_stands(
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        items = await ApprovalWorkflow(session, get_review_target("stand"), cache).list_pending(caller)
        return {"stands": items}
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/{kind}/{entity_id}/history")
async def status_history(
    kind: str,
    entity_id: str,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Audit log of one product or market stand, newest first."""
    try:
        history = await ApprovalWorkflow(session, get_review_target(kind)).get_history(caller, entity_id)
        return {"history": history}
    except ServiceError as e:
        _handle_service_error(e)


# ============================================
# DELIVERY ZONE MODERATION
# ============================================

@router.get("/delivery-zones")
async def list_delivery_zones(
    flagged: bool = Query(False),
    suspended: bool = Query(False),
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zones = await DeliveryZoneService(session).list_zones_for_admin(caller, flagged, suspended)
        return {"zones": zones}
    except ServiceError as e:
        _handle_service_error(e)


@router.patch("/delivery-zones")
async def moderate_delivery_zone(
    data: ZoneModerationAction,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        zone = await DeliveryZoneService(session).moderate_zone(caller, data.zoneId, data.action, data.reason)
        await session.commit()
        return {"zone": zone}
    except ServiceError as e:
        await session.rollback()
        _log_rejected(f"zone.{data.action.lower()}", data.zoneId, caller, e)
        _handle_service_error(e)


# ============================================
# ORDER ISSUES
# ============================================

@router.get("/issues")
async def list_issues(
    status: Optional[str] = Query(None),
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        issues = await OrderIssueService(session).list_issues(caller, status)
        return {"issues": issues}
    except ServiceError as e:
        _handle_service_error(e)


@router.patch("/issues")
async def update_issue(
    data: IssueUpdateBody,
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        issue = await OrderIssueService(session).update_issue(
            caller,
            data.issueId,
            data.status.value,
            resolution=data.resolution,
            admin_notes=data.adminNotes,
            refund_amount=data.refundAmount,
        )
        await session.commit()
        return {"issue": issue}
    except ServiceError as e:
        await session.rollback()
        _log_rejected("issue.update", data.issueId, caller, e)
        _handle_service_error(e)


# ============================================
# ORDERS
# ============================================

@router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(None),
    zoneId: Optional[str] = Query(None),
    producerId: Optional[str] = Query(None),
    caller: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        orders = await OrderService(session).list_orders_for_admin(caller, status, zoneId, producerId)
        return {"orders": orders}
    except ServiceError as e:
        _handle_service_error(e)
