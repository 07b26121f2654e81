"""Customer-reported order issues and their admin handling."""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from backend.app.core.auth import CurrentUser, require_admin_privilege, require_identity, require_owner
from backend.app.core.base import utcnow
from backend.app.core.constants import CLOSED_ISSUE_STATUSES, OPEN_ISSUE_STATUSES, IssueStatus, IssueType
from backend.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import order_issues_reported_total
from backend.app.models.order import Order, OrderIssue
from backend.app.models.user import User

logger = get_logger(__name__)

MIN_DESCRIPTION_LENGTH = 10


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _user_to_dict(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "firstName": user.first_name, "lastName": user.last_name}


def issue_to_dict(issue: OrderIssue, order_number: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": issue.id,
        "orderId": issue.order_id,
        "orderNumber": order_number,
        "reportedById": issue.reported_by_id,
        "issueType": issue.issue_type,
        "description": issue.description,
        "status": issue.status,
        "resolution": issue.resolution,
        "adminNotes": issue.admin_notes,
        "refundAmount": issue.refund_amount,
        "refundedAt": _iso(issue.refunded_at),
        "resolvedAt": _iso(issue.resolved_at),
        "resolvedById": issue.resolved_by_id,
        "createdAt": _iso(issue.created_at),
        "updatedAt": _iso(issue.updated_at),
    }


class OrderIssueService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def report_issue(
        self,
        caller: Optional[CurrentUser],
        order_id: str,
        issue_type: str,
        description: str,
    ) -> Dict[str, Any]:
        """
        Open an issue on the caller's own order.

        Only one PENDING or INVESTIGATING issue may exist per order.
        """
        caller = require_identity(caller)
        try:
            issue_type = IssueType(issue_type).value
        except ValueError:
            raise ValidationError("Invalid issue type", {"issueType": issue_type})
        description = (description or "").strip()
        if len(description) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(
                "Description must be at least 10 characters",
                {"description": f"min length {MIN_DESCRIPTION_LENGTH}"},
            )

        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        require_owner(caller, order.user_id, "You can only report issues for your own orders")

        existing = await self.session.scalar(
            select(OrderIssue.id).where(
                OrderIssue.order_id == order_id,
                OrderIssue.status.in_(OPEN_ISSUE_STATUSES),
            ).limit(1)
        )
        if existing is not None:
            raise ConflictError("There is already a pending issue for this order")

        issue = OrderIssue(
            order_id=order_id,
            reported_by_id=caller.id,
            issue_type=issue_type,
            description=description,
            status=IssueStatus.PENDING.value,
        )
        self.session.add(issue)
        await self.session.flush()

        order_issues_reported_total.labels(issue_type=issue_type).inc()
        logger.info("Order issue reported", order_id=order_id, issue_id=issue.id,
                    caller_id=caller.id, issue_type=issue_type)
        return {
            "id": issue.id,
            "orderNumber": order.order_number,
            "issueType": issue.issue_type,
            "status": issue.status,
            "createdAt": _iso(issue.created_at),
        }

    async def list_issues(self, caller: Optional[CurrentUser], status: Optional[str] = None) -> List[Dict[str, Any]]:
        """All issues (optionally filtered by status), newest first."""
        require_admin_privilege(caller)
        reporter = aliased(User)
        resolver = aliased(User)
        query = (
            select(OrderIssue, Order.order_number, reporter, resolver)
            .join(Order, Order.id == OrderIssue.order_id)
            .join(reporter, reporter.id == OrderIssue.reported_by_id)
            .outerjoin(resolver, resolver.id == OrderIssue.resolved_by_id)
        )
        if status:
            query = query.where(OrderIssue.status == status)
        query = query.order_by(OrderIssue.created_at.desc(), OrderIssue.id)

        issues = []
        for issue, order_number, reported_by, resolved_by in (await self.session.execute(query)).all():
            item = issue_to_dict(issue, order_number)
            item["reportedBy"] = _user_to_dict(reported_by)
            item["resolvedBy"] = _user_to_dict(resolved_by)
            issues.append(item)
        return issues

    async def update_issue(
        self,
        caller: Optional[CurrentUser],
        issue_id: str,
        status: str,
        resolution: Optional[str] = None,
        admin_notes: Optional[str] = None,
        refund_amount: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Admin update of an issue.

        A refund amount stamps `refunded_at`; moving to RESOLVED or REFUNDED
        records who closed the issue and when.
        """
        caller = require_admin_privilege(caller)
        try:
            status = IssueStatus(status).value
        except ValueError:
            raise ValidationError("Invalid issue status", {"status": status})
        if refund_amount is not None and refund_amount < 0:
            raise ValidationError("Refund amount must be non-negative", {"refundAmount": refund_amount})

        issue = await self.session.get(OrderIssue, issue_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)

        now = utcnow()
        issue.status = status
        if resolution:
            issue.resolution = resolution
        if admin_notes:
            issue.admin_notes = admin_notes
        if refund_amount is not None:
            issue.refund_amount = refund_amount
            issue.refunded_at = now
        if status in CLOSED_ISSUE_STATUSES:
            issue.resolved_at = now
            issue.resolved_by_id = caller.id
        await self.session.flush()

        order_number = await self.session.scalar(select(Order.order_number).where(Order.id == issue.order_id))
        logger.info("Order issue updated", issue_id=issue_id, caller_id=caller.id, status=status)
        return issue_to_dict(issue, order_number)
