"""
Tests for customer-reported order issues.

Tests cover:
- Reporting on own orders only, one open issue per order
- Admin listing and resolution (refund / resolved stamps)
- Rate limiting of the report endpoint
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser
from backend.app.core.constants import Role
from backend.app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from backend.app.models.user import User
from backend.app.services.order_issues import OrderIssueService

DESCRIPTION = "Box arrived crushed and leaking"


def _caller(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, email=user.email, role=Role(user.role))


# ============================================
# REPORTING
# ============================================

@pytest.mark.asyncio
async def test_report_issue(test_session: AsyncSession, producer: User, customer: User, make_zone, make_order):
    """Customer reports a problem with their own order."""
    order = await make_order(customer, await make_zone(producer), None)

    issue = await OrderIssueService(test_session).report_issue(_caller(customer), order.id, "DAMAGED", DESCRIPTION)

    assert issue["orderNumber"] == order.order_number
    assert issue["issueType"] == "DAMAGED"
    assert issue["status"] == "PENDING"


@pytest.mark.asyncio
async def test_report_issue_rules(
    test_session: AsyncSession, producer: User, customer: User, make_zone, make_order,
):
    order = await make_order(customer, await make_zone(producer), None)
    service = OrderIssueService(test_session)

    with pytest.raises(ValidationError):
        await service.report_issue(_caller(customer), order.id, "DAMAGED", "  too short ")
    with pytest.raises(ValidationError):
        await service.report_issue(_caller(customer), order.id, "LOST", DESCRIPTION)
    with pytest.raises(NotFoundError):
        await service.report_issue(_caller(customer), "missing", "DAMAGED", DESCRIPTION)
    with pytest.raises(ForbiddenError):
        await service.report_issue(_caller(producer), order.id, "DAMAGED", DESCRIPTION)


@pytest.mark.asyncio
async def test_only_one_open_issue_per_order(
    test_session: AsyncSession, producer: User, customer: User, admin_user: User, make_zone, make_order,
):
    order = await make_order(customer, await make_zone(producer), None)
    service = OrderIssueService(test_session)
    first = await service.report_issue(_caller(customer), order.id, "LATE", DESCRIPTION)

    with pytest.raises(ConflictError):
        await service.report_issue(_caller(customer), order.id, "DAMAGED", DESCRIPTION)

    # Once resolved a new issue may be opened
    await service.update_issue(_caller(admin_user), first["id"], "RESOLVED", resolution="Redelivered")
    second = await service.report_issue(_caller(customer), order.id, "DAMAGED", DESCRIPTION)
    assert second["id"] != first["id"]


# ============================================
# ADMIN HANDLING
# ============================================

@pytest.mark.asyncio
async def test_update_issue_refund_and_resolution(
    test_session: AsyncSession, producer: User, customer: User, admin_user: User, make_zone, make_order,
):
    order = await make_order(customer, await make_zone(producer), None)
    service = OrderIssueService(test_session)
    issue = await service.report_issue(_caller(customer), order.id, "NOT_DELIVERED", DESCRIPTION)

    investigating = await service.update_issue(_caller(admin_user), issue["id"], "INVESTIGATING", admin_notes="Called driver")
    assert investigating["resolvedAt"] is None
    assert investigating["adminNotes"] == "Called driver"

    refunded = await service.update_issue(_caller(admin_user), issue["id"], "REFUNDED", refund_amount=1400)
    assert refunded["refundAmount"] == 1400
    assert refunded["refundedAt"] is not None
    assert refunded["resolvedAt"] is not None
    assert refunded["resolvedById"] == admin_user.id
    assert refunded["orderNumber"] == order.order_number


@pytest.mark.asyncio
async def test_update_issue_checks(test_session: AsyncSession, customer: User, admin_user: User):
    service = OrderIssueService(test_session)
    with pytest.raises(ForbiddenError):
        await service.update_issue(_caller(customer), "any", "RESOLVED")
    with pytest.raises(ValidationError):
        await service.update_issue(_caller(admin_user), "any", "CLOSED")
    with pytest.raises(ValidationError):
        await service.update_issue(_caller(admin_user), "any", "REFUNDED", refund_amount=-5)
    with pytest.raises(NotFoundError):
        await service.update_issue(_caller(admin_user), "any", "RESOLVED")


@pytest.mark.asyncio
async def test_list_issues_with_filter(
    test_session: AsyncSession, producer: User, customer: User, admin_user: User, make_zone, make_order,
):
    zone = await make_zone(producer)
    first = await make_order(customer, zone, None)
    second = await make_order(customer, zone, None)
    service = OrderIssueService(test_session)
    a = await service.report_issue(_caller(customer), first.id, "LATE", DESCRIPTION)
    await service.report_issue(_caller(customer), second.id, "DAMAGED", DESCRIPTION)
    await service.update_issue(_caller(admin_user), a["id"], "RESOLVED")
    await test_session.commit()

    everything = await service.list_issues(_caller(admin_user))
    assert len(everything) == 2

    resolved = await service.list_issues(_caller(admin_user), "RESOLVED")
    assert [i["id"] for i in resolved] == [a["id"]]
    assert resolved[0]["reportedBy"]["email"] == "eater@example.com"
    assert resolved[0]["resolvedBy"]["id"] == admin_user.id

    pending = await service.list_issues(_caller(admin_user), "PENDING")
    assert pending[0]["resolvedBy"] is None


# ============================================
# HTTP
# ============================================

@pytest.mark.asyncio
async def test_report_issue_endpoint(
    client: AsyncClient, producer: User, customer: User, customer_headers: dict, make_zone, make_order,
):
    order = await make_order(customer, await make_zone(producer), None)
    body = {"issueType": "WRONG_ITEMS", "description": DESCRIPTION}

    response = await client.post(f"/orders/{order.id}/report-issue", json=body, headers=customer_headers)
    assert response.status_code == 201
    assert response.json()["issue"]["issueType"] == "WRONG_ITEMS"

    response = await client.post(f"/orders/{order.id}/report-issue", json=body, headers=customer_headers)
    assert response.status_code == 409
    assert response.json() == {"error": "There is already a pending issue for this order"}


@pytest.mark.asyncio
async def test_report_issue_endpoint_validation(client: AsyncClient, customer_headers: dict):
    response = await client.post(
        "/orders/whatever/report-issue",
        json={"issueType": "DAMAGED", "description": "short"},
        headers=customer_headers,
    )
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "description"


@pytest.mark.asyncio
async def test_report_issue_is_rate_limited(client: AsyncClient, customer_headers: dict):
    """Sixth report within a minute from the same address is refused."""
    body = {"issueType": "DAMAGED", "description": DESCRIPTION}
    codes = [
        (await client.post("/orders/missing/report-issue", json=body, headers=customer_headers)).status_code
        for _ in range(6)
    ]
    assert codes[:5] == [404] * 5
    assert codes[5] == 429


@pytest.mark.asyncio
async def test_admin_issue_endpoints(
    client: AsyncClient,
    producer: User,
    customer: User,
    customer_headers: dict,
    admin_headers: dict,
    make_zone,
    make_order,
):
    order = await make_order(customer, await make_zone(producer), None)
    created = await client.post(
        f"/orders/{order.id}/report-issue",
        json={"issueType": "POOR_QUALITY", "description": DESCRIPTION},
        headers=customer_headers,
    )
    issue_id = created.json()["issue"]["id"]

    response = await client.get("/admin/issues", params={"status": "PENDING"}, headers=admin_headers)
    assert response.status_code == 200
    assert [i["id"] for i in response.json()["issues"]] == [issue_id]

    response = await client.patch(
        "/admin/issues",
        json={"issueId": issue_id, "status": "RESOLVED", "resolution": "Replacement sent"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["issue"]["resolution"] == "Replacement sent"

    response = await client.get("/admin/issues", headers=customer_headers)
    assert response.status_code == 403
