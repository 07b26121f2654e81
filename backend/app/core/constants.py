"""
Shared constants for the backend application.
"""
import enum


class Role(str, enum.Enum):
    USER = "USER"
    PRODUCER = "PRODUCER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


def has_admin_privilege(role) -> bool:
    """True for ADMIN and SUPER_ADMIN. Accepts a Role or its string value."""
    try:
        return Role(role) in ADMIN_ROLES
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Weekdays
# ---------------------------------------------------------------------------
# Index 0 = Sunday, matching calendar day-of-week numbering used for order grouping.
DAYS_SUNDAY_FIRST = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
WEEKDAY_NAMES = frozenset(DAYS_SUNDAY_FIRST)


def weekday_name(value) -> str:
    """Calendar weekday name of a date/datetime."""
    # date.weekday(): Monday=0 .. Sunday=6
    return DAYS_SUNDAY_FIRST[(value.weekday() + 1) % 7]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    READY = "READY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderType(str, enum.Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


ACTIVE_ORDER_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value, OrderStatus.READY.value)


class IssueType(str, enum.Enum):
    NOT_DELIVERED = "NOT_DELIVERED"
    WRONG_ITEMS = "WRONG_ITEMS"
    DAMAGED = "DAMAGED"
    POOR_QUALITY = "POOR_QUALITY"
    LATE = "LATE"
    OTHER = "OTHER"


class IssueStatus(str, enum.Enum):
    PENDING = "PENDING"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    REFUNDED = "REFUNDED"


OPEN_ISSUE_STATUSES = (IssueStatus.PENDING.value, IssueStatus.INVESTIGATING.value)
CLOSED_ISSUE_STATUSES = (IssueStatus.RESOLVED.value, IssueStatus.REFUNDED.value)


# ---------------------------------------------------------------------------
# Approval workflow
# ---------------------------------------------------------------------------
class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


DEFAULT_APPROVAL_NOTE = "Approved by admin"


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------
class DeliveryType(str, enum.Enum):
    RECURRING = "RECURRING"
    ONE_TIME = "ONE_TIME"


DEFAULT_TIME_WINDOW = "9am - 5pm"
RECURRING_LOOKAHEAD_DAYS = 56
ADMIN_ORDERS_LIMIT = 100
