# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.approvals import (
    ApprovalWorkflow,
    PRODUCT_REVIEW,
    STAND_REVIEW,
    get_review_target,
)
from backend.app.services.cache import (
    CacheService,
    ListingCache,
    RedisListingCache,
    TTLCache,
    listing_cache_key,
)
from backend.app.services.catalog import ProducerCatalogService
from backend.app.services.delivery_eligibility import DeliveryEligibilityService
from backend.app.services.delivery_schedule import (
    DeliveryScheduleService,
    NoPlan,
    OneTimePlan,
    RecurringPlan,
)
from backend.app.services.delivery_zones import (
    Address,
    DeliveryZoneService,
    calculate_delivery_fee,
    is_address_in_zone,
    meets_minimum_order,
)
from backend.app.services.order_issues import OrderIssueService
from backend.app.services.orders import OrderService
from backend.app.services.products import ProductListingService

__all__ = [
    # Approval workflow
    "ApprovalWorkflow",
    "PRODUCT_REVIEW",
    "STAND_REVIEW",
    "get_review_target",
    # Caching
    "CacheService",
    "ListingCache",
    "RedisListingCache",
    "TTLCache",
    "listing_cache_key",
    # Delivery
    "Address",
    "DeliveryEligibilityService",
    "DeliveryScheduleService",
    "DeliveryZoneService",
    "NoPlan",
    "OneTimePlan",
    "RecurringPlan",
    "calculate_delivery_fee",
    "is_address_in_zone",
    "meets_minimum_order",
    # Orders
    "OrderIssueService",
    "OrderService",
    "ProductListingService",
    # Producer catalog
    "ProducerCatalogService",
]
