"""
Tests for Public API endpoints.

Tests cover:
- Nearby product listing (approval filters, radius, distance order, paging)
- Listing cache hits, expiry and invalidation
- Delivery quotes for a zone
- Delivery eligibility and delivery options for a product
"""
from datetime import date, datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.user import User
from backend.app.services.cache import TTLCache
from backend.app.services.delivery_eligibility import DeliveryEligibilityService, time_window_for
from backend.app.services.delivery_zones import Address
from backend.app.services.products import ProductListingService, haversine_km

NYC = (40.7128, -74.0060)
MONDAY = date(2025, 6, 2)


# ============================================
# LISTING
# ============================================

@pytest.fixture
async def listed(producer: User, make_stand, make_product):
    """Approved stands in and out of range plus products that must not be listed."""
    near = await make_stand(producer, name="Near", status="APPROVED")
    far = await make_stand(producer, name="Yonkers", status="APPROVED", latitude=40.9312, longitude=-73.8988)
    remote = await make_stand(producer, name="LA", status="APPROVED", latitude=34.0522, longitude=-118.2437)
    pending_stand = await make_stand(producer, name="Pending")

    products = {
        "near": await make_product(producer, name="Near", status="APPROVED", market_stand_id=near.id,
                                   created_at=datetime(2025, 1, 1)),
        "far": await make_product(producer, name="Far", status="APPROVED", market_stand_id=far.id,
                                  created_at=datetime(2025, 1, 2)),
        "remote": await make_product(producer, name="Remote", status="APPROVED", market_stand_id=remote.id,
                                     created_at=datetime(2025, 1, 3)),
    }
    await make_product(producer, name="Unreviewed", market_stand_id=near.id)
    await make_product(producer, name="Hidden", status="APPROVED", is_active=False, market_stand_id=near.id)
    await make_product(producer, name="At pending stand", status="APPROVED", market_stand_id=pending_stand.id)
    return products


def test_haversine():
    assert haversine_km(*NYC, *NYC) == 0
    # Manhattan to Los Angeles
    assert 3900 < haversine_km(*NYC, 34.0522, -118.2437) < 4000


@pytest.mark.asyncio
async def test_listing_with_location_filters_and_sorts(test_session: AsyncSession, listed):
    result = await ProductListingService(test_session).list_products(*NYC)

    assert [p["name"] for p in result["products"]] == ["Near", "Far"]
    assert result["products"][0]["distance"] == 0
    assert result["products"][1]["marketStand"]["name"] == "Yonkers"
    assert result["nextCursor"] is None


@pytest.mark.asyncio
async def test_listing_custom_radius(test_session: AsyncSession, listed):
    result = await ProductListingService(test_session).list_products(*NYC, radius_km=5)
    assert [p["name"] for p in result["products"]] == ["Near"]


@pytest.mark.asyncio
async def test_cached_listing_is_per_radius(test_session: AsyncSession, listed, listing_cache: TTLCache):
    service = ProductListingService(test_session, listing_cache)

    narrow = await service.list_products(*NYC, radius_km=5)
    wide = await service.list_products(*NYC, radius_km=5000)

    assert [p["name"] for p in narrow["products"]] == ["Near"]
    assert [p["name"] for p in wide["products"]] == ["Near", "Far", "Remote"]
    # Same radius at a nearby point is still served from cache
    assert await service.list_products(40.714, -74.006, radius_km=5) == narrow
    assert len(listing_cache) == 2


@pytest.mark.asyncio
async def test_listing_without_location_newest_first(test_session: AsyncSession, listed):
    result = await ProductListingService(test_session).list_products()

    assert [p["name"] for p in result["products"]] == ["Remote", "Far", "Near"]
    assert all(p["distance"] is None for p in result["products"])


@pytest.mark.asyncio
async def test_listing_pages(test_session: AsyncSession, listed):
    service = ProductListingService(test_session)

    first = await service.list_products(limit=2)
    assert [p["name"] for p in first["products"]] == ["Remote", "Far"]
    assert first["nextCursor"] == "2"

    second = await service.list_products(cursor=first["nextCursor"], limit=2)
    assert [p["name"] for p in second["products"]] == ["Near"]
    assert second["nextCursor"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("cursor", ["abc", "-1"])
async def test_listing_bad_cursor(test_session: AsyncSession, cursor):
    with pytest.raises(ValidationError):
        await ProductListingService(test_session).list_products(cursor=cursor)


@pytest.mark.asyncio
async def test_listing_is_cached_until_ttl(
    test_session: AsyncSession, producer: User, listed, make_product, listing_cache: TTLCache, clock,
):
    service = ProductListingService(test_session, listing_cache)
    first = await service.list_products(*NYC)

    stand_id = first["products"][0]["marketStand"]["id"]
    await make_product(producer, name="Late arrival", status="APPROVED", market_stand_id=stand_id)

    # Nearby caller shares the rounded key
    assert await service.list_products(40.714, -74.006) == first

    clock.advance(300)
    refreshed = await service.list_products(*NYC)
    assert "Late arrival" in [p["name"] for p in refreshed["products"]]


@pytest.mark.asyncio
async def test_listing_endpoint_sees_approval_immediately(
    client: AsyncClient, producer: User, admin_headers: dict, listed, make_product,
):
    """Approving a product invalidates the cached listing pages."""
    response = await client.get("/public/products", params={"lat": NYC[0], "lng": NYC[1]})
    assert response.status_code == 200
    stand_id = response.json()["products"][0]["marketStand"]["id"]
    assert len(response.json()["products"]) == 2

    fresh = await make_product(producer, name="Fresh Basil", market_stand_id=stand_id)
    response = await client.post("/admin/product/approve", json={"id": fresh.id}, headers=admin_headers)
    assert response.status_code == 200

    response = await client.get("/public/products", params={"lat": NYC[0], "lng": NYC[1]})
    assert "Fresh Basil" in [p["name"] for p in response.json()["products"]]


@pytest.mark.asyncio
async def test_listing_endpoint_validates_coordinates(client: AsyncClient):
    response = await client.get("/public/products", params={"lat": 123, "lng": 0})
    assert response.status_code == 400


# ============================================
# QUOTE
# ============================================

@pytest.mark.asyncio
async def test_quote_endpoint(client: AsyncClient, producer: User, make_zone):
    zone = await make_zone(producer)

    response = await client.get(f"/public/delivery-zones/{zone.id}/quote", params={"subtotal": 1500})
    assert response.status_code == 200
    assert response.json() == {
        "zoneId": zone.id,
        "subtotal": 1500,
        "deliveryFee": 500,
        "meetsMinimum": False,
        "minimumOrder": 2000,
        "shortfall": 500,
        "freeDelivery": {"qualifies": False, "threshold": 5000, "current": 1500, "needed": 3500},
    }

    response = await client.get(f"/public/delivery-zones/{zone.id}/quote", params={"subtotal": 6000})
    assert response.json()["deliveryFee"] == 0


@pytest.mark.asyncio
async def test_quote_unavailable_zone(client: AsyncClient, producer: User, make_zone):
    zone = await make_zone(producer, is_suspended=True)
    response = await client.get(f"/public/delivery-zones/{zone.id}/quote", params={"subtotal": 100})
    assert response.status_code == 404

    response = await client.get(f"/public/delivery-zones/{zone.id}/quote", params={"subtotal": -1})
    assert response.status_code == 400


# ============================================
# DELIVERY ELIGIBILITY
# ============================================

TUESDAY_WINDOW = [{"day": "Tuesday", "startTime": "09:00", "endTime": "12:00"}]


@pytest.mark.asyncio
async def test_eligibility_ineligible_reasons(
    test_session: AsyncSession, producer: User, make_zone, make_product,
):
    service = DeliveryEligibilityService(test_session)
    zone = await make_zone(producer)
    closed = await make_zone(producer, name="Closed", is_active=False)
    address = Address(zip_code="12345")

    no_delivery = await make_product(producer)
    no_zone = await make_product(producer, delivery_available=True)
    closed_zone = await make_product(producer, delivery_available=True, delivery_zone_id=closed.id)
    covered = await make_product(producer, delivery_available=True, delivery_zone_id=zone.id)

    cases = [
        (no_delivery.id, address, "Delivery not available for this product"),
        (no_zone.id, address, "No delivery zone configured"),
        (closed_zone.id, address, "Delivery zone is not active"),
        (covered.id, Address(zip_code="99999"), "Delivery not available to 99999"),
        (covered.id, Address(), "Please provide your ZIP code to check delivery availability"),
    ]
    for product_id, addr, reason in cases:
        result = await service.check_delivery_eligibility(product_id, addr, today=MONDAY)
        assert result == {"isEligible": False, "reason": reason, "deliveryOptions": []}


@pytest.mark.asyncio
async def test_eligibility_unknown_product(test_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await DeliveryEligibilityService(test_session).check_delivery_eligibility("missing", Address())


@pytest.mark.asyncio
async def test_eligibility_one_time_dates(test_session: AsyncSession, producer: User, make_zone, make_product):
    zone = await make_zone(producer, delivery_time_windows=TUESDAY_WINDOW)
    product = await make_product(
        producer,
        delivery_available=True,
        delivery_zone_id=zone.id,
        delivery_type="ONE_TIME",
        delivery_dates=["2025-06-13", "2025-06-03"],
    )

    result = await DeliveryEligibilityService(test_session).check_delivery_eligibility(
        product.id, Address(zip_code="12345"), today=MONDAY
    )

    assert result["isEligible"] is True
    assert result["matchedZipCode"] == "12345"
    options = result["deliveryOptions"]
    assert [o["date"] for o in options] == ["2025-06-03", "2025-06-13"]
    assert options[0]["dayOfWeek"] == "Tuesday"
    assert options[0]["timeWindow"] == "09:00 - 12:00"
    assert options[1]["timeWindow"] == "9am - 5pm"
    assert options[0]["isRecurring"] is False
    assert options[0]["inventory"] == 12
    assert options[0]["deliveryFee"] == 500


@pytest.mark.asyncio
async def test_eligibility_recurring_schedule(test_session: AsyncSession, producer: User, make_zone, make_product):
    zone = await make_zone(producer)
    product = await make_product(
        producer,
        delivery_available=True,
        delivery_zone_id=zone.id,
        delivery_type="RECURRING",
        delivery_schedule={
            "Monday": {"enabled": True, "inventory": 5},
            "Wednesday": {"enabled": False, "inventory": 9},
            "Friday": {"enabled": True, "inventory": 0},
        },
    )

    result = await DeliveryEligibilityService(test_session).check_delivery_eligibility(
        product.id, Address(city="springfield"), today=MONDAY
    )

    assert result["matchedZipCode"] is None
    assert result["matchedCity"] == "springfield"
    options = result["deliveryOptions"]
    # Eight weeks of Mondays, starting today
    assert len(options) == 8
    assert options[0]["date"] == "2025-06-02"
    assert {o["dayOfWeek"] for o in options} == {"Monday"}
    assert {o["inventory"] for o in options} == {5}
    assert all(o["isRecurring"] for o in options)


@pytest.mark.asyncio
async def test_eligibility_falls_back_to_zone_days(
    test_session: AsyncSession, producer: User, make_zone, make_product,
):
    zone = await make_zone(producer)
    product = await make_product(producer, delivery_available=True, delivery_zone_id=zone.id)

    result = await DeliveryEligibilityService(test_session).check_delivery_eligibility(
        product.id, Address(state="IL"), today=MONDAY
    )

    options = result["deliveryOptions"]
    assert len(options) == 16
    assert [o["date"] for o in options[:2]] == ["2025-06-03", "2025-06-06"]
    assert {o["dayOfWeek"] for o in options} == {"Tuesday", "Friday"}


def test_time_window_default():
    assert time_window_for(DeliveryZone(delivery_time_windows=None), "Monday") == "9am - 5pm"


@pytest.mark.asyncio
async def test_eligibility_endpoint(client: AsyncClient, producer: User, make_zone, make_product):
    zone = await make_zone(producer)
    product = await make_product(producer, delivery_available=True, delivery_zone_id=zone.id)

    response = await client.get(
        f"/public/products/{product.id}/delivery-eligibility", params={"zipCode": "12345"}
    )
    assert response.status_code == 200
    assert response.json()["isEligible"] is True

    response = await client.get("/public/products/missing/delivery-eligibility")
    assert response.status_code == 404
