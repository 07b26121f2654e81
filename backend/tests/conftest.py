"""
Test fixtures for Cornucopia backend tests.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Supabase-style signed access tokens for callers
- Test data factories for users, zones, stands, products and orders
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

# Secret used to sign test access tokens, same as a Supabase project JWT secret
TEST_JWT_SECRET = "test-supabase-jwt-secret-with-enough-length"

os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")

import time
from datetime import datetime
from typing import AsyncGenerator, Optional

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from backend.app.core.base import Base
from backend.app.core.limiter import limiter
from backend.app.main import app
from backend.app.api.deps import get_session, get_cache, get_listing_cache
from backend.app.services.cache import TTLCache
from backend.app.models.user import User
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.market_stand import MarketStand
from backend.app.models.product import Product
from backend.app.models.order import Order, OrderItem


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Create test engine with StaticPool for in-memory SQLite
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class MockCacheService:
    """Mock Redis cache for testing without actual Redis."""

    def __init__(self):
        self._cache = {}

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: int = 300):
        self._cache[key] = value

    async def delete(self, key: str):
        self._cache.pop(key, None)

    async def delete_pattern(self, pattern: str):
        prefix = pattern.rstrip("*")
        for k in [k for k in self._cache if k.startswith(prefix)]:
            self._cache.pop(k, None)

    async def get_pending(self, kind: str):
        return self._cache.get(f"pending:{kind}")

    async def set_pending(self, kind: str, items):
        self._cache[f"pending:{kind}"] = items

    async def invalidate_pending(self, kind: str):
        self._cache.pop(f"pending:{kind}", None)


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Creates all tables before and drops after each test.
    """
    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def mock_cache() -> MockCacheService:
    """Provide mock cache service for testing."""
    return MockCacheService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def listing_cache(clock: FakeClock) -> TTLCache:
    return TTLCache(ttl=300, clock=clock)


@pytest.fixture
async def client(
    test_session: AsyncSession,
    mock_cache: MockCacheService,
    listing_cache: TTLCache,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides database and cache dependencies.

    Note: We create a fresh session for each API call to avoid
    transaction conflicts with the test_session used for fixtures.
    """
    async def override_get_session():
        # Create a fresh session for each API request
        async with TestSessionLocal() as session:
            yield session

    async def override_get_cache():
        yield mock_cache

    async def override_get_listing_cache():
        return listing_cache

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_cache] = override_get_cache
    app.dependency_overrides[get_listing_cache] = override_get_listing_cache
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Auth Helpers ---

def make_access_token(
    user_id: str,
    email: Optional[str] = None,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
    **extra_claims,
) -> str:
    """Sign an access token the way Supabase does (HS256, aud=authenticated)."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "role": "authenticated",
    }
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {make_access_token(user.id, user.email)}"}


# --- Test Data Factories ---

async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest.fixture
async def producer(test_session: AsyncSession) -> User:
    """Create a test producer."""
    return await _add(test_session, User(
        id="producer-1", email="farmer@example.com", first_name="Fern", last_name="Gully", role="PRODUCER",
    ))


@pytest.fixture
async def other_producer(test_session: AsyncSession) -> User:
    return await _add(test_session, User(
        id="producer-2", email="orchard@example.com", first_name="Olive", last_name="Grove", role="PRODUCER",
    ))


@pytest.fixture
async def customer(test_session: AsyncSession) -> User:
    """Create a test customer (no last name, so display name falls back to email)."""
    return await _add(test_session, User(
        id="customer-1", email="eater@example.com", first_name="Ada", last_name=None, role="USER",
    ))


@pytest.fixture
async def admin_user(test_session: AsyncSession) -> User:
    return await _add(test_session, User(
        id="admin-1", email="admin@example.com", first_name="Ann", last_name="Admin", role="ADMIN",
    ))


@pytest.fixture
def producer_headers(producer: User) -> dict:
    return auth_headers_for(producer)


@pytest.fixture
def customer_headers(customer: User) -> dict:
    return auth_headers_for(customer)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
def make_zone(test_session: AsyncSession):
    async def factory(user: User, **overrides) -> DeliveryZone:
        data = dict(
            user_id=user.id,
            name="North",
            zip_codes=["12345"],
            cities=["Springfield"],
            states=["IL"],
            delivery_days=["Tuesday", "Friday"],
            delivery_fee=500,
            free_delivery_threshold=5000,
            minimum_order=2000,
            is_active=True,
        )
        data.update(overrides)
        return await _add(test_session, DeliveryZone(**data))
    return factory


@pytest.fixture
def make_stand(test_session: AsyncSession):
    async def factory(user: User, **overrides) -> MarketStand:
        data = dict(
            user_id=user.id,
            name="Roadside Stand",
            location_name="Route 9",
            latitude=40.7128,
            longitude=-74.0060,
            status="PENDING",
            is_active=True,
        )
        data.update(overrides)
        return await _add(test_session, MarketStand(**data))
    return factory


@pytest.fixture
def make_product(test_session: AsyncSession):
    async def factory(user: User, **overrides) -> Product:
        data = dict(
            user_id=user.id,
            name="Heirloom Tomatoes",
            price=450,
            images=["https://img.example.com/tomato.jpg"],
            inventory=12,
            status="PENDING",
            is_active=True,
        )
        data.update(overrides)
        return await _add(test_session, Product(**data))
    return factory


@pytest.fixture
def make_order(test_session: AsyncSession):
    counter = {"n": 0}

    async def factory(
        customer: User,
        zone: Optional[DeliveryZone],
        delivery_date: Optional[datetime],
        status: str = "CONFIRMED",
        type: str = "DELIVERY",
        product: Optional[Product] = None,
        **overrides,
    ) -> Order:
        counter["n"] += 1
        data = dict(
            order_number=f"ORD-{counter['n']:04d}",
            user_id=customer.id,
            status=status,
            type=type,
            delivery_date=delivery_date,
            delivery_address="1 Main St, Springfield",
            delivery_zone_id=zone.id if zone else None,
            subtotal=900,
            fees=500,
            total_amount=1400,
        )
        data.update(overrides)
        order = Order(**data)
        test_session.add(order)
        await test_session.flush()
        if product is not None:
            test_session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=2, price_at_time=450))
        await test_session.commit()
        return order
    return factory
