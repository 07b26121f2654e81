"""
Redis cache service and the product-listing cache built on top of it.

The listing cache is an explicit abstraction (get / put / invalidate_all) so
services that change what a listing shows can invalidate it without knowing
whether entries live in Redis or in process memory.
"""
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.app.core.logging import get_logger
from backend.app.core.metrics import listing_cache_requests_total
from backend.app.core.settings import get_settings

logger = get_logger(__name__)

NO_LOCATION_KEY = "no-location"


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    # Default TTL values (in seconds)
    TTL_DEFAULT = 300          # 5 minutes
    TTL_PENDING_REVIEW = 60    # admin review queues change often

    # Cache key prefixes
    KEY_LISTINGS = "listings:"
    KEY_PENDING = "pending:{kind}"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection."""
        if cls._redis is None:
            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True
            )
        return cls._redis

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._redis:
            await cls._redis.close()
            cls._redis = None

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: int = TTL_DEFAULT):
        """Set value in cache with TTL."""
        await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)

    async def delete(self, key: str):
        """Delete value from cache."""
        await self.redis.delete(key)

    async def delete_pattern(self, pattern: str):
        """Delete all keys matching pattern."""
        keys = await self.redis.keys(pattern)
        if keys:
            await self.redis.delete(*keys)

    # ----- Admin review queues -----

    async def get_pending(self, kind: str) -> Optional[list]:
        return await self.get(self.KEY_PENDING.format(kind=kind))

    async def set_pending(self, kind: str, items: list):
        await self.set(self.KEY_PENDING.format(kind=kind), items, self.TTL_PENDING_REVIEW)

    async def invalidate_pending(self, kind: str):
        await self.delete(self.KEY_PENDING.format(kind=kind))


def listing_cache_key(
    latitude: Optional[float],
    longitude: Optional[float],
    cursor: Optional[str] = None,
    radius_km: Optional[float] = None,
) -> str:
    """
    Cache key for a product listing page.

    Coordinates are rounded to 2 decimal places (about 1 km) so nearby
    callers share an entry. The search radius is part of a located key,
    since pages for different radii hold different products.
    """
    if latitude is None or longitude is None:
        base = NO_LOCATION_KEY
    else:
        base = f"{round(latitude, 2):.2f},{round(longitude, 2):.2f}"
        if radius_km is not None:
            base = f"{base}@{radius_km:g}km"
    if cursor:
        return f"{base}:{cursor}"
    return base


class ListingCache(ABC):
    """Key-value cache for product listing pages with a fixed time-to-live."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Cached page, or None when absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store a page, restarting its time-to-live."""

    @abstractmethod
    async def invalidate_all(self) -> None:
        """Drop every cached page."""


class TTLCache(ListingCache):
    """
    In-process listing cache.

    Args:
        ttl: Entry lifetime in seconds
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, ttl: float = CacheService.TTL_DEFAULT, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            listing_cache_requests_total.labels(result="miss").inc()
            return None
        stored_at, value = entry
        if self.clock() - stored_at >= self.ttl:
            del self._entries[key]
            listing_cache_requests_total.labels(result="expired").inc()
            return None
        listing_cache_requests_total.labels(result="hit").inc()
        return value

    async def put(self, key: str, value: Any) -> None:
        now = self.clock()
        self._purge_expired(now)
        self._entries[key] = (now, value)

    async def invalidate_all(self) -> None:
        self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]
        for k in expired:
            del self._entries[k]

    def __len__(self) -> int:
        return len(self._entries)


class RedisListingCache(ListingCache):
    """Listing cache stored in Redis; expiry is delegated to key TTLs."""

    def __init__(self, cache: CacheService, ttl: Optional[int] = None):
        self.cache = cache
        self.ttl = ttl if ttl is not None else get_settings().PRODUCT_CACHE_TTL

    async def get(self, key: str) -> Optional[Any]:
        value = await self.cache.get(CacheService.KEY_LISTINGS + key)
        listing_cache_requests_total.labels(result="hit" if value is not None else "miss").inc()
        return value

    async def put(self, key: str, value: Any) -> None:
        await self.cache.set(CacheService.KEY_LISTINGS + key, value, self.ttl)

    async def invalidate_all(self) -> None:
        await self.cache.delete_pattern(CacheService.KEY_LISTINGS + "*")


async def invalidate_listings(listing_cache: Optional[ListingCache], reason: str, **context) -> None:
    """
    Drop every cached listing page after a committed change.

    The change is already durable at this point, so a cache outage is logged
    and the stale entries are left to expire.
    """
    if listing_cache is None:
        return
    try:
        await listing_cache.invalidate_all()
        logger.debug("Listing cache invalidated", reason=reason, **context)
    except RedisError as e:
        logger.warning("Listing cache invalidation failed", reason=reason, error=str(e), **context)
