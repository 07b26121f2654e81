from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import CurrentUser, decode_access_token, extract_bearer_token, resolve_caller
from backend.app.core.database import async_session
from backend.app.core.logging import bind_caller
from backend.app.services.cache import CacheService, ListingCache, RedisListingCache


# Database session per request
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# Redis cache service per request
async def get_cache() -> AsyncGenerator[CacheService, None]:
    redis = await CacheService.get_redis()
    yield CacheService(redis)


async def get_listing_cache(cache: CacheService = Depends(get_cache)) -> ListingCache:
    return RedisListingCache(cache)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> Optional[CurrentUser]:
    """
    Caller resolved from a Supabase bearer token, or None.

    Missing and invalid tokens both yield None; services decide whether an
    anonymous caller is acceptable.
    """
    token = extract_bearer_token(authorization)
    if not token:
        return None
    claims = decode_access_token(token)
    if claims is None:
        return None
    caller = await resolve_caller(session, claims)
    bind_caller(caller.id)
    return caller
