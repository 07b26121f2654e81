import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from dotenv import load_dotenv
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.app.core.base import Base  # noqa: F401 - re-exported for compatibility
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings

load_dotenv()

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T")

# Connection-level failures worth a retry. Integrity and data errors are logical and propagate.
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, DisconnectionError)

engine = create_async_engine(
    url=settings.db_url,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_timeout=30,
)
async_session = async_sessionmaker(engine, expire_on_commit=False)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    session: Optional[AsyncSession] = None,
) -> T:
    """
    Run an idempotent unit of work, retrying on transient connection errors.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        attempts: Extra attempts after the first (defaults to DB_RETRY_ATTEMPTS)
        backoff: Base delay in seconds, doubled on each retry
        session: Rolled back before each retry so the next attempt starts clean

    Raises:
        The last transient error once retries are exhausted, or any
        non-transient error immediately.
    """
    if attempts is None:
        attempts = settings.DB_RETRY_ATTEMPTS
    if backoff is None:
        backoff = settings.DB_RETRY_BACKOFF

    for attempt in range(attempts + 1):
        try:
            return await operation()
        except TRANSIENT_DB_ERRORS as e:
            if attempt == attempts:
                logger.error("Transient DB error, retries exhausted", attempts=attempt + 1, error=str(e))
                raise
            delay = backoff * (2 ** attempt)
            logger.warning("Transient DB error, retrying", attempt=attempt + 1, delay=delay, error=str(e))
            if session is not None:
                await session.rollback()
            await asyncio.sleep(delay)
