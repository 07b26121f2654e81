"""
Tests for transient database error retries.
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backend.app.core.database import run_with_retry


def _transient() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection reset"))


class _Flaky:
    def __init__(self, failures: int, error_factory=_transient):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return "rows"


class _Session:
    def __init__(self):
        self.rollbacks = 0

    async def rollback(self):
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_succeeds_after_transient_errors():
    operation = _Flaky(failures=2)
    session = _Session()

    assert await run_with_retry(operation, attempts=2, backoff=0, session=session) == "rows"
    assert operation.calls == 3
    assert session.rollbacks == 2


@pytest.mark.asyncio
async def test_gives_up_after_attempts():
    operation = _Flaky(failures=5)

    with pytest.raises(OperationalError):
        await run_with_retry(operation, attempts=1, backoff=0)
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_logical_errors_are_not_retried():
    operation = _Flaky(failures=1, error_factory=lambda: IntegrityError("INSERT", {}, Exception("duplicate")))

    with pytest.raises(IntegrityError):
        await run_with_retry(operation, attempts=3, backoff=0)
    assert operation.calls == 1
