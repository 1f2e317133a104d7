"""Listing lease implementations.

PostgresListingLease: row lock via SELECT ... FOR UPDATE, bounded by
    SET LOCAL lock_timeout. The lock lives until the holder's transaction
    commits or rolls back; a lock timeout (SQLSTATE 55P03) becomes
    LockContentionError.
InProcessListingLease: one asyncio.Lock per listing id, bounded by
    asyncio.wait_for. Only serializes callers inside one process; meant for
    single-worker deployments and tests.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.database import LOCK_NOT_AVAILABLE, sqlstate
from src.em_common.errors import ListingNotFoundError, LockContentionError
from src.em_listing.domain.lease import ListingLeaseProtocol

logger = logging.getLogger(__name__)

_LOCK_LISTING_SQL = text("""
    SELECT id FROM energy_listings WHERE id = :listing_id FOR UPDATE
""")


class PostgresListingLease:
    def __init__(self, timeout_ms: int) -> None:
        self._timeout_ms = int(timeout_ms)

    @asynccontextmanager
    async def hold(self, db: AsyncSession, listing_id: str) -> AsyncIterator[None]:
        try:
            # SET does not accept bind parameters; the value is a validated int
            await db.execute(text(f"SET LOCAL lock_timeout = '{self._timeout_ms}ms'"))
            result = await db.execute(_LOCK_LISTING_SQL, {"listing_id": listing_id})
        except DBAPIError as exc:
            await db.rollback()
            if sqlstate(exc) == LOCK_NOT_AVAILABLE:
                logger.info("Lock timeout on listing %s after %dms", listing_id, self._timeout_ms)
                raise LockContentionError(listing_id) from exc
            raise
        if result.fetchone() is None:
            await db.rollback()
            raise ListingNotFoundError(listing_id)
        yield


class InProcessListingLease:
    def __init__(self, timeout_ms: int) -> None:
        self._timeout = timeout_ms / 1000
        self._locks: dict[str, asyncio.Lock] = {}
        # holders + waiters per listing; the lock is dropped when it reaches zero
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, db: AsyncSession, listing_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(listing_id, asyncio.Lock())
        self._users[listing_id] = self._users.get(listing_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
            except TimeoutError:
                logger.info("Lease wait expired on listing %s", listing_id)
                raise LockContentionError(listing_id) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[listing_id] -= 1
            if self._users[listing_id] == 0:
                del self._users[listing_id]
                del self._locks[listing_id]


def build_listing_lease() -> ListingLeaseProtocol:
    if settings.LISTING_LEASE_BACKEND == "in_process":
        return InProcessListingLease(settings.LISTING_LOCK_TIMEOUT_MS)
    return PostgresListingLease(settings.LISTING_LOCK_TIMEOUT_MS)


_shared_lease: ListingLeaseProtocol | None = None


def get_listing_lease() -> ListingLeaseProtocol:
    """Process-wide lease shared by settlement and seller cancellation."""
    global _shared_lease  # noqa: PLW0603
    if _shared_lease is None:
        _shared_lease = build_listing_lease()
    return _shared_lease
