"""Listing lease: exclusive access to one listing for the duration of a unit of work.

The holder must finish its database transaction (commit or rollback) before
leaving the context. Acquisition waits a bounded time and raises
LockContentionError on timeout.
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


class ListingLeaseProtocol(Protocol):
    def hold(
        self, db: AsyncSession, listing_id: str
    ) -> AbstractAsyncContextManager[None]: ...
