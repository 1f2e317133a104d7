"""Tests for the listing lease implementations."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from src.em_common.errors import ListingNotFoundError, LockContentionError
from src.em_listing.infrastructure.lease import InProcessListingLease, PostgresListingLease


class _LockNotAvailable(Exception):
    sqlstate = "55P03"


class _Deadlock(Exception):
    sqlstate = "40P01"


def _db(*results: object) -> MagicMock:
    db = MagicMock()
    db.execute = AsyncMock(side_effect=list(results))
    db.rollback = AsyncMock()
    return db


def _row_result(found: bool) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = MagicMock() if found else None
    return result


class TestPostgresListingLease:
    async def test_locks_row_with_bounded_wait(self) -> None:
        db = _db(MagicMock(), _row_result(True))
        async with PostgresListingLease(1500).hold(db, "listing-1"):
            pass
        statements = [str(call.args[0]) for call in db.execute.call_args_list]
        assert "lock_timeout = '1500ms'" in statements[0]
        assert "FOR UPDATE" in statements[1]
        db.rollback.assert_not_awaited()

    async def test_lock_timeout_becomes_contention(self) -> None:
        db = _db(MagicMock(), DBAPIError("SELECT", {}, _LockNotAvailable()))
        with pytest.raises(LockContentionError) as exc_info:
            async with PostgresListingLease(100).hold(db, "listing-1"):
                pass
        assert exc_info.value.retryable is True
        db.rollback.assert_awaited_once()

    async def test_other_db_errors_propagate(self) -> None:
        db = _db(MagicMock(), DBAPIError("SELECT", {}, _Deadlock()))
        with pytest.raises(DBAPIError):
            async with PostgresListingLease(100).hold(db, "listing-1"):
                pass
        db.rollback.assert_awaited_once()

    async def test_missing_listing(self) -> None:
        db = _db(MagicMock(), _row_result(False))
        with pytest.raises(ListingNotFoundError):
            async with PostgresListingLease(100).hold(db, "ghost"):
                pass


class TestInProcessListingLease:
    async def test_second_holder_times_out(self) -> None:
        lease = InProcessListingLease(timeout_ms=20)
        async with lease.hold(MagicMock(), "listing-1"):
            with pytest.raises(LockContentionError):
                async with lease.hold(MagicMock(), "listing-1"):
                    pass

    async def test_different_listings_do_not_block(self) -> None:
        lease = InProcessListingLease(timeout_ms=20)
        async with lease.hold(MagicMock(), "listing-1"):
            async with lease.hold(MagicMock(), "listing-2"):
                pass

    async def test_released_after_exception(self) -> None:
        lease = InProcessListingLease(timeout_ms=20)
        with pytest.raises(RuntimeError):
            async with lease.hold(MagicMock(), "listing-1"):
                raise RuntimeError("boom")
        async with lease.hold(MagicMock(), "listing-1"):
            pass

    async def test_serializes_holders(self) -> None:
        lease = InProcessListingLease(timeout_ms=1000)
        order: list[str] = []

        async def worker(name: str) -> None:
            async with lease.hold(MagicMock(), "listing-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_idle_locks_are_dropped(self) -> None:
        lease = InProcessListingLease(timeout_ms=20)
        for i in range(1000):
            async with lease.hold(MagicMock(), f"listing-{i}"):
                pass
        assert lease._locks == {}
        assert lease._users == {}

    async def test_lock_kept_while_someone_waits(self) -> None:
        lease = InProcessListingLease(timeout_ms=1000)
        entered = asyncio.Event()

        async def second() -> None:
            async with lease.hold(MagicMock(), "listing-1"):
                entered.set()

        async with lease.hold(MagicMock(), "listing-1"):
            waiter = asyncio.create_task(second())
            await asyncio.sleep(0)
            assert lease._users["listing-1"] == 2
        await waiter
        assert entered.is_set()
        assert lease._locks == {}

    async def test_timed_out_waiter_leaves_no_entry(self) -> None:
        lease = InProcessListingLease(timeout_ms=20)
        async with lease.hold(MagicMock(), "listing-1"):
            with pytest.raises(LockContentionError):
                async with lease.hold(MagicMock(), "listing-1"):
                    pass
            assert lease._users == {"listing-1": 1}
        assert lease._locks == {}
