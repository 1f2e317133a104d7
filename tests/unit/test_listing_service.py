"""ListingService against the in-memory listing repository."""

from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from src.em_common.enums import SortBy
from src.em_common.errors import AppError
from src.em_listing.application.directory import ListingDirectory
from src.em_listing.application.schemas import CreateListingRequest, UpdateListingRequest
from src.em_listing.application.service import ListingService
from src.em_listing.domain.models import GeoPoint, ListingFilters, SellerReputation, can_transition
from src.em_listing.infrastructure.lease import InProcessListingLease
from tests.fakes import (
    NOW,
    FakeSession,
    InMemoryListingRepository,
    StaticReputation,
    fixed_clock,
    make_listing,
)


def _service(repo: InMemoryListingRepository, reputation: StaticReputation | None = None) -> ListingService:
    directory = ListingDirectory(repo, reputation or StaticReputation(), use_redis=False, clock=fixed_clock)
    return ListingService(repo, InProcessListingLease(100), directory, clock=fixed_clock)


class TestLifecycle:
    def test_terminal_states_are_final(self) -> None:
        assert can_transition("ACTIVE", "SOLD")
        assert can_transition("ACTIVE", "CANCELLED")
        assert not can_transition("SOLD", "ACTIVE")
        assert not can_transition("CANCELLED", "ACTIVE")
        assert not can_transition("EXPIRED", "SOLD")


class TestCreateListing:
    async def test_creates_active_listing(self) -> None:
        repo = InMemoryListingRepository()
        db = FakeSession()
        body = CreateListingRequest(
            energy_amount_kwh=Decimal("100"),
            price_per_kwh=500,
            min_purchase_kwh=Decimal("5"),
            available_to=NOW + timedelta(days=1),
            latitude=12.97,
            longitude=77.59,
        )

        created = await _service(repo).create_listing(db, "seller-1", body)

        assert created.status == "ACTIVE"
        assert created.energy_amount_kwh == "100.0000"
        assert created.available_from == NOW.isoformat()
        assert created.price_per_kwh_display == "₹5.00"
        assert db.commits == 1
        assert repo.listings[created.id].seller_id == "seller-1"

    def test_half_a_location_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateListingRequest(
                energy_amount_kwh=Decimal("10"),
                price_per_kwh=500,
                available_to=NOW + timedelta(days=1),
                latitude=12.0,
            )

    def test_minimum_above_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateListingRequest(
                energy_amount_kwh=Decimal("10"),
                price_per_kwh=500,
                min_purchase_kwh=Decimal("11"),
                available_to=NOW + timedelta(days=1),
            )

    async def test_window_already_closed(self) -> None:
        body = CreateListingRequest(
            energy_amount_kwh=Decimal("10"),
            price_per_kwh=500,
            available_to=NOW - timedelta(minutes=1),
        )
        with pytest.raises(AppError) as exc_info:
            await _service(InMemoryListingRepository()).create_listing(FakeSession(), "seller-1", body)
        assert exc_info.value.code == 3004


class TestUpdateAndCancel:
    async def test_seller_lowers_price_and_energy(self) -> None:
        repo = InMemoryListingRepository([make_listing()])
        updated = await _service(repo).update_listing(
            FakeSession(),
            "seller-1",
            "listing-1",
            UpdateListingRequest(price_per_kwh=450, energy_amount_kwh=Decimal("80")),
        )
        assert updated.price_per_kwh == 450
        assert updated.energy_amount_kwh == "80.0000"
        assert repo.listings["listing-1"].min_purchase_kwh == Decimal("5.0000")

    async def test_energy_cannot_increase(self) -> None:
        repo = InMemoryListingRepository([make_listing()])
        db = FakeSession()
        with pytest.raises(AppError) as exc_info:
            await _service(repo).update_listing(
                db, "seller-1", "listing-1", UpdateListingRequest(energy_amount_kwh=Decimal("120"))
            )
        assert exc_info.value.code == 3004
        assert db.rollbacks == 1

    async def test_only_owner_can_edit(self) -> None:
        repo = InMemoryListingRepository([make_listing()])
        with pytest.raises(AppError) as exc_info:
            await _service(repo).update_listing(
                FakeSession(), "intruder", "listing-1", UpdateListingRequest(price_per_kwh=1)
            )
        assert exc_info.value.code == 3003

    async def test_cancel_is_terminal(self) -> None:
        repo = InMemoryListingRepository([make_listing()])
        svc = _service(repo)

        cancelled = await svc.cancel_listing(FakeSession(), "seller-1", "listing-1")

        assert cancelled.status == "CANCELLED"
        with pytest.raises(AppError) as exc_info:
            await svc.cancel_listing(FakeSession(), "seller-1", "listing-1")
        assert exc_info.value.code == 3004

    async def test_cancel_waits_for_lease(self) -> None:
        repo = InMemoryListingRepository([make_listing()])
        lease = InProcessListingLease(20)
        svc = ListingService(repo, lease, ListingDirectory(repo, StaticReputation(), use_redis=False))
        async with lease.hold(FakeSession(), "listing-1"):  # type: ignore[arg-type]
            with pytest.raises(AppError) as exc_info:
                await svc.cancel_listing(FakeSession(), "seller-1", "listing-1")
        assert exc_info.value.code == 9003
        assert repo.listings["listing-1"].status == "ACTIVE"

    async def test_missing_listing(self) -> None:
        with pytest.raises(AppError) as exc_info:
            await _service(InMemoryListingRepository()).get_listing(FakeSession(), "ghost")
        assert exc_info.value.code == 3001


class TestSearchNearby:
    async def test_sorted_by_distance_with_seller_stats(self) -> None:
        repo = InMemoryListingRepository(
            [
                make_listing(id="near", seller_id="s1", location_latitude=12.0, location_longitude=77.05),
                make_listing(id="nearer", seller_id="s2", location_latitude=12.0, location_longitude=77.01),
                make_listing(id="home", seller_id="s3", location_latitude=None, location_longitude=None),
                make_listing(id="out", seller_id="s4", location_latitude=14.0, location_longitude=77.0),
            ]
        )
        repo.seller_locations["s3"] = GeoPoint(12.0, 77.2)
        reputation = StaticReputation({"s1": SellerReputation(avg_rating=4.25, completed=12)})

        result = await _service(repo, reputation).search_nearby(
            FakeSession(), GeoPoint(12.0, 77.0), 50.0, ListingFilters()
        )

        assert [i.listing.id for i in result.items] == ["nearer", "near", "home"]
        assert result.total == 3
        assert result.items[0].distance_km == 1.11
        assert result.items[1].seller_avg_rating == 4.25
        assert result.items[1].seller_completed_sales == 12

    async def test_sort_by_price_and_limit(self) -> None:
        repo = InMemoryListingRepository(
            [
                make_listing(id="a", price_per_kwh=700, location_latitude=12.0, location_longitude=77.01),
                make_listing(id="b", price_per_kwh=300, location_latitude=12.0, location_longitude=77.1),
                make_listing(id="c", price_per_kwh=500, location_latitude=12.0, location_longitude=77.2),
            ]
        )
        result = await _service(repo).search_nearby(
            FakeSession(), GeoPoint(12.0, 77.0), 50.0, ListingFilters(limit=2), SortBy.PRICE
        )
        assert [i.listing.id for i in result.items] == ["b", "c"]
