"""Tests for the five-factor listing score and ranking order."""

import random

import pytest

from src.em_listing.domain.models import GeoPoint, ListingCandidate, SellerReputation
from src.em_matching.domain.models import BuyerPreferences
from src.em_matching.engine.scoring import score_and_rank, score_listing
from tests.fakes import make_listing

BUYER = GeoPoint(12.0, 77.0)


def _candidate(
    listing_id: str,
    lat: float | None = 12.0,
    lng: float | None = 77.0,
    price: int = 500,
    seller_id: str = "seller-1",
    renewable: bool = True,
    reputation: SellerReputation | None = None,
) -> ListingCandidate:
    return ListingCandidate(
        listing=make_listing(
            id=listing_id, price_per_kwh=price, seller_id=seller_id, renewable_cert=renewable
        ),
        latitude=lat,
        longitude=lng,
        reputation=reputation or SellerReputation(),
    )


class TestScoreListing:
    def test_neutral_seller_at_buyer_location(self) -> None:
        score = score_listing(_candidate("a"), 0.0, BuyerPreferences(), 500.0)
        assert score.distance == 25.0
        assert score.price == 15.0
        assert score.rating == 12.0
        assert score.reliability == 7.5
        assert score.renewable == 10.0
        assert score.total == 69.5

    def test_distance_decays_to_zero(self) -> None:
        prefs = BuyerPreferences(max_distance_km=100.0)
        assert score_listing(_candidate("a"), 50.0, prefs, 500.0).distance == 12.5
        assert score_listing(_candidate("a"), 150.0, prefs, 500.0).distance == 0.0

    def test_price_factor_capped(self) -> None:
        cheap = score_listing(_candidate("a", price=100), 0.0, BuyerPreferences(), 400.0)
        pricey = score_listing(_candidate("b", price=700), 0.0, BuyerPreferences(), 400.0)
        assert cheap.price == 30.0
        assert pricey.price == 0.0

    def test_rating_clamped(self) -> None:
        rep = SellerReputation(avg_rating=7.0)
        assert score_listing(_candidate("a", reputation=rep), 0.0, BuyerPreferences(), 500.0).rating == 20.0

    def test_reliability_from_history(self) -> None:
        rep = SellerReputation(completed=3, cancelled=1)
        score = score_listing(_candidate("a", reputation=rep), 0.0, BuyerPreferences(), 500.0)
        assert score.reliability == 11.25

    def test_renewable_only_when_preferred(self) -> None:
        prefs = BuyerPreferences(prefer_renewable=False)
        assert score_listing(_candidate("a"), 0.0, prefs, 500.0).renewable == 0.0
        assert score_listing(_candidate("b", renewable=False), 0.0, BuyerPreferences(), 500.0).renewable == 0.0

    def test_components_sum_to_total(self) -> None:
        rep = SellerReputation(avg_rating=4.3, completed=7, cancelled=2)
        score = score_listing(_candidate("a", price=437, reputation=rep), 37.3, BuyerPreferences(), 512.0)
        parts = score.distance + score.price + score.rating + score.reliability + score.renewable
        assert score.total == pytest.approx(parts, abs=0.03)


class TestScoreAndRank:
    def test_excludes_buyer_own_listing(self) -> None:
        ranked = score_and_rank(
            BUYER, BuyerPreferences(), [_candidate("mine", seller_id="buyer-1")], buyer_id="buyer-1"
        )
        assert ranked == []

    def test_excludes_unlocated_and_out_of_range(self) -> None:
        candidates = [
            _candidate("nowhere", lat=None, lng=None),
            _candidate("far", lat=14.0),
            _candidate("near", lat=12.1),
        ]
        ranked = score_and_rank(BUYER, BuyerPreferences(max_distance_km=100.0), candidates)
        assert [r.candidate.listing.id for r in ranked] == ["near"]

    def test_max_price_and_min_rating_filter(self) -> None:
        candidates = [
            _candidate("pricey", price=900),
            _candidate("poorly-rated", reputation=SellerReputation(avg_rating=2.0)),
            _candidate("ok"),
        ]
        prefs = BuyerPreferences(max_price=600, min_seller_rating=2.5)
        ranked = score_and_rank(BUYER, prefs, candidates)
        assert [r.candidate.listing.id for r in ranked] == ["ok"]

    def test_cheaper_listing_ranks_first(self) -> None:
        candidates = [_candidate("pricey", price=600), _candidate("cheap", price=400)]
        ranked = score_and_rank(BUYER, BuyerPreferences(), candidates)
        assert [r.candidate.listing.id for r in ranked] == ["cheap", "pricey"]

    def test_ties_broken_by_listing_id(self) -> None:
        candidates = [_candidate("b"), _candidate("a"), _candidate("c")]
        ranked = score_and_rank(BUYER, BuyerPreferences(), candidates)
        assert [r.candidate.listing.id for r in ranked] == ["a", "b", "c"]

    def test_deterministic_regardless_of_input_order(self) -> None:
        candidates = [
            _candidate(f"l-{i}", lat=12.0 + i * 0.05, price=400 + (i * 37) % 200)
            for i in range(12)
        ]
        expected = [r.candidate.listing.id for r in score_and_rank(BUYER, BuyerPreferences(), candidates)]
        shuffled = list(candidates)
        random.Random(7).shuffle(shuffled)
        again = [r.candidate.listing.id for r in score_and_rank(BUYER, BuyerPreferences(), shuffled)]
        assert again == expected

    def test_distance_is_rounded(self) -> None:
        ranked = score_and_rank(BUYER, BuyerPreferences(), [_candidate("a", lat=12.1234)])
        assert ranked[0].distance_km == round(0.1234 * 111.0, 2)
