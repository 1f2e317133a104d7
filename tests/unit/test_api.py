"""HTTP-level tests: routing, caller identity, error envelope.

Services are swapped for ones backed by in-memory repositories; the DB
session dependency is overridden in tests/conftest.py.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
from httpx import AsyncClient

from src.em_common.errors import LockContentionError
from src.em_settlement.api import router as settlement_api
from src.em_settlement.domain.fee import DirectPurchasePolicy
from src.em_settlement.domain.service import SettlementService
from src.em_wallet.api import router as wallet_api
from src.em_wallet.application.service import WalletApplicationService
from src.em_listing.infrastructure.lease import InProcessListingLease
from tests.fakes import (
    InMemoryInvestorRepository,
    InMemoryListingRepository,
    InMemorySettlementRepository,
    InMemoryWalletRepository,
    fixed_clock,
    make_listing,
)


class _BusyLease:
    @asynccontextmanager
    async def hold(self, db: object, listing_id: str) -> AsyncIterator[None]:
        raise LockContentionError(listing_id)
        yield  # pragma: no cover


def _settlement_service(wallets: InMemoryWalletRepository, lease: object = None) -> SettlementService:
    return SettlementService(
        listing_repo=InMemoryListingRepository([make_listing()]),
        wallet_repo=wallets,
        settlement_repo=InMemorySettlementRepository(),
        investor_repo=InMemoryInvestorRepository(),
        lease=lease or InProcessListingLease(100),  # type: ignore[arg-type]
        policies={"DIRECT": DirectPurchasePolicy(500, 500)},
        clock=fixed_clock,
        platform_wallet_id="PLATFORM_FEE",
    )


@pytest.fixture
def wallets(monkeypatch: pytest.MonkeyPatch) -> InMemoryWalletRepository:
    repo = InMemoryWalletRepository({"buyer-1": 100000, "PLATFORM_FEE": 0})
    monkeypatch.setattr(settlement_api, "_service", _settlement_service(repo))
    monkeypatch.setattr(wallet_api, "_service", WalletApplicationService(repo=repo))
    return repo


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestCallerIdentity:
    async def test_missing_header_is_401(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        resp = await client.get("/api/v1/wallet/balance")
        assert resp.status_code == 401

    async def test_admin_requires_platform_account(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/admin/invariants", headers={"X-User-Id": "buyer-1"})
        assert resp.status_code == 403
        assert resp.json()["code"] == 9004


class TestWalletApi:
    async def test_deposit_then_balance(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        headers = {"X-User-Id": "buyer-1"}
        resp = await client.post("/api/v1/wallet/deposit", json={"amount_paise": 5000}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["balance_paise"] == 105000

        resp = await client.get("/api/v1/wallet/balance", headers=headers)
        body = resp.json()
        assert body["code"] == 0
        assert body["data"]["balance_display"] == "₹1,050.00"

    async def test_non_positive_deposit_rejected(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        resp = await client.post(
            "/api/v1/wallet/deposit", json={"amount_paise": 0}, headers={"X-User-Id": "buyer-1"}
        )
        assert resp.status_code == 422


class TestSettlementApi:
    async def test_settle(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        resp = await client.post(
            "/api/v1/settlements",
            json={"listing_id": "listing-1", "energy_kwh": "30", "idempotency_key": "k-1"},
            headers={"X-User-Id": "buyer-1"},
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["total_amount_paise"] == 15750
        assert data["seller_credit_paise"] == 14250
        assert data["platform_fee_paise"] == 1500
        assert data["energy_kwh"] == "30.0000"
        assert wallets.balance("buyer-1") == 84250

    async def test_error_envelope(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        resp = await client.post(
            "/api/v1/settlements",
            json={"listing_id": "listing-1", "energy_kwh": "3", "idempotency_key": "k-1"},
            headers={"X-User-Id": "buyer-1"},
        )

        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == 4001
        assert body["data"] is None
        assert body["retryable"] is False
        assert body["request_id"].startswith("req_")

    async def test_contention_is_retryable(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        repo = InMemoryWalletRepository({"buyer-1": 100000})
        monkeypatch.setattr(settlement_api, "_service", _settlement_service(repo, _BusyLease()))

        resp = await client.post(
            "/api/v1/settlements",
            json={"listing_id": "listing-1", "energy_kwh": "30", "idempotency_key": "k-1"},
            headers={"X-User-Id": "buyer-1"},
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == 9003
        assert resp.json()["retryable"] is True

    async def test_list_and_paginate(self, client: AsyncClient, wallets: InMemoryWalletRepository) -> None:
        headers = {"X-User-Id": "buyer-1"}
        for key in ("k-1", "k-2", "k-3"):
            await client.post(
                "/api/v1/settlements",
                json={"listing_id": "listing-1", "energy_kwh": "5", "idempotency_key": key},
                headers=headers,
            )

        first = (await client.get("/api/v1/settlements?limit=2", headers=headers)).json()["data"]
        assert len(first["items"]) == 2
        assert first["has_more"] is True

        second = (
            await client.get(
                "/api/v1/settlements", params={"limit": 2, "cursor": first["next_cursor"]}, headers=headers
            )
        ).json()["data"]
        assert len(second["items"]) == 1
        assert second["has_more"] is False
        ids = {i["id"] for i in first["items"]} | {i["id"] for i in second["items"]}
        assert len(ids) == 3
