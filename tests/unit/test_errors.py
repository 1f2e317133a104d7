"""Tests for em_common.errors and em_common.response."""

from decimal import Decimal

from src.em_common.errors import (
    AppError,
    BelowMinimumPurchaseError,
    DuplicateSettlementError,
    InsufficientBalanceError,
    InsufficientQuantityError,
    ListingNotFoundError,
    LockContentionError,
    SelfPurchaseForbiddenError,
)
from src.em_common.response import ApiResponse, error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500
        assert err.retryable is False

    def test_custom_http_status(self) -> None:
        err = AppError(code=3001, message="missing", http_status=404)
        assert err.http_status == 404

    def test_is_exception(self) -> None:
        assert isinstance(AppError(code=1, message="x"), Exception)


class TestSpecificErrors:
    def test_insufficient_balance(self) -> None:
        err = InsufficientBalanceError(required=15750, available=3000)
        assert err.code == 2001
        assert err.http_status == 422
        assert "15750" in err.message
        assert "3000" in err.message

    def test_listing_not_found(self) -> None:
        err = ListingNotFoundError("L-9")
        assert err.code == 3001
        assert err.http_status == 404
        assert "L-9" in err.message

    def test_below_minimum(self) -> None:
        err = BelowMinimumPurchaseError(Decimal("3"), Decimal("5"))
        assert err.code == 4001
        assert "5" in err.message

    def test_insufficient_quantity_is_conflict(self) -> None:
        err = InsufficientQuantityError(Decimal("80"), Decimal("70"))
        assert err.code == 4002
        assert err.http_status == 409

    def test_self_purchase(self) -> None:
        assert SelfPurchaseForbiddenError().code == 4003

    def test_duplicate_settlement(self) -> None:
        err = DuplicateSettlementError("key-1")
        assert err.code == 4005
        assert "key-1" in err.message

    def test_only_lock_contention_is_retryable(self) -> None:
        err = LockContentionError("L-1")
        assert err.retryable is True
        assert err.http_status == 409
        assert not DuplicateSettlementError("k").retryable
        assert not InsufficientBalanceError(1, 0).retryable


class TestApiResponse:
    def test_success_defaults(self) -> None:
        resp = success_response({"id": 1})
        assert resp.code == 0
        assert resp.message == "success"
        assert resp.data == {"id": 1}
        assert resp.retryable is False
        assert resp.request_id.startswith("req_")

    def test_success_with_request_id(self) -> None:
        resp = success_response(None, request_id="req_abc")
        assert resp.request_id == "req_abc"

    def test_error_response(self) -> None:
        resp = error_response(9003, "busy", retryable=True)
        assert resp.code == 9003
        assert resp.data is None
        assert resp.retryable is True

    def test_serializes(self) -> None:
        dumped = ApiResponse(data=[1, 2]).model_dump()
        assert set(dumped) == {"code", "message", "data", "retryable", "timestamp", "request_id"}
