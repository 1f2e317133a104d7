"""Unified error codes and custom exceptions.

Error code ranges:
  2xxx: Wallet
  3xxx: Listing
  4xxx: Settlement
  9xxx: System

Only LockContentionError is retryable; every other error is deterministic
and must not be resubmitted unchanged.
"""

from decimal import Decimal


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        retryable: bool = False,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.retryable = retryable
        super().__init__(message)


# --- 2xxx: Wallet ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} paise, available {available} paise",
            422,
        )


class WalletNotFoundError(AppError):
    def __init__(self, owner_id: str) -> None:
        super().__init__(2002, f"Wallet not found for account {owner_id}", 404)


# --- 3xxx: Listing ---

class ListingNotFoundError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3001, f"Listing not found: {listing_id}", 404)


class ListingUnavailableError(AppError):
    def __init__(self, listing_id: str, reason: str) -> None:
        super().__init__(3002, f"Listing {listing_id} is not available: {reason}", 409)


class ListingNotOwnedError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3003, f"Listing {listing_id} does not belong to caller", 403)


class ListingNotEditableError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3004, f"Listing cannot be edited: {detail}", 422)


# --- 4xxx: Settlement ---

class BelowMinimumPurchaseError(AppError):
    def __init__(self, requested: Decimal, minimum: Decimal) -> None:
        super().__init__(
            4001,
            f"Requested {requested} kWh is below the minimum purchase of {minimum} kWh",
            422,
        )


class InsufficientQuantityError(AppError):
    def __init__(self, requested: Decimal, available: Decimal) -> None:
        super().__init__(
            4002,
            f"Requested {requested} kWh exceeds the {available} kWh available",
            409,
        )


class SelfPurchaseForbiddenError(AppError):
    def __init__(self) -> None:
        super().__init__(4003, "Cannot buy your own listing", 422)


class SettlementNotFoundError(AppError):
    def __init__(self, settlement_id: str) -> None:
        super().__init__(4004, f"Settlement not found: {settlement_id}", 404)


class DuplicateSettlementError(AppError):
    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            4005,
            f"Idempotency key {idempotency_key} was already used for a different purchase",
            409,
        )


class SettlementNotRefundableError(AppError):
    def __init__(self, settlement_id: str, status: str) -> None:
        super().__init__(
            4006, f"Settlement {settlement_id} in status {status} cannot be refunded", 422
        )


class InvalidRefundAmountError(AppError):
    def __init__(self, amount: int, maximum: int) -> None:
        super().__init__(
            4007, f"Refund amount {amount} paise must be in [1, {maximum}]", 422
        )


class InvalidQuantityError(AppError):
    def __init__(self, quantity: Decimal) -> None:
        super().__init__(4008, f"Energy quantity must be positive, got {quantity}", 422)


class IdempotencyKeyRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(4009, "An idempotency key is required to settle a purchase", 422)


class RatingNotAllowedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4010, f"Cannot rate settlement: {detail}", 422)


class RefundNotPermittedError(AppError):
    def __init__(self, settlement_id: str) -> None:
        super().__init__(
            4011, f"Only the seller or the platform may refund settlement {settlement_id}", 403
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PlatformOperatorRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(9004, "Platform operator account required", 403)


class LockContentionError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(
            9003,
            f"Listing {listing_id} is busy, retry after a short backoff",
            409,
            retryable=True,
        )
