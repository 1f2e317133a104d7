"""SettlementService: executes one allocation leg as an atomic multi-party transfer.

Attempt lifecycle (logged, never persisted):

    REQUESTED → LOCKED → VALIDATED → COMMITTED
    REQUESTED → LOCKED → REJECTED
    REQUESTED → LOCK_FAILED

Everything between LOCKED and the end of the attempt runs under the listing
lease, and the database transaction is committed or rolled back before the
lease is released. Validation failures have no side effects at all. A
failure while moving money rolls everything back, then a FAILED record is
written in a fresh transaction for audit.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.database import is_lock_conflict
from src.em_common.datetime_utils import Clock, utc_now
from src.em_common.enums import (
    SettlementAttemptState,
    SettlementKind,
    SettlementStatus,
    WalletEntryType,
)
from src.em_common.errors import (
    AppError,
    DuplicateSettlementError,
    IdempotencyKeyRequiredError,
    InsufficientQuantityError,
    InternalError,
    InvalidRefundAmountError,
    ListingNotFoundError,
    LockContentionError,
    RatingNotAllowedError,
    RefundNotPermittedError,
    SettlementNotFoundError,
    SettlementNotRefundableError,
)
from src.em_common.money import energy_value, normalize_energy
from src.em_listing.domain.lease import ListingLeaseProtocol
from src.em_listing.domain.models import Listing
from src.em_listing.domain.repository import ListingRepositoryProtocol
from src.em_listing.infrastructure.lease import get_listing_lease
from src.em_listing.infrastructure.persistence import ListingRepository
from src.em_risk.rules.listing_status import check_listing_available
from src.em_risk.rules.purchase_limit import check_purchase_quantity
from src.em_risk.rules.self_purchase import check_not_self_purchase
from src.em_settlement.domain.fee import (
    Distribution,
    SettlementPolicy,
    policies_from_settings,
    split_refund,
)
from src.em_settlement.domain.models import InvestorAllocation, SettlementRecord
from src.em_settlement.domain.repository import (
    InvestorRepositoryProtocol,
    SettlementRepositoryProtocol,
)
from src.em_settlement.infrastructure.persistence import InvestorRepository, SettlementRepository
from src.em_wallet.domain.repository import WalletRepositoryProtocol
from src.em_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "SETTLEMENT"


def _contention_or(exc: Exception, listing_id: str) -> Exception:
    """Lock timeouts and deadlocks on wallet rows surface as the retryable contention error."""
    if is_lock_conflict(exc):
        contention = LockContentionError(listing_id)
        contention.__cause__ = exc
        return contention
    return exc


class SettlementService:
    def __init__(
        self,
        listing_repo: ListingRepositoryProtocol | None = None,
        wallet_repo: WalletRepositoryProtocol | None = None,
        settlement_repo: SettlementRepositoryProtocol | None = None,
        investor_repo: InvestorRepositoryProtocol | None = None,
        lease: ListingLeaseProtocol | None = None,
        policies: dict[str, SettlementPolicy] | None = None,
        clock: Clock = utc_now,
        platform_wallet_id: str | None = None,
    ) -> None:
        self._listings: ListingRepositoryProtocol = listing_repo or ListingRepository()
        self._wallets: WalletRepositoryProtocol = wallet_repo or WalletRepository()
        self._settlements: SettlementRepositoryProtocol = settlement_repo or SettlementRepository()
        self._investors: InvestorRepositoryProtocol = investor_repo or InvestorRepository()
        self._lease: ListingLeaseProtocol = lease or get_listing_lease()
        self._policies = policies if policies is not None else policies_from_settings(settings)
        self._clock = clock
        self._platform_id = platform_wallet_id or settings.PLATFORM_WALLET_ID

    # ------------------------------------------------------------------
    # settle
    # ------------------------------------------------------------------

    async def settle(
        self,
        db: AsyncSession,
        listing_id: str,
        buyer_id: str,
        energy_kwh: Decimal,
        idempotency_key: str,
    ) -> SettlementRecord:
        if not idempotency_key:
            raise IdempotencyKeyRequiredError()
        energy = normalize_energy(energy_kwh)
        self._log_state(SettlementAttemptState.REQUESTED, listing_id, buyer_id, energy)

        failure: Exception | None = None
        listing: Listing | None = None
        distribution: Distribution | None = None
        try:
            async with self._lease.hold(db, listing_id):
                self._log_state(SettlementAttemptState.LOCKED, listing_id, buyer_id, energy)

                # Phase 1: replay check + validation, no writes
                try:
                    existing = await self._settlements.find_by_idempotency_key(
                        db, buyer_id, idempotency_key
                    )
                    if existing is not None:
                        await db.rollback()
                        return self._replay(existing, listing_id, energy, idempotency_key)

                    listing = await self._listings.get_listing(db, listing_id)
                    if listing is None:
                        raise ListingNotFoundError(listing_id)
                    check_listing_available(listing, self._clock())
                    check_purchase_quantity(listing, energy)
                    check_not_self_purchase(listing, buyer_id)

                    policy = self._policy_for(listing)
                    investors: list[InvestorAllocation] = []
                    if policy.uses_investors:
                        investors = await self._investors.list_active_allocations(
                            db, listing.seller_id
                        )
                    distribution = policy.distribute(
                        energy_value(energy, listing.price_per_kwh), investors
                    )
                except Exception as exc:
                    await db.rollback()
                    self._log_state(
                        SettlementAttemptState.REJECTED, listing_id, buyer_id, energy, exc
                    )
                    raise
                self._log_state(SettlementAttemptState.VALIDATED, listing_id, buyer_id, energy)

                # Phase 2: move money + decrement listing, all or nothing
                try:
                    record = await self._commit_purchase(
                        db, listing, buyer_id, energy, idempotency_key, distribution
                    )
                    await db.commit()
                except Exception as exc:
                    await db.rollback()
                    self._log_state(
                        SettlementAttemptState.REJECTED, listing_id, buyer_id, energy, exc
                    )
                    failure = _contention_or(exc, listing_id)
                else:
                    self._log_state(
                        SettlementAttemptState.COMMITTED, listing_id, buyer_id, energy
                    )
                    return record
        except LockContentionError:
            self._log_state(SettlementAttemptState.LOCK_FAILED, listing_id, buyer_id, energy)
            raise

        if failure is None or listing is None or distribution is None:
            raise InternalError("Settlement attempt ended without a result")
        await self._record_failure(
            db, listing, buyer_id, energy, idempotency_key, distribution, failure
        )
        raise failure

    def _policy_for(self, listing: Listing) -> SettlementPolicy:
        policy = self._policies.get(listing.settlement_mode)
        if policy is None:
            raise InternalError(f"No settlement policy for mode {listing.settlement_mode}")
        return policy

    def _replay(
        self,
        existing: SettlementRecord,
        listing_id: str,
        energy: Decimal,
        idempotency_key: str,
    ) -> SettlementRecord:
        if existing.listing_id != listing_id or existing.energy_kwh != energy:
            raise DuplicateSettlementError(idempotency_key)
        logger.info(
            "Settlement idempotency hit: key=%s settlement=%s", idempotency_key, existing.id
        )
        return existing

    async def _commit_purchase(
        self,
        db: AsyncSession,
        listing: Listing,
        buyer_id: str,
        energy: Decimal,
        idempotency_key: str,
        distribution: Distribution,
    ) -> SettlementRecord:
        settlement_id = str(uuid.uuid4())
        label = f"{energy} kWh from listing {listing.id}"

        await self._wallets.lock_wallets(
            db,
            [buyer_id, listing.seller_id, self._platform_id]
            + [share.investor_id for share in distribution.investor_shares],
        )
        await self._wallets.debit(
            db, buyer_id, distribution.buyer_debit,
            WalletEntryType.PURCHASE_DEBIT.value, REFERENCE_TYPE, settlement_id,
            f"Purchase of {label}",
        )
        if distribution.seller_credit > 0:
            await self._wallets.credit(
                db, listing.seller_id, distribution.seller_credit,
                WalletEntryType.SALE_CREDIT.value, REFERENCE_TYPE, settlement_id,
                f"Sale of {label}",
            )
        if distribution.platform_fee > 0:
            await self._wallets.credit(
                db, self._platform_id, distribution.platform_fee,
                WalletEntryType.FEE_REVENUE.value, REFERENCE_TYPE, settlement_id,
                f"Platform fee on {label}",
            )
        for share in distribution.investor_shares:
            await self._wallets.credit(
                db, share.investor_id, share.amount,
                WalletEntryType.INVESTOR_SHARE.value, REFERENCE_TYPE, settlement_id,
                f"Investor share on {label}",
            )

        updated = await self._listings.decrement_energy(db, listing.id, energy)
        if updated is None:
            # Lease holder saw enough energy; anything else means the lease was bypassed
            raise InsufficientQuantityError(energy, listing.energy_amount_kwh)

        return await self._settlements.insert_settlement(
            db,
            SettlementRecord(
                id=settlement_id,
                kind=SettlementKind.PURCHASE.value,
                buyer_id=buyer_id,
                seller_id=listing.seller_id,
                listing_id=listing.id,
                energy_kwh=energy,
                price_per_kwh=listing.price_per_kwh,
                subtotal=distribution.subtotal,
                buyer_fee=distribution.buyer_fee,
                seller_fee=distribution.seller_fee,
                platform_fee=distribution.platform_fee,
                total_amount=distribution.buyer_debit,
                seller_credit=distribution.seller_credit,
                settlement_mode=listing.settlement_mode,
                status=SettlementStatus.COMPLETED.value,
                idempotency_key=idempotency_key,
                investor_shares=distribution.investor_shares,
            ),
        )

    async def _record_failure(
        self,
        db: AsyncSession,
        listing: Listing,
        buyer_id: str,
        energy: Decimal,
        idempotency_key: str,
        distribution: Distribution,
        failure: Exception,
    ) -> None:
        if isinstance(failure, AppError):
            reason = f"{failure.code}: {failure.message}"
        else:
            reason = type(failure).__name__
        record = SettlementRecord(
            id=str(uuid.uuid4()),
            kind=SettlementKind.PURCHASE.value,
            buyer_id=buyer_id,
            seller_id=listing.seller_id,
            listing_id=listing.id,
            energy_kwh=energy,
            price_per_kwh=listing.price_per_kwh,
            subtotal=distribution.subtotal,
            buyer_fee=distribution.buyer_fee,
            seller_fee=distribution.seller_fee,
            platform_fee=distribution.platform_fee,
            total_amount=distribution.buyer_debit,
            seller_credit=distribution.seller_credit,
            settlement_mode=listing.settlement_mode,
            status=SettlementStatus.FAILED.value,
            idempotency_key=idempotency_key,
            reason=reason[:500],
        )
        try:
            await self._settlements.insert_settlement(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Could not write FAILED settlement record for %s", listing.id)

    # ------------------------------------------------------------------
    # refund
    # ------------------------------------------------------------------

    async def refund(
        self,
        db: AsyncSession,
        settlement_id: str,
        amount: int | None = None,
        reason: str = "",
        requested_by: str | None = None,
    ) -> SettlementRecord:
        """Return money to the buyer of a COMPLETED purchase.

        The seller gives back up to what they received, then the investors
        pro rata to their shares, then the platform up to its fee. The
        listing is not touched.
        """
        original: SettlementRecord | None = None
        try:
            original = await self._settlements.get_settlement(db, settlement_id, for_update=True)
            if original is None:
                raise SettlementNotFoundError(settlement_id)
            if requested_by is not None and requested_by not in (
                original.seller_id,
                self._platform_id,
            ):
                raise RefundNotPermittedError(settlement_id)
            if (
                original.kind != SettlementKind.PURCHASE.value
                or original.status != SettlementStatus.COMPLETED.value
            ):
                raise SettlementNotRefundableError(settlement_id, original.status)

            refund_amount = original.total_amount if amount is None else amount
            if not 1 <= refund_amount <= original.total_amount:
                raise InvalidRefundAmountError(refund_amount, original.total_amount)

            split = split_refund(refund_amount, original)
            refund_id = str(uuid.uuid4())
            label = f"refund of settlement {settlement_id}"

            await self._wallets.lock_wallets(
                db,
                [original.buyer_id, original.seller_id, self._platform_id]
                + [share.investor_id for share in split.from_investors],
            )
            await self._wallets.credit(
                db, original.buyer_id, refund_amount,
                WalletEntryType.REFUND_CREDIT.value, REFERENCE_TYPE, refund_id,
                f"Buyer {label}",
            )
            if split.from_seller > 0:
                await self._wallets.debit(
                    db, original.seller_id, split.from_seller,
                    WalletEntryType.REFUND_DEBIT.value, REFERENCE_TYPE, refund_id,
                    f"Seller {label}",
                )
            for share in split.from_investors:
                await self._wallets.debit(
                    db, share.investor_id, share.amount,
                    WalletEntryType.INVESTOR_REVERSAL.value, REFERENCE_TYPE, refund_id,
                    f"Investor {label}",
                )
            if split.from_platform > 0:
                await self._wallets.debit(
                    db, self._platform_id, split.from_platform,
                    WalletEntryType.FEE_REVERSAL.value, REFERENCE_TYPE, refund_id,
                    f"Platform {label}",
                )

            record = await self._settlements.insert_settlement(
                db,
                SettlementRecord(
                    id=refund_id,
                    kind=SettlementKind.REFUND.value,
                    buyer_id=original.buyer_id,
                    seller_id=original.seller_id,
                    listing_id=original.listing_id,
                    energy_kwh=original.energy_kwh,
                    price_per_kwh=original.price_per_kwh,
                    subtotal=refund_amount,
                    buyer_fee=0,
                    seller_fee=0,
                    platform_fee=split.from_platform,
                    total_amount=refund_amount,
                    seller_credit=split.from_seller,
                    settlement_mode=original.settlement_mode,
                    status=SettlementStatus.COMPLETED.value,
                    original_settlement_id=original.id,
                    reason=reason or None,
                    investor_shares=split.from_investors,
                ),
            )
            if await self._settlements.mark_refunded(db, original.id) is None:
                raise SettlementNotRefundableError(settlement_id, original.status)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            contention = _contention_or(exc, original.listing_id if original else settlement_id)
            if contention is not exc:
                raise contention from exc
            raise

        logger.info(
            "Settlement %s refunded: %d paise (seller %d, investors %d, platform %d) as %s",
            settlement_id,
            refund_amount,
            split.from_seller,
            record.investor_total,
            split.from_platform,
            record.id,
        )
        return record

    # ------------------------------------------------------------------
    # rating + reads
    # ------------------------------------------------------------------

    async def rate_settlement(
        self, db: AsyncSession, settlement_id: str, buyer_id: str, rating: int
    ) -> SettlementRecord:
        try:
            record = await self._settlements.get_settlement(db, settlement_id, for_update=True)
            if record is None or record.buyer_id != buyer_id:
                raise SettlementNotFoundError(settlement_id)
            if not 1 <= rating <= 5:
                raise RatingNotAllowedError(f"rating {rating} must be in [1, 5]")
            if (
                record.kind != SettlementKind.PURCHASE.value
                or record.status != SettlementStatus.COMPLETED.value
            ):
                raise RatingNotAllowedError(f"settlement is {record.status}")
            if record.rating is not None:
                raise RatingNotAllowedError("already rated")
            rated = await self._settlements.set_rating(db, settlement_id, rating)
            if rated is None:
                raise RatingNotAllowedError("already rated")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return rated

    async def get_settlement(
        self, db: AsyncSession, settlement_id: str, account_id: str
    ) -> SettlementRecord:
        record = await self._settlements.get_settlement(db, settlement_id)
        if record is None or account_id not in (
            record.buyer_id,
            record.seller_id,
            self._platform_id,
        ):
            raise SettlementNotFoundError(settlement_id)
        return record

    async def list_settlements(
        self,
        db: AsyncSession,
        account_id: str,
        role: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[SettlementRecord]:
        return await self._settlements.list_for_account(
            db, account_id, role, cursor_ts, cursor_id, limit
        )

    def _log_state(
        self,
        state: SettlementAttemptState,
        listing_id: str,
        buyer_id: str,
        energy: Decimal,
        exc: Exception | None = None,
    ) -> None:
        if exc is None:
            logger.info(
                "Settlement %s: listing=%s buyer=%s energy=%s",
                state.value, listing_id, buyer_id, energy,
            )
        else:
            logger.info(
                "Settlement %s: listing=%s buyer=%s energy=%s error=%s",
                state.value, listing_id, buyer_id, energy, exc,
            )
