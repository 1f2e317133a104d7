"""Settlement policies: how a purchase subtotal is distributed.

DIRECT
    buyer pays subtotal + buyer fee, seller receives subtotal − seller fee,
    platform receives both fees. buyer_debit == seller_credit + platform_fee.
HOST_INVESTMENT
    buyer pays subtotal; host, platform and investors split it by basis
    points. Host and platform shares are floored, the investor pool is the
    remainder, and the pool is split pro rata by invested capital with any
    leftover paise going to the largest investor. With no active investors
    the pool stays with the host.

All arithmetic is integer paise. Every policy conserves money exactly:
buyer_debit == seller_credit + platform_fee + Σ investor shares.

Refunds reverse the same flows: the seller gives back first, then the
investors, then the platform, each capped at what it received.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Protocol

from config.settings import Settings
from src.em_common.enums import InvestorAllocationStatus, SettlementMode
from src.em_common.errors import InternalError
from src.em_common.money import calculate_fee, share_of
from src.em_settlement.domain.models import InvestorAllocation, InvestorShare, SettlementRecord


@dataclass
class Distribution:
    subtotal: int
    buyer_fee: int
    seller_fee: int
    buyer_debit: int
    seller_credit: int
    platform_fee: int
    investor_shares: list[InvestorShare] = field(default_factory=list)


class SettlementPolicy(Protocol):
    mode: str
    uses_investors: bool

    def distribute(
        self, subtotal: int, investors: list[InvestorAllocation]
    ) -> Distribution: ...


class DirectPurchasePolicy:
    mode = SettlementMode.DIRECT.value
    uses_investors = False

    def __init__(self, buyer_fee_bps: int, seller_fee_bps: int) -> None:
        self.buyer_fee_bps = buyer_fee_bps
        self.seller_fee_bps = seller_fee_bps

    def distribute(
        self, subtotal: int, investors: list[InvestorAllocation]
    ) -> Distribution:
        buyer_fee = calculate_fee(subtotal, self.buyer_fee_bps)
        seller_fee = calculate_fee(subtotal, self.seller_fee_bps)
        return Distribution(
            subtotal=subtotal,
            buyer_fee=buyer_fee,
            seller_fee=seller_fee,
            buyer_debit=subtotal + buyer_fee,
            seller_credit=subtotal - seller_fee,
            platform_fee=buyer_fee + seller_fee,
        )


def split_investor_pool(pool: int, investors: list[InvestorAllocation]) -> list[InvestorShare]:
    """Pro-rata floor split; remainder to the largest investor (lowest id on ties)."""
    invested: dict[str, int] = defaultdict(int)
    for allocation in investors:
        if allocation.status == InvestorAllocationStatus.ACTIVE.value and allocation.amount_invested > 0:
            invested[allocation.investor_id] += allocation.amount_invested
    total_invested = sum(invested.values())
    if pool <= 0 or total_invested == 0:
        return []

    ordered = sorted(invested.items())
    shares = {investor_id: pool * amount // total_invested for investor_id, amount in ordered}
    leftover = pool - sum(shares.values())
    if leftover:
        largest = min(ordered, key=lambda item: (-item[1], item[0]))[0]
        shares[largest] += leftover
    return [InvestorShare(investor_id=i, amount=a) for i, a in shares.items() if a > 0]


class HostInvestmentPolicy:
    mode = SettlementMode.HOST_INVESTMENT.value
    uses_investors = True

    def __init__(self, host_bps: int, platform_bps: int, investor_bps: int) -> None:
        if host_bps + platform_bps + investor_bps != 10000:
            raise ValueError("host/platform/investor shares must total 10000 bps")
        self.host_bps = host_bps
        self.platform_bps = platform_bps
        self.investor_bps = investor_bps

    def distribute(
        self, subtotal: int, investors: list[InvestorAllocation]
    ) -> Distribution:
        host_share = share_of(subtotal, self.host_bps)
        platform_share = share_of(subtotal, self.platform_bps)
        pool = subtotal - host_share - platform_share
        shares = split_investor_pool(pool, investors)
        if not shares:
            host_share += pool
        return Distribution(
            subtotal=subtotal,
            buyer_fee=0,
            seller_fee=0,
            buyer_debit=subtotal,
            seller_credit=host_share,
            platform_fee=platform_share,
            investor_shares=shares,
        )


def policies_from_settings(cfg: Settings) -> dict[str, SettlementPolicy]:
    return {
        SettlementMode.DIRECT.value: DirectPurchasePolicy(
            cfg.DIRECT_BUYER_FEE_BPS, cfg.DIRECT_SELLER_FEE_BPS
        ),
        SettlementMode.HOST_INVESTMENT.value: HostInvestmentPolicy(
            cfg.HOST_SHARE_BPS, cfg.PLATFORM_SHARE_BPS, cfg.INVESTOR_SHARE_BPS
        ),
    }


@dataclass
class RefundSplit:
    from_seller: int
    from_platform: int
    from_investors: list[InvestorShare] = field(default_factory=list)


def split_refund(amount: int, purchase: SettlementRecord) -> RefundSplit:
    """Who gives back how much of a refund, in the order seller → investors → platform.

    Each party returns at most what it received on the purchase. Investors
    give back pro rata to their stored shares; floor, then one paisa at a time
    to the largest shares (lowest id on ties). Since the purchase conserved
    money, a full refund takes back exactly what every party received.
    """
    from_seller = min(amount, purchase.seller_credit)
    remaining = amount - from_seller

    investor_total = purchase.investor_total
    from_investor_pool = min(remaining, investor_total)
    clawbacks: dict[str, int] = {}
    if from_investor_pool > 0:
        clawbacks = {
            s.investor_id: from_investor_pool * s.amount // investor_total
            for s in purchase.investor_shares
        }
        leftover = from_investor_pool - sum(clawbacks.values())
        ranked = sorted(purchase.investor_shares, key=lambda s: (-s.amount, s.investor_id))
        for share in ranked[:leftover]:
            clawbacks[share.investor_id] += 1
    remaining -= from_investor_pool

    if remaining > purchase.platform_fee:
        raise InternalError(
            f"Refund of {amount} exceeds what settlement {purchase.id} distributed"
        )
    return RefundSplit(
        from_seller=from_seller,
        from_platform=remaining,
        from_investors=[InvestorShare(i, a) for i, a in clawbacks.items() if a > 0],
    )
