"""SettlementReputationRepository: seller reputation derived from settlement history.

Average rating over rated purchases (3.0 when none), completed purchase
count, and refunded purchase count as "cancelled".
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_listing.domain.models import SellerReputation

_REPUTATION_SQL = text("""
    SELECT seller_id,
           AVG(rating) FILTER (WHERE rating IS NOT NULL) AS avg_rating,
           COUNT(*) FILTER (WHERE status = 'COMPLETED') AS completed,
           COUNT(*) FILTER (WHERE status = 'REFUNDED') AS cancelled
    FROM energy_settlements
    WHERE kind = 'PURCHASE'
      AND seller_id = ANY(:seller_ids)
    GROUP BY seller_id
""")


class SettlementReputationRepository:
    async def get_reputations(
        self, db: AsyncSession, seller_ids: list[str]
    ) -> dict[str, SellerReputation]:
        if not seller_ids:
            return {}
        result = await db.execute(_REPUTATION_SQL, {"seller_ids": list(seller_ids)})
        reputations: dict[str, SellerReputation] = {}
        for row in result.fetchall():
            reputations[row.seller_id] = SellerReputation(
                avg_rating=float(row.avg_rating) if row.avg_rating is not None else 3.0,
                completed=int(row.completed),
                cancelled=int(row.cancelled),
            )
        return reputations
