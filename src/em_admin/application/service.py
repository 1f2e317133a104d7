"""Admin application service: operator-only bookkeeping."""

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.em_common.enums import InvestorAllocationStatus
from src.em_settlement.domain.global_invariants import verify_global_invariants
from src.em_settlement.domain.models import InvestorAllocation
from src.em_settlement.domain.repository import InvestorRepositoryProtocol
from src.em_settlement.infrastructure.persistence import InvestorRepository

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, investor_repo: InvestorRepositoryProtocol | None = None) -> None:
        self._investors: InvestorRepositoryProtocol = investor_repo or InvestorRepository()

    async def check_invariants(self, db: AsyncSession) -> dict[str, Any]:
        violations = await verify_global_invariants(db)
        return {"ok": not violations, "violations": violations}

    async def register_investment(
        self, db: AsyncSession, investor_id: str, host_id: str, amount_paise: int
    ) -> InvestorAllocation:
        """Record an ACTIVE investor stake in a host. Moves no money."""
        try:
            allocation = await self._investors.add_allocation(
                db,
                InvestorAllocation(
                    id=str(uuid.uuid4()),
                    investor_id=investor_id,
                    host_id=host_id,
                    amount_invested=amount_paise,
                    status=InvestorAllocationStatus.ACTIVE.value,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Investor %s registered %d paise in host %s", investor_id, amount_paise, host_id
        )
        return allocation
