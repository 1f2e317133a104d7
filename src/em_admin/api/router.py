"""Admin REST API: platform operator only."""
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_admin.application.service import AdminService
from src.em_common.database import get_db_session
from src.em_common.response import ApiResponse, success_response
from src.em_gateway.auth.dependencies import require_platform_operator

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()


class InvestmentRequest(BaseModel):
    investor_id: str = Field(..., min_length=1, max_length=64)
    host_id: str = Field(..., min_length=1, max_length=64)
    amount_paise: int = Field(..., gt=0)


@router.get("/invariants")
async def check_invariants(
    operator_id: Annotated[str, Depends(require_platform_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _service.check_invariants(db)
    resp = success_response(result)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/investments")
async def register_investment(
    body: InvestmentRequest,
    operator_id: Annotated[str, Depends(require_platform_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    allocation = await _service.register_investment(
        db, body.investor_id, body.host_id, body.amount_paise
    )
    resp = success_response(
        {
            "id": allocation.id,
            "investor_id": allocation.investor_id,
            "host_id": allocation.host_id,
            "amount_paise": allocation.amount_invested,
            "status": allocation.status,
        }
    )
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
