"""em_settlement REST API: settle, refund, rate and history."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_common.database import get_db_session
from src.em_common.response import ApiResponse, success_response
from src.em_gateway.auth.dependencies import get_caller_id
from src.em_settlement.application.schemas import (
    RateRequest,
    RefundRequest,
    SettlementListResponse,
    SettlementResponse,
    SettleRequest,
    cursor_decode,
    cursor_encode,
)
from src.em_settlement.domain.service import SettlementService

router = APIRouter(prefix="/settlements", tags=["settlements"])

_service = SettlementService()


@router.post("")
async def settle(
    body: SettleRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    record = await _service.settle(
        db, body.listing_id, caller_id, body.energy_kwh, body.idempotency_key
    )
    resp = success_response(SettlementResponse.from_domain(record).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("")
async def list_settlements(
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    role: Literal["buyer", "seller"] | None = Query(None),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    cursor_ts, cursor_id = cursor_decode(cursor)
    # Fetch limit+1 to detect has_more without a COUNT(*) query
    records = await _service.list_settlements(
        db, caller_id, role, cursor_ts, cursor_id, limit + 1
    )
    has_more = len(records) > limit
    page = records[:limit]
    data = SettlementListResponse(
        items=[SettlementResponse.from_domain(r) for r in page],
        next_cursor=cursor_encode(page[-1]) if has_more and page else None,
        has_more=has_more,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{settlement_id}")
async def get_settlement(
    settlement_id: str,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    record = await _service.get_settlement(db, settlement_id, caller_id)
    resp = success_response(SettlementResponse.from_domain(record).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{settlement_id}/refund")
async def refund(
    settlement_id: str,
    body: RefundRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    record = await _service.refund(
        db, settlement_id, body.amount_paise, body.reason, requested_by=caller_id
    )
    resp = success_response(SettlementResponse.from_domain(record).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{settlement_id}/rating")
async def rate_settlement(
    settlement_id: str,
    body: RateRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    record = await _service.rate_settlement(db, settlement_id, caller_id, body.rating)
    resp = success_response(SettlementResponse.from_domain(record).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
