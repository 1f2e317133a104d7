"""em_matching REST API: ranking and allocation planning (read-only)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_common.database import get_db_session
from src.em_common.response import ApiResponse, success_response
from src.em_gateway.auth.dependencies import get_caller_id
from src.em_listing.domain.models import GeoPoint
from src.em_matching.application.schemas import (
    AllocationPlanResponse,
    AllocationRequest,
    PreferencesBody,
    RankedListingItem,
    RankRequest,
)
from src.em_matching.application.service import MatchingService
from src.em_matching.domain.models import BuyerPreferences

router = APIRouter(prefix="/matching", tags=["matching"])

_service = MatchingService()


def _to_preferences(body: PreferencesBody) -> BuyerPreferences:
    return BuyerPreferences(
        max_distance_km=body.max_distance_km,
        max_price=body.max_price,
        prefer_renewable=body.prefer_renewable,
        min_seller_rating=body.min_seller_rating,
    )


@router.post("/rank")
async def rank_listings(
    body: RankRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    ranked = await _service.rank_listings(
        db, caller_id, GeoPoint(body.latitude, body.longitude), _to_preferences(body.preferences)
    )
    items = [RankedListingItem.from_domain(r).model_dump() for r in ranked[: body.limit]]
    resp = success_response({"items": items, "total": len(ranked)})
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/allocation")
async def find_optimal_allocation(
    body: AllocationRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    plan = await _service.find_optimal_allocation(
        db,
        caller_id,
        body.energy_needed_kwh,
        GeoPoint(body.latitude, body.longitude),
        _to_preferences(body.preferences),
        max_sellers=body.max_sellers,
    )
    resp = success_response(AllocationPlanResponse.from_domain(plan).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
