"""em_listing REST API: seller lifecycle and nearby search."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.database import get_db_session
from src.em_common.enums import ListingType, SortBy
from src.em_common.response import ApiResponse, success_response
from src.em_gateway.auth.dependencies import get_caller_id
from src.em_listing.application.schemas import (
    CreateListingRequest,
    SellerLocationRequest,
    UpdateListingRequest,
)
from src.em_listing.application.service import ListingService
from src.em_listing.domain.models import GeoPoint, ListingFilters

router = APIRouter(prefix="/listings", tags=["listings"])

_service = ListingService()


@router.post("")
async def create_listing(
    body: CreateListingRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.create_listing(db, caller_id, body)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/nearby")
async def search_nearby(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.DEFAULT_SEARCH_RADIUS_KM, gt=0, le=1000),
    min_price: int | None = Query(None, ge=0),
    max_price: int | None = Query(None, ge=0),
    min_energy: Decimal | None = Query(None, ge=0),
    max_energy: Decimal | None = Query(None, ge=0),
    listing_type: ListingType | None = Query(None),
    renewable_only: bool = Query(False),
    sort_by: SortBy = Query(SortBy.DISTANCE),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    filters = ListingFilters(
        min_price=min_price,
        max_price=max_price,
        min_energy_kwh=min_energy,
        max_energy_kwh=max_energy,
        listing_type=listing_type.value if listing_type else None,
        renewable_only=renewable_only,
        limit=limit,
    )
    data = await _service.search_nearby(
        db, GeoPoint(latitude, longitude), radius_km, filters, sort_by
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/mine")
async def list_my_listings(
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    status: str | None = Query(None, description="Filter by ListingStatus"),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    data = await _service.list_seller_listings(db, caller_id, status, limit)
    resp = success_response([item.model_dump() for item in data])
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.put("/seller-location")
async def set_seller_location(
    body: SellerLocationRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    await _service.set_seller_location(db, caller_id, GeoPoint(body.latitude, body.longitude))
    resp = success_response({"latitude": body.latitude, "longitude": body.longitude})
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{listing_id}")
async def get_listing(
    listing_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_listing(db, listing_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.patch("/{listing_id}")
async def update_listing(
    listing_id: str,
    body: UpdateListingRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.update_listing(db, caller_id, listing_id, body)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{listing_id}/cancel")
async def cancel_listing(
    listing_id: str,
    caller_id: Annotated[str, Depends(get_caller_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.cancel_listing(db, caller_id, listing_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
