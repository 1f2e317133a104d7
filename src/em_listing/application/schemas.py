"""Pydantic schemas for em_listing API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from src.em_common.enums import ListingType, SettlementMode
from src.em_common.money import paise_to_display
from src.em_listing.domain.models import Listing

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateListingRequest(BaseModel):
    energy_amount_kwh: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4)
    price_per_kwh: int = Field(..., gt=0, description="Price in paise per kWh")
    min_purchase_kwh: Decimal = Field(Decimal("1.0"), gt=0, max_digits=12, decimal_places=4)
    renewable_cert: bool = True
    available_from: datetime | None = Field(None, description="Defaults to now")
    available_to: datetime
    listing_type: ListingType = ListingType.SPOT
    settlement_mode: SettlementMode = SettlementMode.DIRECT
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    description: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _check_consistency(self) -> "CreateListingRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if self.min_purchase_kwh > self.energy_amount_kwh:
            raise ValueError("min_purchase_kwh cannot exceed energy_amount_kwh")
        if self.available_from is not None and self.available_to <= self.available_from:
            raise ValueError("available_to must be after available_from")
        return self


class UpdateListingRequest(BaseModel):
    """Seller edit. Omitted fields keep their current value."""

    price_per_kwh: int | None = Field(None, gt=0)
    energy_amount_kwh: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=4)
    min_purchase_kwh: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=4)
    available_from: datetime | None = None
    available_to: datetime | None = None
    description: str | None = Field(None, max_length=1000)


class SellerLocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ListingResponse(BaseModel):
    id: str
    seller_id: str
    energy_amount_kwh: str
    price_per_kwh: int
    price_per_kwh_display: str
    min_purchase_kwh: str
    renewable_cert: bool
    available_from: str
    available_to: str
    status: str
    listing_type: str
    settlement_mode: str
    latitude: float | None
    longitude: float | None
    description: str | None
    created_at: str | None

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingResponse":
        return cls(
            id=listing.id,
            seller_id=listing.seller_id,
            energy_amount_kwh=str(listing.energy_amount_kwh),
            price_per_kwh=listing.price_per_kwh,
            price_per_kwh_display=paise_to_display(listing.price_per_kwh),
            min_purchase_kwh=str(listing.min_purchase_kwh),
            renewable_cert=listing.renewable_cert,
            available_from=listing.available_from.isoformat(),
            available_to=listing.available_to.isoformat(),
            status=listing.status,
            listing_type=listing.listing_type,
            settlement_mode=listing.settlement_mode,
            latitude=listing.location_latitude,
            longitude=listing.location_longitude,
            description=listing.description,
            created_at=listing.created_at.isoformat() if listing.created_at else None,
        )


class NearbyListingItem(BaseModel):
    listing: ListingResponse
    distance_km: float
    seller_avg_rating: float
    seller_completed_sales: int


class NearbyListingsResponse(BaseModel):
    items: list[NearbyListingItem]
    total: int
