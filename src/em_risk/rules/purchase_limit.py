from decimal import Decimal

from src.em_common.errors import (
    BelowMinimumPurchaseError,
    InsufficientQuantityError,
    InvalidQuantityError,
)
from src.em_listing.domain.models import Listing


def check_purchase_quantity(listing: Listing, energy_kwh: Decimal) -> None:
    """Quantity must be positive, at least the listing minimum, and no more than available."""
    if energy_kwh <= 0:
        raise InvalidQuantityError(energy_kwh)
    if energy_kwh < listing.min_purchase_kwh:
        raise BelowMinimumPurchaseError(energy_kwh, listing.min_purchase_kwh)
    if energy_kwh > listing.energy_amount_kwh:
        raise InsufficientQuantityError(energy_kwh, listing.energy_amount_kwh)
