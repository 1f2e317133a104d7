from datetime import datetime

from src.em_common.enums import ListingStatus
from src.em_common.errors import ListingUnavailableError
from src.em_listing.domain.models import Listing


def check_listing_available(listing: Listing, now: datetime) -> None:
    """Raise ListingUnavailableError unless ACTIVE and available_from <= now < available_to."""
    if listing.status != ListingStatus.ACTIVE.value:
        raise ListingUnavailableError(listing.id, f"status is {listing.status}")
    if not listing.is_open_at(now):
        state = "has not opened" if now < listing.available_from else "has closed"
        raise ListingUnavailableError(listing.id, f"availability window {state}")
