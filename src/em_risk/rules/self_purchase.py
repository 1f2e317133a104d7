from src.em_common.errors import SelfPurchaseForbiddenError
from src.em_listing.domain.models import Listing


def check_not_self_purchase(listing: Listing, buyer_id: str) -> None:
    if listing.seller_id == buyer_id:
        raise SelfPurchaseForbiddenError()
