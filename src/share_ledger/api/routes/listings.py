"""Read-only listing endpoints. Listings are managed through the CLI."""

from fastapi import APIRouter

from share_ledger.api.models import ListingListResponse, ListingResponse
from share_ledger.core.orders import OrderService


def router(service: OrderService) -> APIRouter:
    """Build the listings router."""
    api = APIRouter(prefix="/listings", tags=["listings"])

    @api.get("", response_model=ListingListResponse)
    def list_listings(status: str | None = None):
        return ListingListResponse(
            listings=[
                ListingResponse.from_listing(listing)
                for listing in service.list_listings(status=status)
            ]
        )

    @api.get("/{listing_id}", response_model=ListingResponse)
    def get_listing(listing_id: str):
        return ListingResponse.from_listing(service.get_listing(listing_id))

    return api
