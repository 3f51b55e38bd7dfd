"""Holdings and portfolio endpoints for the acting user."""

from fastapi import APIRouter, Depends, Query

from share_ledger.api.identity import get_actor
from share_ledger.api.models import (
    HoldingListResponse,
    HoldingResponse,
    JournalEntryResponse,
    PortfolioSummaryResponse,
    TransactionListResponse,
)
from share_ledger.core.identity import Actor
from share_ledger.core.orders import OrderService
from share_ledger.db.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def router(service: OrderService) -> APIRouter:
    """Build the holdings/portfolio router."""
    api = APIRouter(tags=["portfolio"])

    @api.get("/holdings", response_model=HoldingListResponse)
    def list_holdings(actor: Actor = Depends(get_actor)):
        """Non-empty holdings of the acting user."""
        return HoldingListResponse(
            holdings=[
                HoldingResponse.from_holding(holding)
                for holding in service.list_holdings(actor.user_id)
            ]
        )

    @api.get("/holdings/{listing_id}", response_model=HoldingResponse)
    def get_holding(listing_id: str, actor: Actor = Depends(get_actor)):
        """One holding; 404 when the user never held the listing."""
        return HoldingResponse.from_holding(service.get_holding(actor.user_id, listing_id))

    @api.get("/portfolio/summary", response_model=PortfolioSummaryResponse)
    def portfolio_summary(actor: Actor = Depends(get_actor)):
        return PortfolioSummaryResponse.from_summary(service.portfolio_summary(actor.user_id))

    @api.get("/portfolio/transactions", response_model=TransactionListResponse)
    def list_transactions(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        actor: Actor = Depends(get_actor),
    ):
        """Journal entries on the user's account, newest first."""
        entries = service.list_transactions(actor.user_id, page=page, limit=limit)
        return TransactionListResponse(
            transactions=[JournalEntryResponse.from_entry(entry) for entry in entries],
            page=page,
            limit=limit,
        )

    return api
