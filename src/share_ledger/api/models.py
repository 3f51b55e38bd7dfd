"""
Pydantic models for API requests and responses.

Request models validate the shape of incoming JSON; the order service still
re-checks every business rule. Response models are built from the engine's
dataclasses with the ``from_*`` constructors. Money is serialised as a
two-place decimal string (``"1000.00"``) so no client ever sees a float.
"""

from typing import Literal

from pydantic import BaseModel, Field, StrictInt

from share_ledger.core.money import money_str
from share_ledger.core.orders import PortfolioSummary
from share_ledger.db.constants import MAX_SHARES
from share_ledger.db.types import (
    Holding,
    JournalEntry,
    JournalHalt,
    Listing,
    Order,
    OrderHistoryEntry,
    VerificationResult,
)

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class SubmitOrderRequest(BaseModel):
    """
    Request to buy or sell shares of a listing.

    Attributes:
        listing_id: Listing to trade.
        shares: Whole number of shares, at least 1 and at most ``MAX_SHARES``.
        side: ``buy`` (default) or ``sell``.
        payment_method_id: Opaque reference forwarded from the client.
        notes: Free-text note recorded in the order history.
    """

    listing_id: str = Field(min_length=1, max_length=128)
    shares: StrictInt = Field(gt=0, le=MAX_SHARES)
    side: Literal["buy", "sell"] = "buy"
    payment_method_id: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=1000)


class OrderActionRequest(BaseModel):
    """Optional body for cancel and retry."""

    notes: str | None = Field(default=None, max_length=1000)


class AdminStatusRequest(BaseModel):
    """
    Admin request to move an order to a new status.

    Attributes:
        status: Target status. The transition table still applies.
        payment_ref: Required when completing an order paid out of band.
    """

    status: Literal["pending", "completed", "failed", "cancelled"]
    notes: str | None = Field(default=None, max_length=1000)
    payment_ref: str | None = Field(default=None, max_length=256)


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class OrderResponse(BaseModel):
    id: str
    user_id: str
    listing_id: str
    side: str
    shares: int
    price_per_share: str
    amount: str
    status: str
    idempotency_key: str
    payment_ref: str | None = None
    payment_method_id: str | None = None
    notes: str | None = None
    cost_basis: str | None = None
    failure_reason: str | None = None
    created_at: str
    updated_at: str
    completed_at: str | None = None
    cancelled_at: str | None = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            user_id=order.user_id,
            listing_id=order.listing_id,
            side=order.side.value,
            shares=order.shares,
            price_per_share=money_str(order.price_per_share),
            amount=money_str(order.amount),
            status=order.status.value,
            idempotency_key=order.idempotency_key,
            payment_ref=order.payment_ref,
            payment_method_id=order.payment_method_id,
            notes=order.notes,
            cost_basis=money_str(order.cost_basis) if order.cost_basis is not None else None,
            failure_reason=order.failure_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            completed_at=order.completed_at,
            cancelled_at=order.cancelled_at,
        )


class OrderHistoryItem(BaseModel):
    from_status: str | None
    to_status: str
    changed_by: str
    notes: str | None = None
    created_at: str

    @classmethod
    def from_entry(cls, entry: OrderHistoryEntry) -> "OrderHistoryItem":
        return cls(
            from_status=entry.from_status,
            to_status=entry.to_status,
            changed_by=entry.changed_by,
            notes=entry.notes,
            created_at=entry.created_at,
        )


class JournalEntryResponse(BaseModel):
    sequence: int
    entry_id: str
    order_id: str
    kind: str
    account: str
    direction: str
    amount: str
    memo: str
    created_at: str
    previous_hash: str
    hash: str

    @classmethod
    def from_entry(cls, entry: JournalEntry) -> "JournalEntryResponse":
        return cls(
            sequence=entry.sequence,
            entry_id=entry.entry_id,
            order_id=entry.order_id,
            kind=entry.kind,
            account=entry.account,
            direction=entry.direction,
            amount=money_str(entry.amount),
            memo=entry.memo,
            created_at=entry.created_at,
            previous_hash=entry.previous_hash,
            hash=entry.hash,
        )


class OrderDetailResponse(BaseModel):
    """An order with its status history and journal entries (oldest first)."""

    order: OrderResponse
    history: list[OrderHistoryItem]
    journal: list[JournalEntryResponse]


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    page: int
    limit: int


class HoldingResponse(BaseModel):
    user_id: str
    listing_id: str
    share_quantity: int
    average_cost_basis: str
    updated_at: str

    @classmethod
    def from_holding(cls, holding: Holding) -> "HoldingResponse":
        return cls(
            user_id=holding.user_id,
            listing_id=holding.listing_id,
            share_quantity=holding.share_quantity,
            average_cost_basis=money_str(holding.average_cost_basis),
            updated_at=holding.updated_at,
        )


class HoldingListResponse(BaseModel):
    holdings: list[HoldingResponse]


class PortfolioSummaryResponse(BaseModel):
    """
    Portfolio totals valued at current listing prices.

    Attributes:
        total_invested: Cost basis of all held shares.
        portfolio_value: Held shares at today's price per share.
        total_returns: ``portfolio_value - total_invested``.
        active_investments: Number of listings with a non-zero holding.
    """

    user_id: str
    total_invested: str
    portfolio_value: str
    total_returns: str
    active_investments: int

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> "PortfolioSummaryResponse":
        return cls(
            user_id=summary.user_id,
            total_invested=money_str(summary.total_invested),
            portfolio_value=money_str(summary.portfolio_value),
            total_returns=money_str(summary.total_returns),
            active_investments=summary.active_positions,
        )


class TransactionListResponse(BaseModel):
    transactions: list[JournalEntryResponse]
    page: int
    limit: int


class ListingResponse(BaseModel):
    id: str
    title: str
    total_shares: int
    available_shares: int
    price_per_share: str
    status: str

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingResponse":
        return cls(
            id=listing.id,
            title=listing.title,
            total_shares=listing.total_shares,
            available_shares=listing.available_shares,
            price_per_share=money_str(listing.price_per_share),
            status=listing.status,
        )


class ListingListResponse(BaseModel):
    listings: list[ListingResponse]


class JournalHaltResponse(BaseModel):
    sequence: int
    detail: str | None = None
    recorded_at: str

    @classmethod
    def from_halt(cls, halt: JournalHalt) -> "JournalHaltResponse":
        return cls(sequence=halt.sequence, detail=halt.detail, recorded_at=halt.recorded_at)


class VerificationResponse(BaseModel):
    ok: bool
    first_mismatch_seq: int | None = None
    entries_checked: int
    detail: str | None = None
    halt: JournalHaltResponse | None = None

    @classmethod
    def from_result(
        cls, result: VerificationResult, halt: JournalHalt | None
    ) -> "VerificationResponse":
        return cls(
            ok=result.ok,
            first_mismatch_seq=result.first_mismatch_seq,
            entries_checked=result.entries_checked,
            detail=result.detail,
            halt=JournalHaltResponse.from_halt(halt) if halt else None,
        )


class SweepResponse(BaseModel):
    failed_orders: list[OrderResponse]
    count: int
