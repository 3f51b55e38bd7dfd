"""Shared DB-layer dataclasses for repository contracts.

Repositories return these records instead of raw ``sqlite3.Row`` objects.
Money columns are stored as canonical decimal strings and converted back to
``Decimal`` here; nothing above the DB layer sees a float.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from decimal import Decimal

from share_ledger.core.states import OrderSide, OrderStatus


@dataclass(slots=True)
class Listing:
    """
    A finite-inventory asset sold in fractional shares.

    Attributes:
        id: Listing identifier assigned by the management workflow.
        title: Human-readable name.
        total_shares: Fixed share count issued for the listing.
        available_shares: Shares not currently reserved or owned.
        price_per_share: Current issue price.
        status: ``draft``, ``active`` or ``closed``; only active listings sell.
    """

    id: str
    title: str
    total_shares: int
    available_shares: int
    price_per_share: Decimal
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Listing:
        return cls(
            id=row["id"],
            title=row["title"],
            total_shares=int(row["total_shares"]),
            available_shares=int(row["available_shares"]),
            price_per_share=Decimal(row["price_per_share"]),
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(slots=True)
class Reservation:
    """
    A TTL-bound hold against a listing's available shares.

    Attributes:
        state: ``held`` while pending, then ``committed`` or ``released``.
        expires_at: UTC ISO timestamp after which the sweep may release it.
    """

    id: str
    listing_id: str
    shares: int
    state: str
    created_at: str
    expires_at: str
    resolved_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Reservation:
        return cls(
            id=row["id"],
            listing_id=row["listing_id"],
            shares=int(row["shares"]),
            state=row["state"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            resolved_at=row["resolved_at"],
        )


@dataclass(slots=True)
class Order:
    """
    A single buy or sell request moving through the order state machine.

    ``idempotency_key`` is generated once when the order is created and is
    sent with every charge attempt for the order, including retries.
    """

    id: str
    user_id: str
    listing_id: str
    side: OrderSide
    shares: int
    price_per_share: Decimal
    amount: Decimal
    status: OrderStatus
    idempotency_key: str
    reservation_id: str | None
    payment_ref: str | None
    payment_method_id: str | None
    notes: str | None
    cost_basis: Decimal | None
    failure_reason: str | None
    created_at: str
    updated_at: str
    completed_at: str | None
    cancelled_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Order:
        cost_basis = row["cost_basis"]
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            listing_id=row["listing_id"],
            side=OrderSide(row["side"]),
            shares=int(row["shares"]),
            price_per_share=Decimal(row["price_per_share"]),
            amount=Decimal(row["amount"]),
            status=OrderStatus(row["status"]),
            idempotency_key=row["idempotency_key"],
            reservation_id=row["reservation_id"],
            payment_ref=row["payment_ref"],
            payment_method_id=row["payment_method_id"],
            notes=row["notes"],
            cost_basis=Decimal(cost_basis) if cost_basis is not None else None,
            failure_reason=row["failure_reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
            cancelled_at=row["cancelled_at"],
        )


@dataclass(slots=True)
class OrderHistoryEntry:
    """One recorded status transition of an order."""

    id: int
    order_id: str
    from_status: str | None
    to_status: str
    changed_by: str
    notes: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> OrderHistoryEntry:
        return cls(
            id=int(row["id"]),
            order_id=row["order_id"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            changed_by=row["changed_by"],
            notes=row["notes"],
            created_at=row["created_at"],
        )


@dataclass(slots=True)
class Holding:
    """A user's position in one listing.

    Attributes:
        share_quantity: Shares currently owned (may be zero, never negative).
        average_cost_basis: Weighted-average price paid per held share.
    """

    user_id: str
    listing_id: str
    share_quantity: int
    average_cost_basis: Decimal
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Holding:
        return cls(
            user_id=row["user_id"],
            listing_id=row["listing_id"],
            share_quantity=int(row["share_quantity"]),
            average_cost_basis=Decimal(row["average_cost_basis"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(slots=True)
class JournalEntry:
    """One immutable, hash-linked record of a monetary movement."""

    sequence: int
    entry_id: str
    order_id: str
    kind: str
    account: str
    direction: str
    amount: Decimal
    memo: str
    created_at: str
    previous_hash: str
    hash: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> JournalEntry:
        return cls(
            sequence=int(row["sequence"]),
            entry_id=row["entry_id"],
            order_id=row["order_id"],
            kind=row["kind"],
            account=row["account"],
            direction=row["direction"],
            amount=Decimal(row["amount"]),
            memo=row["memo"],
            created_at=row["created_at"],
            previous_hash=row["previous_hash"],
            hash=row["hash"],
        )


@dataclass(slots=True)
class JournalHalt:
    """Operator-visible record that journal appends are stopped."""

    sequence: int
    detail: str | None
    recorded_at: str


@dataclass(slots=True)
class VerificationResult:
    """
    Outcome of a journal hash-chain verification.

    Attributes:
        ok: True when every entry in the range matches its recomputation.
        first_mismatch_seq: Sequence of the first entry whose stored hash or
            previous-hash link disagrees, or ``None`` when ``ok``.
        entries_checked: Number of entries inspected.
        detail: Human-readable description of the mismatch.
    """

    ok: bool
    first_mismatch_seq: int | None
    entries_checked: int
    detail: str | None = None
