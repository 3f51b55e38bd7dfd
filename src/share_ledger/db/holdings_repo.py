"""Holdings aggregator: per (user, listing) quantity and cost basis.

All mutations run on the caller's connection, inside the same transaction
as the order transition that triggers them.
"""

from __future__ import annotations

import sqlite3
from decimal import Decimal

from share_ledger.core.errors import HoldingNotFound, InsufficientHoldings
from share_ledger.core.money import ZERO, money_str, to_money, weighted_average
from share_ledger.db.constants import utc_now_iso
from share_ledger.db.errors import wraps_sqlite_errors
from share_ledger.db.listings_repo import require_positive_shares
from share_ledger.db.types import Holding


@wraps_sqlite_errors("holdings.find_holding", write=False)
def find_holding(conn: sqlite3.Connection, user_id: str, listing_id: str) -> Holding | None:
    """Return the holding for ``(user_id, listing_id)`` or ``None``."""
    row = conn.execute(
        "SELECT * FROM holdings WHERE user_id = ? AND listing_id = ?",
        (user_id, listing_id),
    ).fetchone()
    return Holding.from_row(row) if row else None


def get_holding(conn: sqlite3.Connection, user_id: str, listing_id: str) -> Holding:
    """Return the holding or raise :class:`HoldingNotFound`."""
    holding = find_holding(conn, user_id, listing_id)
    if holding is None:
        raise HoldingNotFound(user_id, listing_id)
    return holding


@wraps_sqlite_errors("holdings.list_holdings", write=False)
def list_holdings(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    include_empty: bool = False,
) -> list[Holding]:
    """Return a user's holdings ordered by listing id."""
    query = "SELECT * FROM holdings WHERE user_id = ?"
    if not include_empty:
        query += " AND share_quantity > 0"
    rows = conn.execute(query + " ORDER BY listing_id", (user_id,)).fetchall()
    return [Holding.from_row(row) for row in rows]


@wraps_sqlite_errors("holdings.sum_quantity_for_listing", write=False)
def sum_quantity_for_listing(conn: sqlite3.Connection, listing_id: str) -> int:
    """Total shares of ``listing_id`` held across all users."""
    row = conn.execute(
        "SELECT COALESCE(SUM(share_quantity), 0) FROM holdings WHERE listing_id = ?",
        (listing_id,),
    ).fetchone()
    return int(row[0])


@wraps_sqlite_errors("holdings.apply_buy", write=True)
def apply_buy(
    conn: sqlite3.Connection,
    user_id: str,
    listing_id: str,
    shares: int,
    price: Decimal,
) -> Holding:
    """Add ``shares`` bought at ``price`` to the user's position.

    The first completed buy creates the holding with the purchase price as
    its cost basis. Later buys move the basis to the weighted average::

        (old_qty * old_avg + shares * price) / (old_qty + shares)
    """
    require_positive_shares(shares)
    price = to_money(price)
    now = utc_now_iso()
    existing = find_holding(conn, user_id, listing_id)

    if existing is None:
        conn.execute(
            """
            INSERT INTO holdings
                (user_id, listing_id, share_quantity, average_cost_basis, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, listing_id, shares, money_str(price), now, now),
        )
    else:
        new_average = weighted_average(
            existing.share_quantity, existing.average_cost_basis, shares, price
        )
        conn.execute(
            """
            UPDATE holdings
            SET share_quantity = share_quantity + ?, average_cost_basis = ?, updated_at = ?
            WHERE user_id = ? AND listing_id = ?
            """,
            (shares, money_str(new_average), now, user_id, listing_id),
        )
    return get_holding(conn, user_id, listing_id)


@wraps_sqlite_errors("holdings.apply_sell", write=True)
def apply_sell(conn: sqlite3.Connection, user_id: str, listing_id: str, shares: int) -> Decimal:
    """Remove ``shares`` from the user's position.

    The average cost basis stays attached to the remaining shares and resets
    to zero once the position is empty.

    Returns:
        The cost basis of the removed shares, so a later reversal can put
        them back at the price the user originally paid.

    Raises:
        InsufficientHoldings: If the user holds fewer than ``shares``.
    """
    return _decrement(conn, user_id, listing_id, shares)


@wraps_sqlite_errors("holdings.reverse_buy", write=True)
def reverse_buy(conn: sqlite3.Connection, user_id: str, listing_id: str, shares: int) -> Decimal:
    """Undo a completed buy during cancellation compensation.

    Same guard and decrement as :func:`apply_sell`. Fails with
    :class:`InsufficientHoldings` when the shares were already resold.
    """
    return _decrement(conn, user_id, listing_id, shares)


def _decrement(conn: sqlite3.Connection, user_id: str, listing_id: str, shares: int) -> Decimal:
    require_positive_shares(shares)
    existing = find_holding(conn, user_id, listing_id)
    held = existing.share_quantity if existing else 0
    if existing is None or shares > held:
        raise InsufficientHoldings(user_id, listing_id, shares, held)

    basis = existing.average_cost_basis
    remaining = held - shares
    new_average = basis if remaining > 0 else ZERO
    # The quantity guard is repeated in SQL so a concurrent writer that
    # slipped in between the read and the update cannot drive it negative.
    cursor = conn.execute(
        """
        UPDATE holdings
        SET share_quantity = share_quantity - ?, average_cost_basis = ?, updated_at = ?
        WHERE user_id = ? AND listing_id = ? AND share_quantity >= ?
        """,
        (shares, money_str(new_average), utc_now_iso(), user_id, listing_id, shares),
    )
    if cursor.rowcount == 0:
        current = find_holding(conn, user_id, listing_id)
        raise InsufficientHoldings(
            user_id, listing_id, shares, current.share_quantity if current else 0
        )
    return basis
