"""Order persistence and status history.

Status changes go through :func:`transition`, a conditional
``UPDATE ... WHERE status = :expected`` that also records an
``order_history`` row. A caller holding a stale view of the order gets
:class:`InvalidStateTransition` instead of silently overwriting a newer
status.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from decimal import Decimal
from typing import Any

from share_ledger.core.errors import InvalidStateTransition, OrderNotFound
from share_ledger.core.money import money_str
from share_ledger.core.states import OrderSide, OrderStatus, ensure_transition
from share_ledger.db.constants import page_bounds, utc_now_iso
from share_ledger.db.errors import wraps_sqlite_errors
from share_ledger.db.types import Order, OrderHistoryEntry

logger = logging.getLogger(__name__)

# Columns a transition may set alongside the status.
_TRANSITION_COLUMNS = frozenset(
    {
        "payment_ref",
        "cost_basis",
        "failure_reason",
        "reservation_id",
        "completed_at",
        "cancelled_at",
    }
)


@wraps_sqlite_errors("orders.insert_order", write=True)
def insert_order(
    conn: sqlite3.Connection,
    *,
    user_id: str,
    listing_id: str,
    side: OrderSide,
    shares: int,
    price_per_share: Decimal,
    amount: Decimal,
    status: OrderStatus,
    changed_by: str,
    reservation_id: str | None = None,
    payment_method_id: str | None = None,
    notes: str | None = None,
) -> Order:
    """Create an order with a fresh id and idempotency key.

    The creation itself is recorded as the first history row with an empty
    ``from_status``.
    """
    order_id = uuid.uuid4().hex
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO orders (
            id, user_id, listing_id, side, shares, price_per_share, amount, status,
            idempotency_key, reservation_id, payment_method_id, notes,
            created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            order_id,
            user_id,
            listing_id,
            side.value,
            shares,
            money_str(price_per_share),
            money_str(amount),
            status.value,
            uuid.uuid4().hex,
            reservation_id,
            payment_method_id,
            notes,
            now,
            now,
        ),
    )
    _record_history(conn, order_id, None, status, changed_by, notes, now)
    return get_order(conn, order_id)


@wraps_sqlite_errors("orders.find_order", write=False)
def find_order(conn: sqlite3.Connection, order_id: str) -> Order | None:
    row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
    return Order.from_row(row) if row else None


def get_order(conn: sqlite3.Connection, order_id: str) -> Order:
    """Return an order or raise :class:`OrderNotFound`."""
    order = find_order(conn, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order


@wraps_sqlite_errors("orders.transition", write=True)
def transition(
    conn: sqlite3.Connection,
    order_id: str,
    expected: OrderStatus,
    target: OrderStatus,
    *,
    changed_by: str,
    notes: str | None = None,
    **columns: Any,
) -> Order:
    """Move an order from ``expected`` to ``target``.

    Args:
        expected: Status the caller observed. The update only lands if the
            row still has it.
        columns: Extra order columns to set with the same statement (see
            ``_TRANSITION_COLUMNS``). ``Decimal`` values are stored in their
            canonical money form.

    Raises:
        InvalidStateTransition: If the edge is not in the transition table or
            the order moved on since ``expected`` was read.
    """
    ensure_transition(expected, target, order_id=order_id)
    unknown = set(columns) - _TRANSITION_COLUMNS
    if unknown:
        raise ValueError(f"Unsupported order columns: {sorted(unknown)}")

    now = utc_now_iso()
    assignments = ["status = ?", "updated_at = ?"]
    params: list[Any] = [target.value, now]
    for name, value in sorted(columns.items()):
        assignments.append(f"{name} = ?")
        params.append(money_str(value) if isinstance(value, Decimal) else value)

    cursor = conn.execute(
        f"UPDATE orders SET {', '.join(assignments)} WHERE id = ? AND status = ?",  # nosec B608
        [*params, order_id, expected.value],
    )
    if cursor.rowcount == 0:
        current = get_order(conn, order_id)
        raise InvalidStateTransition(order_id, current.status.value, target.value)

    _record_history(conn, order_id, expected, target, changed_by, notes, now)
    logger.debug("orders: %s %s -> %s by %s", order_id, expected.value, target.value, changed_by)
    return get_order(conn, order_id)


@wraps_sqlite_errors("orders.set_reservation", write=True)
def set_reservation(conn: sqlite3.Connection, order_id: str, reservation_id: str | None) -> None:
    """Point an order at a new reservation without changing its status."""
    conn.execute(
        "UPDATE orders SET reservation_id = ?, updated_at = ? WHERE id = ?",
        (reservation_id, utc_now_iso(), order_id),
    )


def _record_history(
    conn: sqlite3.Connection,
    order_id: str,
    from_status: OrderStatus | None,
    to_status: OrderStatus,
    changed_by: str,
    notes: str | None,
    created_at: str,
) -> None:
    conn.execute(
        """
        INSERT INTO order_history (order_id, from_status, to_status, changed_by, notes, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            order_id,
            from_status.value if from_status else None,
            to_status.value,
            changed_by,
            notes,
            created_at,
        ),
    )


@wraps_sqlite_errors("orders.get_history", write=False)
def get_history(conn: sqlite3.Connection, order_id: str) -> list[OrderHistoryEntry]:
    """Return an order's transitions, oldest first."""
    rows = conn.execute(
        "SELECT * FROM order_history WHERE order_id = ? ORDER BY id",
        (order_id,),
    ).fetchall()
    return [OrderHistoryEntry.from_row(row) for row in rows]


def _filters(
    user_id: str | None,
    listing_id: str | None,
    status: OrderStatus | None,
    side: OrderSide | None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if listing_id is not None:
        clauses.append("listing_id = ?")
        params.append(listing_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status.value)
    if side is not None:
        clauses.append("side = ?")
        params.append(side.value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


@wraps_sqlite_errors("orders.list_orders", write=False)
def list_orders(
    conn: sqlite3.Connection,
    *,
    user_id: str | None = None,
    listing_id: str | None = None,
    status: OrderStatus | None = None,
    side: OrderSide | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    """Return one page of orders, newest first, plus the total match count."""
    where, params = _filters(user_id, listing_id, status, side)
    limit, offset = page_bounds(page, limit)
    total = conn.execute(
        f"SELECT COUNT(*) FROM orders {where}",  # nosec B608
        params,
    ).fetchone()[0]
    rows = conn.execute(
        f"SELECT * FROM orders {where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",  # nosec B608
        [*params, limit, offset],
    ).fetchall()
    return [Order.from_row(row) for row in rows], int(total)


@wraps_sqlite_errors("orders.find_by_reservation", write=False)
def find_by_reservation(conn: sqlite3.Connection, reservation_id: str) -> Order | None:
    row = conn.execute(
        "SELECT * FROM orders WHERE reservation_id = ?", (reservation_id,)
    ).fetchone()
    return Order.from_row(row) if row else None
