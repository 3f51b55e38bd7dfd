"""Order lifecycle states and the transition table.

The table below is the only source of truth for which status edges exist.
Services call :func:`ensure_transition` before touching any state, and the
repository repeats the check as a conditional ``UPDATE ... WHERE status = ?``
so a transition computed from a stale read cannot land.

::

    PENDING   -> COMPLETED | FAILED | CANCELLED
    COMPLETED -> CANCELLED            (post-hoc reversal / refund)
    FAILED    -> PENDING              (explicit retry, same idempotency key)
    CANCELLED -> (terminal)
"""

from __future__ import annotations

from enum import Enum

from share_ledger.core.errors import InvalidStateTransition


class OrderStatus(str, Enum):
    """Lifecycle status of an order, stored lowercase in the database."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrderSide(str, Enum):
    """Direction of an order relative to the user."""

    BUY = "buy"
    SELL = "sell"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.CANCELLED}
    ),
    OrderStatus.COMPLETED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.FAILED: frozenset({OrderStatus.PENDING}),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return True when ``current -> target`` is an edge of the table."""
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(
    current: OrderStatus,
    target: OrderStatus,
    *,
    order_id: str | None = None,
) -> None:
    """Raise :class:`InvalidStateTransition` unless the edge is permitted."""
    if not can_transition(current, target):
        raise InvalidStateTransition(order_id, current.value, target.value)
