"""Domain error taxonomy for the ledger engine.

Every error carries a stable machine-readable ``code`` so the HTTP layer and
the CLI can report it without string matching. Raising any of these inside a
write scope rolls the whole transaction back; callers never observe a
partially applied order.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all domain errors raised by the engine."""

    code = "ledger_error"


class ValidationError(LedgerError):
    """Malformed input, rejected before any mutation."""

    code = "validation_error"


class ListingNotActive(ValidationError):
    """The listing exists but does not accept orders in its current status."""

    code = "listing_not_active"

    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(f"Listing {listing_id!r} is {status}, not active")
        self.listing_id = listing_id
        self.status = status


class NotFoundError(LedgerError):
    """A referenced record does not exist."""

    code = "not_found"


class ListingNotFound(NotFoundError):
    code = "listing_not_found"

    def __init__(self, listing_id: str) -> None:
        super().__init__(f"Listing {listing_id!r} not found")
        self.listing_id = listing_id


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id!r} not found")
        self.order_id = order_id


class HoldingNotFound(NotFoundError):
    code = "holding_not_found"

    def __init__(self, user_id: str, listing_id: str) -> None:
        super().__init__(f"No holding for user {user_id!r} in listing {listing_id!r}")
        self.user_id = user_id
        self.listing_id = listing_id


class PermissionDenied(LedgerError):
    """The acting identity may not perform the operation."""

    code = "permission_denied"


class InsufficientInventory(LedgerError):
    """A reservation asked for more shares than the listing has available."""

    code = "insufficient_inventory"

    def __init__(self, listing_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Listing {listing_id!r} has {available} shares available, {requested} requested"
        )
        self.listing_id = listing_id
        self.requested = requested
        self.available = available


class InventoryOverflow(LedgerError):
    """A restock would push available shares above the listing total."""

    code = "inventory_overflow"

    def __init__(self, listing_id: str, shares: int) -> None:
        super().__init__(
            f"Restocking {shares} shares would exceed total shares of listing {listing_id!r}"
        )
        self.listing_id = listing_id
        self.shares = shares


class InsufficientHoldings(LedgerError):
    """A sell or reversal asked for more shares than the user holds."""

    code = "insufficient_holdings"

    def __init__(self, user_id: str, listing_id: str, requested: int, held: int) -> None:
        super().__init__(
            f"User {user_id!r} holds {held} shares of listing {listing_id!r}, "
            f"{requested} requested"
        )
        self.user_id = user_id
        self.listing_id = listing_id
        self.requested = requested
        self.held = held


class InvalidStateTransition(LedgerError):
    """The order status table does not permit the requested edge."""

    code = "invalid_state_transition"

    def __init__(self, order_id: str | None, current: str, target: str) -> None:
        subject = f"Order {order_id!r}" if order_id else "Order"
        super().__init__(f"{subject} cannot move from {current} to {target}")
        self.order_id = order_id
        self.current = current
        self.target = target


class PaymentFailed(LedgerError):
    """The payment collaborator did not settle a charge or refund.

    Attributes:
        retryable: True for transport problems (network errors, timeouts)
            that may be retried with the same idempotency key.
    """

    code = "payment_failed"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class PaymentDeclined(PaymentFailed):
    """Terminal decline from the payment processor."""

    code = "payment_declined"

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class ReservationExpired(LedgerError):
    """The reservation backing an order is no longer held."""

    code = "reservation_expired"

    def __init__(self, reservation_id: str, state: str) -> None:
        super().__init__(f"Reservation {reservation_id!r} is {state}, not held")
        self.reservation_id = reservation_id
        self.state = state


class TamperDetected(LedgerError):
    """The journal hash chain does not match its recomputation.

    Fatal: the engine never repairs the chain. Appends stay halted until an
    operator clears the halt after a manual audit.
    """

    code = "tamper_detected"

    def __init__(self, sequence: int, detail: str = "") -> None:
        message = f"Journal integrity failure at sequence {sequence}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.sequence = sequence
        self.detail = detail
