"""Shared database constants for the DB package.

This module centralizes values consumed by several repositories so schema,
runtime queries and tests cannot drift apart.
"""

from __future__ import annotations

from datetime import UTC, datetime

# Listing lifecycle managed by the external listing workflow.
LISTING_STATUSES = ("draft", "active", "closed")
LISTING_ACTIVE = "active"

# Reservation states.
RESERVATION_HELD = "held"
RESERVATION_COMMITTED = "committed"
RESERVATION_RELEASED = "released"

# Journal vocabulary.
JOURNAL_KINDS = ("purchase", "sale", "refund", "sale_reversal", "payment_failed")
DEBIT = "debit"
CREDIT = "credit"

# Default and maximum page sizes for list endpoints.
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200

# Largest share count SQLite can store in an INTEGER column.
MAX_SHARES = 2**63 - 1


def user_account(user_id: str) -> str:
    """Journal account name for a user."""
    return f"user:{user_id}"


def listing_account(listing_id: str) -> str:
    """Journal account name for a listing."""
    return f"listing:{listing_id}"


def utc_now_iso(now: datetime | None = None) -> str:
    """UTC timestamp in the ISO-8601 form stored in every ``*_at`` column.

    Fixed microsecond precision keeps the strings lexicographically ordered,
    which the reservation sweep relies on when comparing ``expires_at``.
    """
    return (now or datetime.now(UTC)).astimezone(UTC).isoformat(timespec="microseconds")


def page_bounds(page: int, limit: int) -> tuple[int, int]:
    """Clamp pagination input and return ``(limit, offset)``."""
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    page = max(1, int(page))
    return limit, (page - 1) * limit
