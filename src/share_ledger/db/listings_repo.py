"""Inventory ledger: listing share counts and reservations.

Every function receives the connection of the caller's transaction scope.
None of them commit; the owning service decides the transaction boundary.

Overselling is prevented by doing each inventory change as one guarded
``UPDATE``::

    UPDATE listings
    SET available_shares = available_shares - :shares
    WHERE id = :id AND status = 'active' AND available_shares >= :shares

There is never a separate read followed by an unguarded write. The table's
``CHECK (available_shares >= 0)`` constraint backs the guard up.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from share_ledger.core.errors import (
    InsufficientInventory,
    InventoryOverflow,
    ListingNotActive,
    ListingNotFound,
    NotFoundError,
    ReservationExpired,
    ValidationError,
)
from share_ledger.core.money import money_str, to_money
from share_ledger.db.constants import (
    LISTING_ACTIVE,
    LISTING_STATUSES,
    MAX_SHARES,
    RESERVATION_COMMITTED,
    RESERVATION_HELD,
    RESERVATION_RELEASED,
    utc_now_iso,
)
from share_ledger.db.errors import wraps_sqlite_errors
from share_ledger.db.types import Listing, Reservation

logger = logging.getLogger(__name__)


def require_positive_shares(shares: object) -> int:
    """Return ``shares`` as an int, rejecting non-integers and values outside 1..MAX_SHARES."""
    if isinstance(shares, bool) or not isinstance(shares, int):
        raise ValidationError(f"shares must be a positive integer, got {shares!r}")
    if shares <= 0:
        raise ValidationError(f"shares must be a positive integer, got {shares!r}")
    if shares > MAX_SHARES:
        raise ValidationError(f"shares must be at most {MAX_SHARES}, got {shares}")
    return shares


# ── Listing management ────────────────────────────────────────────────────────


@wraps_sqlite_errors("listings.create_listing", write=True)
def create_listing(
    conn: sqlite3.Connection,
    *,
    listing_id: str,
    title: str,
    total_shares: int,
    price_per_share: Decimal | str | int,
    status: str = "draft",
) -> Listing:
    """Insert a new listing with every share available.

    Raises:
        ValidationError: On blank ids, non-positive share counts or prices,
            unknown status, or a duplicate listing id.
    """
    if not listing_id or not listing_id.strip():
        raise ValidationError("listing_id must be a non-empty string")
    if not title or not title.strip():
        raise ValidationError("title must be a non-empty string")
    require_positive_shares(total_shares)
    if status not in LISTING_STATUSES:
        raise ValidationError(f"Unknown listing status {status!r}")
    try:
        price = to_money(price_per_share)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if price <= 0:
        raise ValidationError("price_per_share must be greater than zero")

    now = utc_now_iso()
    try:
        conn.execute(
            """
            INSERT INTO listings
                (id, title, total_shares, available_shares, price_per_share,
                 status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                listing_id,
                title.strip(),
                total_shares,
                total_shares,
                money_str(price),
                status,
                now,
                now,
            ),
        )
    except sqlite3.IntegrityError as exc:
        raise ValidationError(f"Listing {listing_id!r} already exists") from exc

    logger.info("listings: created %s (%d shares at %s)", listing_id, total_shares, price)
    return get_listing(conn, listing_id)


@wraps_sqlite_errors("listings.find_listing", write=False)
def find_listing(conn: sqlite3.Connection, listing_id: str) -> Listing | None:
    """Return a listing or ``None``."""
    row = conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,)).fetchone()
    return Listing.from_row(row) if row else None


def get_listing(conn: sqlite3.Connection, listing_id: str) -> Listing:
    """Return a listing or raise :class:`ListingNotFound`."""
    listing = find_listing(conn, listing_id)
    if listing is None:
        raise ListingNotFound(listing_id)
    return listing


@wraps_sqlite_errors("listings.list_listings", write=False)
def list_listings(conn: sqlite3.Connection, *, status: str | None = None) -> list[Listing]:
    """Return listings ordered by id, optionally filtered by status."""
    if status is None:
        rows = conn.execute("SELECT * FROM listings ORDER BY id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM listings WHERE status = ? ORDER BY id", (status,)
        ).fetchall()
    return [Listing.from_row(row) for row in rows]


@wraps_sqlite_errors("listings.set_listing_status", write=True)
def set_listing_status(conn: sqlite3.Connection, listing_id: str, status: str) -> Listing:
    """Move a listing between ``draft``, ``active`` and ``closed``."""
    if status not in LISTING_STATUSES:
        raise ValidationError(f"Unknown listing status {status!r}")
    cursor = conn.execute(
        "UPDATE listings SET status = ?, updated_at = ? WHERE id = ?",
        (status, utc_now_iso(), listing_id),
    )
    if cursor.rowcount == 0:
        raise ListingNotFound(listing_id)
    return get_listing(conn, listing_id)


# ── Reservations ──────────────────────────────────────────────────────────────


@wraps_sqlite_errors("listings.reserve", write=True)
def reserve(
    conn: sqlite3.Connection,
    listing_id: str,
    shares: int,
    *,
    ttl_seconds: int,
    now: datetime | None = None,
) -> Reservation:
    """Hold ``shares`` of an active listing until the reservation resolves.

    Available shares are decremented immediately (pessimistic hold) by a
    single conditional update, then a ``held`` reservation row is recorded
    with ``expires_at = now + ttl_seconds``.

    Raises:
        ValidationError: If ``shares`` is not a positive integer.
        ListingNotFound: If the listing does not exist.
        ListingNotActive: If the listing is ``draft`` or ``closed``.
        InsufficientInventory: If fewer than ``shares`` are available.
    """
    require_positive_shares(shares)
    moment = now or datetime.now(UTC)
    stamp = utc_now_iso(moment)

    cursor = conn.execute(
        """
        UPDATE listings
        SET available_shares = available_shares - ?, updated_at = ?
        WHERE id = ? AND status = ? AND available_shares >= ?
        """,
        (shares, stamp, listing_id, LISTING_ACTIVE, shares),
    )
    if cursor.rowcount == 0:
        _raise_reserve_failure(conn, listing_id, shares)

    reservation_id = uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO reservations (id, listing_id, shares, state, created_at, expires_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            reservation_id,
            listing_id,
            shares,
            RESERVATION_HELD,
            stamp,
            utc_now_iso(moment + timedelta(seconds=ttl_seconds)),
        ),
    )
    logger.debug("listings: reserved %d shares of %s (%s)", shares, listing_id, reservation_id)
    return get_reservation(conn, reservation_id)


def _raise_reserve_failure(conn: sqlite3.Connection, listing_id: str, shares: int) -> None:
    """Explain why the guarded decrement matched no row.

    Runs inside the same write transaction as the failed update, so the
    values read here are the ones the guard saw.
    """
    row = conn.execute(
        "SELECT status, available_shares FROM listings WHERE id = ?", (listing_id,)
    ).fetchone()
    if row is None:
        raise ListingNotFound(listing_id)
    if row["status"] != LISTING_ACTIVE:
        raise ListingNotActive(listing_id, row["status"])
    raise InsufficientInventory(listing_id, shares, int(row["available_shares"]))


@wraps_sqlite_errors("listings.get_reservation", write=False)
def get_reservation(conn: sqlite3.Connection, reservation_id: str) -> Reservation:
    """Return a reservation or raise :class:`NotFoundError`."""
    row = conn.execute("SELECT * FROM reservations WHERE id = ?", (reservation_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Reservation {reservation_id!r} not found")
    return Reservation.from_row(row)


@wraps_sqlite_errors("listings.release", write=True)
def release(
    conn: sqlite3.Connection,
    reservation_id: str,
    *,
    now: datetime | None = None,
) -> Reservation:
    """Return a held reservation's shares to the listing.

    Used on payment failure, cancellation of a pending order, and by the
    expiry sweep. Releasing a reservation that is no longer ``held`` raises
    :class:`ReservationExpired` and changes nothing.
    """
    stamp = utc_now_iso(now)
    reservation = _resolve_held(conn, reservation_id, RESERVATION_RELEASED, stamp)
    cursor = conn.execute(
        """
        UPDATE listings
        SET available_shares = available_shares + ?, updated_at = ?
        WHERE id = ? AND available_shares + ? <= total_shares
        """,
        (reservation.shares, stamp, reservation.listing_id, reservation.shares),
    )
    if cursor.rowcount == 0:
        raise InventoryOverflow(reservation.listing_id, reservation.shares)
    logger.debug(
        "listings: released %d shares of %s (%s)",
        reservation.shares,
        reservation.listing_id,
        reservation_id,
    )
    return get_reservation(conn, reservation_id)


@wraps_sqlite_errors("listings.commit", write=True)
def commit(
    conn: sqlite3.Connection,
    reservation_id: str,
    *,
    now: datetime | None = None,
) -> Reservation:
    """Mark a held reservation consumed.

    Inventory was already decremented by :func:`reserve`, so only the
    reservation state changes.
    """
    return _resolve_held(conn, reservation_id, RESERVATION_COMMITTED, utc_now_iso(now))


def _resolve_held(
    conn: sqlite3.Connection,
    reservation_id: str,
    new_state: str,
    stamp: str,
) -> Reservation:
    """Move a reservation out of ``held`` with a conditional update."""
    cursor = conn.execute(
        """
        UPDATE reservations
        SET state = ?, resolved_at = ?
        WHERE id = ? AND state = ?
        """,
        (new_state, stamp, reservation_id, RESERVATION_HELD),
    )
    reservation = get_reservation(conn, reservation_id)
    if cursor.rowcount == 0:
        raise ReservationExpired(reservation_id, reservation.state)
    return reservation


@wraps_sqlite_errors("listings.list_expired_reservations", write=False)
def list_expired_reservations(
    conn: sqlite3.Connection,
    *,
    now: datetime | None = None,
    limit: int = 100,
) -> list[Reservation]:
    """Return held reservations whose TTL has passed, oldest first."""
    rows = conn.execute(
        """
        SELECT * FROM reservations
        WHERE state = ? AND expires_at <= ?
        ORDER BY expires_at
        LIMIT ?
        """,
        (RESERVATION_HELD, utc_now_iso(now), limit),
    ).fetchall()
    return [Reservation.from_row(row) for row in rows]


# ── Permanent inventory changes ───────────────────────────────────────────────


@wraps_sqlite_errors("listings.restock", write=True)
def restock(conn: sqlite3.Connection, listing_id: str, shares: int) -> Listing:
    """Return ``shares`` to a listing's available inventory.

    Used when a user sells shares back and when a completed buy is cancelled.
    The increase is bounded by ``total_shares``.

    Raises:
        ListingNotFound: If the listing does not exist.
        InventoryOverflow: If the result would exceed ``total_shares``.
    """
    require_positive_shares(shares)
    cursor = conn.execute(
        """
        UPDATE listings
        SET available_shares = available_shares + ?, updated_at = ?
        WHERE id = ? AND available_shares + ? <= total_shares
        """,
        (shares, utc_now_iso(), listing_id, shares),
    )
    if cursor.rowcount == 0:
        get_listing(conn, listing_id)
        raise InventoryOverflow(listing_id, shares)
    return get_listing(conn, listing_id)


@wraps_sqlite_errors("listings.take", write=True)
def take(conn: sqlite3.Connection, listing_id: str, shares: int) -> Listing:
    """Permanently remove ``shares`` from available inventory without a reservation.

    Used to reverse a completed sale, which hands shares back to the seller
    regardless of the listing's current status.

    Raises:
        ListingNotFound: If the listing does not exist.
        InsufficientInventory: If fewer than ``shares`` are available.
    """
    require_positive_shares(shares)
    cursor = conn.execute(
        """
        UPDATE listings
        SET available_shares = available_shares - ?, updated_at = ?
        WHERE id = ? AND available_shares >= ?
        """,
        (shares, utc_now_iso(), listing_id, shares),
    )
    if cursor.rowcount == 0:
        listing = get_listing(conn, listing_id)
        raise InsufficientInventory(listing_id, shares, listing.available_shares)
    return get_listing(conn, listing_id)
