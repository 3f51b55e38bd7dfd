"""Schema creation and invariant trigger wiring for the SQLite backend.

The schema layer is intentionally isolated from repository code so schema
changes are reviewable without wading through query logic.

Invariants enforced by the database itself (independent of Python paths):
    - ``0 <= available_shares <= total_shares`` (CHECK constraints).
    - One holding row per (user, listing) (composite primary key).
    - ``share_quantity >= 0`` on holdings (CHECK constraint).
    - Journal rows can never be updated or deleted (triggers).
    - Journal ``sequence`` and ``previous_hash`` are unique, so two appenders
      can never fork the chain from the same head.
    - ``journal_head`` records the sequence and hash of the last append, so
      removing entries from the end of the chain is detectable.
    - An order's ``idempotency_key`` is unique and immutable (trigger).
    - Orders are never deleted (trigger).
"""

from __future__ import annotations

import sqlite3

from share_ledger.db.connection import connection_scope

# Hot-path index rationale:
# 1. users list their own orders newest-first; admins filter by listing/status.
# 2. the reservation sweep scans held reservations by expiry.
# 3. order detail pages and portfolio transaction views read journal rows by
#    order and by account.
HOT_PATH_INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_orders_user_created_at ON orders(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_listing_status ON orders(listing_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_orders_reservation_id ON orders(reservation_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_reservations_state_expires_at "
        "ON reservations(state, expires_at)"
    ),
    "CREATE INDEX IF NOT EXISTS idx_order_history_order_id ON order_history(order_id, id)",
    "CREATE INDEX IF NOT EXISTS idx_journal_entries_order_id ON journal_entries(order_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_journal_entries_account_sequence "
        "ON journal_entries(account, sequence)"
    ),
    "CREATE INDEX IF NOT EXISTS idx_holdings_listing_id ON holdings(listing_id)",
)


def create_journal_immutability_triggers(conn: sqlite3.Connection) -> None:
    """Create triggers that make ``journal_entries`` append-only.

    Corrections are always new reversing entries; any UPDATE or DELETE aborts
    the statement. These triggers protect the chain against direct SQL writes
    as well as Python helper paths.
    """
    conn.execute("DROP TRIGGER IF EXISTS journal_entries_no_update")
    conn.execute("DROP TRIGGER IF EXISTS journal_entries_no_delete")

    conn.execute("""
        CREATE TRIGGER journal_entries_no_update
        BEFORE UPDATE ON journal_entries
        BEGIN
            SELECT RAISE(ABORT, 'journal invariant violated: entries are append-only');
        END;
    """)

    conn.execute("""
        CREATE TRIGGER journal_entries_no_delete
        BEFORE DELETE ON journal_entries
        BEGIN
            SELECT RAISE(ABORT, 'journal invariant violated: entries are append-only');
        END;
    """)


def create_order_invariant_triggers(conn: sqlite3.Connection) -> None:
    """Create triggers protecting order identity fields.

    Invariant model:
    - ``idempotency_key`` is assigned at creation and reused by every charge
      attempt of the order, so it may never change.
    - Orders are never deleted; failed and cancelled orders stay as records.
    """
    conn.execute("DROP TRIGGER IF EXISTS orders_idempotency_key_immutable")
    conn.execute("DROP TRIGGER IF EXISTS orders_no_delete")

    conn.execute("""
        CREATE TRIGGER orders_idempotency_key_immutable
        BEFORE UPDATE OF idempotency_key ON orders
        WHEN NEW.idempotency_key IS NOT OLD.idempotency_key
        BEGIN
            SELECT RAISE(ABORT, 'order invariant violated: idempotency_key is immutable');
        END;
    """)

    conn.execute("""
        CREATE TRIGGER orders_no_delete
        BEFORE DELETE ON orders
        BEGIN
            SELECT RAISE(ABORT, 'order invariant violated: orders are never deleted');
        END;
    """)


def init_database() -> None:
    """Initialize the SQLite database schema and baseline triggers.

    Behavior:
    - Switches the database to WAL journaling so readers do not block the
      single writer.
    - Creates required tables and indexes if missing.
    - Installs journal and order invariant triggers.

    Safe to call repeatedly.
    """
    with connection_scope() as conn:
        conn.execute("PRAGMA journal_mode = WAL")

    with connection_scope(write=True) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS listings (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                total_shares INTEGER NOT NULL CHECK (total_shares > 0),
                available_shares INTEGER NOT NULL,
                price_per_share TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'draft'
                    CHECK (status IN ('draft', 'active', 'closed')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CHECK (available_shares >= 0),
                CHECK (available_shares <= total_shares)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS reservations (
                id TEXT PRIMARY KEY,
                listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE RESTRICT,
                shares INTEGER NOT NULL CHECK (shares > 0),
                state TEXT NOT NULL DEFAULT 'held'
                    CHECK (state IN ('held', 'committed', 'released')),
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                resolved_at TEXT
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE RESTRICT,
                side TEXT NOT NULL CHECK (side IN ('buy', 'sell')),
                shares INTEGER NOT NULL CHECK (shares > 0),
                price_per_share TEXT NOT NULL,
                amount TEXT NOT NULL,
                status TEXT NOT NULL
                    CHECK (status IN ('pending', 'completed', 'failed', 'cancelled')),
                idempotency_key TEXT NOT NULL UNIQUE,
                reservation_id TEXT REFERENCES reservations(id) ON DELETE RESTRICT,
                payment_ref TEXT,
                payment_method_id TEXT,
                notes TEXT,
                cost_basis TEXT,
                failure_reason TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT,
                cancelled_at TEXT
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS order_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id TEXT NOT NULL REFERENCES orders(id) ON DELETE RESTRICT,
                from_status TEXT,
                to_status TEXT NOT NULL,
                changed_by TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS holdings (
                user_id TEXT NOT NULL,
                listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE RESTRICT,
                share_quantity INTEGER NOT NULL CHECK (share_quantity >= 0),
                average_cost_basis TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, listing_id)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS journal_entries (
                sequence INTEGER PRIMARY KEY CHECK (sequence > 0),
                entry_id TEXT NOT NULL UNIQUE,
                order_id TEXT NOT NULL REFERENCES orders(id) ON DELETE RESTRICT,
                kind TEXT NOT NULL CHECK (
                    kind IN ('purchase', 'sale', 'refund', 'sale_reversal', 'payment_failed')
                ),
                account TEXT NOT NULL,
                direction TEXT NOT NULL CHECK (direction IN ('debit', 'credit')),
                amount TEXT NOT NULL,
                memo TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                previous_hash TEXT NOT NULL UNIQUE,
                hash TEXT NOT NULL UNIQUE
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS journal_halt (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                sequence INTEGER NOT NULL,
                detail TEXT,
                recorded_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS journal_head (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                sequence INTEGER NOT NULL CHECK (sequence > 0),
                hash TEXT NOT NULL
            )
        """)
        # Databases created before the head anchor existed start from their
        # current last entry.
        conn.execute("""
            INSERT OR IGNORE INTO journal_head (id, sequence, hash)
            SELECT 1, sequence, hash FROM journal_entries
            ORDER BY sequence DESC LIMIT 1
        """)

        for statement in HOT_PATH_INDEX_STATEMENTS:
            conn.execute(statement)

        create_journal_immutability_triggers(conn)
        create_order_invariant_triggers(conn)
