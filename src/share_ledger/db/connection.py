"""SQLite connection primitives for the ledger DB layer.

This module owns connection creation, low-level SQLite runtime pragmas and
transaction scoping so repository code can stay focused on queries. Every
repository function receives the connection it must use; repositories never
open connections of their own, which keeps the transaction boundary in the
hands of the calling service.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def get_db_path() -> Path:
    """Resolve the absolute SQLite database path from runtime configuration."""
    from share_ledger.config import config

    return config.database.absolute_path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the application.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default.
        - ``busy_timeout`` makes concurrent writers queue on the database
          write lock instead of failing with ``database is locked``.
        - ``isolation_level=None`` disables the implicit transactions of the
          ``sqlite3`` module; write scopes issue ``BEGIN IMMEDIATE`` explicitly.
    """
    from share_ledger.config import config

    connection.isolation_level = None
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute(f"PRAGMA busy_timeout = {int(config.database.busy_timeout_ms)}")
    return connection


def get_connection() -> sqlite3.Connection:
    """Create and configure a new SQLite connection."""
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(str(db_path), check_same_thread=False)
    return configure_connection(connection)


@contextmanager
def connection_scope(*, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        write: When True, open an immediate transaction, commit on success and
            roll back on exceptions.

    Yields:
        Configured SQLite connection ready for cursor operations.

    Behavior:
        - Always closes the connection in ``finally``.
        - Write scopes start with ``BEGIN IMMEDIATE`` so the database write
          lock is taken up front. Two writers can never both read the same
          inventory row or journal head and then race to update it.
        - For write scopes, attempts rollback before re-raising failures.
    """
    connection = get_connection()
    try:
        if write:
            connection.execute("BEGIN IMMEDIATE")
        yield connection
        if write:
            connection.execute("COMMIT")
    except Exception:
        if write:
            try:
                connection.execute("ROLLBACK")
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()
