"""Typed database exceptions for the DB package.

This module defines a small, explicit exception hierarchy used by repository
modules to signal infrastructure failures (for example SQLite connection/query
errors) without collapsing them into the domain error taxonomy.

Design intent:
    - Domain outcomes (insufficient inventory, unknown order, broken hash
      chain) raise the classes in :mod:`share_ledger.core.errors` and pass
      through repositories untouched.
    - Infrastructure failures raise the typed exceptions below so API
      boundaries can map them to deterministic HTTP 5xx responses and logs.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

_F = TypeVar("_F", bound=Callable[..., Any])


@dataclass(slots=True)
class DatabaseOperationContext:
    """Structured operation metadata carried by repository exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"listings.reserve"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class DatabaseError(RuntimeError):
    """Base exception for DB-layer failures."""


class DatabaseOperationError(DatabaseError):
    """Base exception for repository operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: DatabaseOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class DatabaseReadError(DatabaseOperationError):
    """Repository read/query failure."""


class DatabaseWriteError(DatabaseOperationError):
    """Repository mutation/transaction failure."""


def wraps_sqlite_errors(operation: str, *, write: bool) -> Callable[[_F], _F]:
    """Translate ``sqlite3.Error`` raised by a repository function.

    Only SQLite failures are converted; domain exceptions propagate unchanged
    so services can still tell "not enough shares" from "disk is full".
    """
    error_cls = DatabaseWriteError if write else DatabaseReadError

    def decorator(func: _F) -> _F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except sqlite3.Error as exc:
                raise error_cls(
                    context=DatabaseOperationContext(operation=operation, details=str(exc)),
                    cause=exc,
                ) from exc

        return wrapper  # type: ignore[return-value]

    return decorator
