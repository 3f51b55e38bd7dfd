"""Mapping from engine errors to HTTP responses.

One table decides the status code for every error class; the most specific
class in an exception's MRO wins. Bodies always look like::

    {"detail": "<message>", "code": "<stable error code>"}
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from share_ledger.core.errors import (
    InsufficientHoldings,
    InsufficientInventory,
    InvalidStateTransition,
    InventoryOverflow,
    LedgerError,
    NotFoundError,
    PaymentFailed,
    PermissionDenied,
    ReservationExpired,
    TamperDetected,
    ValidationError,
)
from share_ledger.db.errors import DatabaseError

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[Exception], int] = {
    ValidationError: 400,
    PaymentFailed: 402,
    PermissionDenied: 403,
    NotFoundError: 404,
    InsufficientInventory: 409,
    InsufficientHoldings: 409,
    InventoryOverflow: 409,
    InvalidStateTransition: 409,
    ReservationExpired: 409,
    TamperDetected: 503,
    LedgerError: 400,
    DatabaseError: 500,
}


def status_for(exc: Exception) -> int:
    """Return the HTTP status for ``exc`` from :data:`STATUS_BY_ERROR`."""
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def ledger_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = status_for(exc)
    if isinstance(exc, TamperDetected):
        logger.critical("Request refused, journal halted: %s", exc)
    code = getattr(exc, "code", "internal_error")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


async def database_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("Database failure: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Database operation failed", "code": "database_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on ``app``."""
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
