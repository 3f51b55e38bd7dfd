"""Tests for the error-to-HTTP mapping and the journal halt surface."""

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from share_ledger.api.errors import STATUS_BY_ERROR, register_exception_handlers, status_for
from share_ledger.core.errors import (
    HoldingNotFound,
    InsufficientHoldings,
    InsufficientInventory,
    InvalidStateTransition,
    InventoryOverflow,
    LedgerError,
    ListingNotActive,
    ListingNotFound,
    OrderNotFound,
    PaymentDeclined,
    PaymentFailed,
    PermissionDenied,
    ReservationExpired,
    TamperDetected,
    ValidationError,
)
from share_ledger.db.connection import connection_scope
from share_ledger.db.errors import DatabaseOperationContext, DatabaseWriteError
from tests.constants import ADMIN_HEADERS, INVESTOR_HEADERS, TEST_LISTING_ID


@pytest.mark.unit
class TestStatusFor:
    @pytest.mark.parametrize(
        "exc,status",
        [
            (ValidationError("bad"), 400),
            (ListingNotActive("l", "closed"), 400),
            (PaymentFailed("down"), 402),
            (PaymentDeclined("no"), 402),
            (PermissionDenied("no"), 403),
            (ListingNotFound("l"), 404),
            (OrderNotFound("o"), 404),
            (HoldingNotFound("u", "l"), 404),
            (InsufficientInventory("l", 2, 1), 409),
            (InsufficientHoldings("u", "l", 2, 1), 409),
            (InventoryOverflow("l", 1), 409),
            (InvalidStateTransition("o", "failed", "cancelled"), 409),
            (ReservationExpired("r", "released"), 409),
            (TamperDetected(3), 503),
            (LedgerError("other"), 400),
            (
                DatabaseWriteError(context=DatabaseOperationContext(operation="x")),
                500,
            ),
            (RuntimeError("unexpected"), 500),
        ],
    )
    def test_most_specific_class_wins(self, exc, status) -> None:
        assert status_for(exc) == status

    def test_every_mapped_status_is_an_error(self) -> None:
        assert all(400 <= status < 600 for status in STATUS_BY_ERROR.values())


@pytest.mark.unit
def test_handlers_render_detail_and_code() -> None:
    app = FastAPI()
    register_exception_handlers(app)
    api = APIRouter()

    @api.get("/boom")
    def boom():
        raise InsufficientInventory("harbor-lofts", 5, 2)

    @api.get("/db")
    def db_failure():
        raise DatabaseWriteError(
            context=DatabaseOperationContext(operation="orders.transition", details="disk I/O")
        )

    app.include_router(api)
    client = TestClient(app)

    response = client.get("/boom")
    assert response.status_code == 409
    assert response.json() == {
        "detail": "Listing 'harbor-lofts' has 2 shares available, 5 requested",
        "code": "insufficient_inventory",
    }

    response = client.get("/db")
    assert response.status_code == 500
    assert response.json() == {"detail": "Database operation failed", "code": "database_error"}


@pytest.mark.api
def test_tampered_journal_halts_writes(test_client, listing) -> None:
    """A detected mismatch is reported, degrades health and refuses writes with 503."""
    test_client.post(
        "/orders", json={"listing_id": TEST_LISTING_ID, "shares": 10}, headers=INVESTOR_HEADERS
    )
    with connection_scope(write=True) as conn:
        conn.execute("DROP TRIGGER journal_entries_no_update")
        conn.execute("UPDATE journal_entries SET memo = 'edited' WHERE sequence = 1")

    verify = test_client.get("/journal/verify", headers=ADMIN_HEADERS).json()
    assert verify["ok"] is False
    assert verify["first_mismatch_seq"] == 1
    assert verify["halt"]["sequence"] == 1

    assert test_client.get("/health").json() == {"status": "degraded", "journal_halted": True}

    sell = test_client.post(
        "/orders",
        json={"listing_id": TEST_LISTING_ID, "shares": 1, "side": "sell"},
        headers=INVESTOR_HEADERS,
    )
    assert sell.status_code == 503
    assert sell.json()["code"] == "tamper_detected"
