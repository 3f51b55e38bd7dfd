"""
Shared pytest fixtures for the share ledger test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary test databases (through the config system's ``use_test_database``)
- A scriptable fake payment gateway
- An ``OrderService`` wired to the fake gateway
- A seeded, active listing
- FastAPI TestClient instances

Fixtures are function scoped so every test gets a fresh database.
"""

import shutil
import tempfile
import threading
from collections.abc import Callable, Generator
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from share_ledger.config import use_test_database
from share_ledger.core.identity import ROLE_ADMIN, Actor
from share_ledger.core.orders import OrderService
from share_ledger.core.payments import ChargeResult, RefundResult
from share_ledger.db import listings_repo
from share_ledger.db.connection import connection_scope
from share_ledger.db.schema import init_database
from share_ledger.db.types import Listing
from tests.constants import (
    ADMIN_ID,
    INVESTOR_ID,
    TEST_LISTING_ID,
    TEST_LISTING_TITLE,
    TEST_PRICE,
    TEST_TOTAL_SHARES,
)

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    This fixture creates a unique temporary database for each test function,
    ensuring complete isolation between tests. Uses the config system's
    use_test_database context manager.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_shares.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """Initialize a test database with the production schema but no data."""
    init_database()
    yield


def create_test_listing(
    listing_id: str = TEST_LISTING_ID,
    *,
    total_shares: int = TEST_TOTAL_SHARES,
    price: str = TEST_PRICE,
    status: str = "active",
) -> Listing:
    """Insert a listing in its own transaction and return it."""
    with connection_scope(write=True) as conn:
        return listings_repo.create_listing(
            conn,
            listing_id=listing_id,
            title=TEST_LISTING_TITLE if listing_id == TEST_LISTING_ID else listing_id,
            total_shares=total_shares,
            price_per_share=price,
            status=status,
        )


@pytest.fixture(scope="function")
def listing(test_db) -> Listing:
    """An active listing of 1000 shares at 2.00."""
    return create_test_listing()


# ============================================================================
# PAYMENT FIXTURES
# ============================================================================


class FakeGateway:
    """
    Scriptable payment gateway for tests.

    ``charge_plan`` is consumed one item per charge call: a ``ChargeResult``
    is returned, an exception is raised. Once the plan is empty every charge
    succeeds with a fresh ``pay_<n>`` reference. ``on_charge`` runs before
    the outcome is produced, letting a test change the world while the
    charge is "in flight".
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.charge_plan: list[ChargeResult | Exception] = []
        self.charges: list[tuple[str, Decimal, str]] = []
        self.refunds: list[tuple[str, Decimal]] = []
        self.refund_result = RefundResult(success=True)
        self.on_charge: Callable[[str, Decimal, str], None] | None = None

    def charge(self, user_id: str, amount: Decimal, idempotency_key: str) -> ChargeResult:
        with self._lock:
            self.charges.append((user_id, amount, idempotency_key))
            outcome = self.charge_plan.pop(0) if self.charge_plan else None
            number = len(self.charges)
        if self.on_charge is not None:
            self.on_charge(user_id, amount, idempotency_key)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ChargeResult(success=True, payment_ref=f"pay_{number}")
        return outcome

    def refund(self, payment_ref: str, amount: Decimal) -> RefundResult:
        with self._lock:
            self.refunds.append((payment_ref, amount))
        return self.refund_result


@pytest.fixture(scope="function")
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
def service(test_db, gateway: FakeGateway) -> OrderService:
    """Order service over the test database with a 15 minute reservation TTL."""
    return OrderService(gateway, reservation_ttl_seconds=900, max_retries=2, sweep_batch_size=100)


@pytest.fixture
def investor() -> Actor:
    return Actor(user_id=INVESTOR_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, role=ROLE_ADMIN)


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def test_client(service: OrderService) -> TestClient:
    """
    Create a FastAPI TestClient for API endpoint testing.

    The app is built around the ``service`` fixture, so tests can script the
    fake gateway and inspect the same database the API writes to.

    Example:
        def test_buy(test_client, listing):
            response = test_client.post(
                "/orders",
                json={"listing_id": "harbor-lofts", "shares": 5},
                headers=INVESTOR_HEADERS,
            )
            assert response.status_code == 201
    """
    from share_ledger.api.server import create_app

    return TestClient(create_app(service))
