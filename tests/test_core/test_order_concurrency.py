"""Concurrency tests for the order service.

Every worker thread opens its own SQLite connection through the service, so
these tests exercise the real ``BEGIN IMMEDIATE`` serialisation rather than a
shared in-memory connection.
"""

from __future__ import annotations

import threading
from collections import Counter
from decimal import Decimal

import pytest

from share_ledger.core.errors import InsufficientHoldings, InsufficientInventory
from share_ledger.core.identity import Actor
from share_ledger.core.orders import OrderService
from share_ledger.core.states import OrderStatus
from share_ledger.db import holdings_repo, listings_repo
from share_ledger.db.connection import connection_scope
from tests.conftest import create_test_listing
from tests.constants import INVESTOR_ID, TEST_LISTING_ID


def _run_concurrently(count: int, work) -> list[str]:
    """Start ``count`` threads on ``work(index)`` together and collect outcomes."""
    outcomes: list[str] = []
    errors: list[Exception] = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def runner(index: int) -> None:
        barrier.wait()
        try:
            outcome = work(index)
        except Exception as exc:
            with lock:
                errors.append(exc)
            return
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=runner, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    if errors:
        raise errors[0]
    return outcomes


def _inventory_balances() -> tuple[int, int, int]:
    """Return ``(available, held by users, total)`` for the test listing."""
    with connection_scope() as conn:
        listing = listings_repo.get_listing(conn, TEST_LISTING_ID)
        held = holdings_repo.sum_quantity_for_listing(conn, TEST_LISTING_ID)
    return listing.available_shares, held, listing.total_shares


@pytest.mark.db
class TestConcurrentOrders:
    def test_concurrent_buys_never_oversell(self, service: OrderService, test_db) -> None:
        """Twelve buyers race for 50 shares in lots of five; ten succeed."""
        create_test_listing(total_shares=50)

        def buy(index: int) -> str:
            try:
                order = service.submit_order(f"investor-{index}", TEST_LISTING_ID, 5)
            except InsufficientInventory:
                return "sold_out"
            return order.status.value

        outcomes = Counter(_run_concurrently(12, buy))

        assert outcomes == Counter({"completed": 10, "sold_out": 2})
        available, held, total = _inventory_balances()
        assert available == 0
        assert held == total == 50
        assert service.verify_journal().ok

    def test_inventory_is_conserved_under_mixed_load(
        self, service: OrderService, test_db
    ) -> None:
        """Buys, cancels and sells interleave; available + held stays equal to total."""
        create_test_listing(total_shares=200)
        investor = Actor(INVESTOR_ID)
        seed = [service.submit_order(INVESTOR_ID, TEST_LISTING_ID, 10) for _ in range(4)]

        def work(index: int) -> str:
            kind = index % 3
            if kind == 0:
                return service.submit_order(INVESTOR_ID, TEST_LISTING_ID, 7).status.value
            if kind == 1:
                try:
                    service.submit_order(INVESTOR_ID, TEST_LISTING_ID, 3, side="sell")
                except InsufficientHoldings:
                    return "no_holdings"
                return "sold"
            try:
                service.cancel_order(seed[index % len(seed)].id, investor)
            except InsufficientHoldings:
                return "cannot_cancel"
            return "cancelled"

        _run_concurrently(9, work)

        available, held, total = _inventory_balances()
        assert available + held == total
        assert service.verify_journal().ok

    def test_concurrent_cancels_refund_once(self, service: OrderService, gateway, listing) -> None:
        order = service.submit_order(INVESTOR_ID, TEST_LISTING_ID, 25)
        investor = Actor(INVESTOR_ID)

        outcomes = _run_concurrently(
            6, lambda _: service.cancel_order(order.id, investor).status.value
        )

        assert outcomes == [OrderStatus.CANCELLED.value] * 6
        assert gateway.refunds == [("pay_1", Decimal("50.00"))]
        available, held, _ = _inventory_balances()
        assert (available, held) == (1000, 0)
