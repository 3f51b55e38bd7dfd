"""Tests for the inventory ledger (listings and reservations)."""

import threading
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from share_ledger.core.errors import (
    InsufficientInventory,
    InventoryOverflow,
    ListingNotActive,
    ListingNotFound,
    NotFoundError,
    ReservationExpired,
    ValidationError,
)
from share_ledger.db import listings_repo
from share_ledger.db.connection import connection_scope
from tests.conftest import create_test_listing
from tests.constants import TEST_LISTING_ID, TEST_TOTAL_SHARES


def _available(listing_id: str = TEST_LISTING_ID) -> int:
    with connection_scope() as conn:
        return listings_repo.get_listing(conn, listing_id).available_shares


def _reserve(shares: int, *, ttl: int = 900, now: datetime | None = None):
    with connection_scope(write=True) as conn:
        return listings_repo.reserve(conn, TEST_LISTING_ID, shares, ttl_seconds=ttl, now=now)


@pytest.mark.unit
@pytest.mark.db
class TestCreateListing:
    def test_all_shares_start_available(self, listing) -> None:
        assert listing.total_shares == TEST_TOTAL_SHARES
        assert listing.available_shares == TEST_TOTAL_SHARES
        assert listing.price_per_share == Decimal("2.00")
        assert listing.status == "active"

    def test_duplicate_id_rejected(self, listing) -> None:
        with pytest.raises(ValidationError, match="already exists"):
            create_test_listing()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"total_shares": 0},
            {"total_shares": -5},
            {"price": "0"},
            {"price": "-1.00"},
            {"price": "abc"},
            {"status": "open"},
        ],
    )
    def test_invalid_input_rejected(self, test_db, kwargs) -> None:
        with pytest.raises(ValidationError):
            create_test_listing("bad-listing", **kwargs)

    def test_get_unknown_listing(self, test_db) -> None:
        with connection_scope() as conn:
            assert listings_repo.find_listing(conn, "nope") is None
            with pytest.raises(ListingNotFound):
                listings_repo.get_listing(conn, "nope")

    def test_list_and_status_filter(self, listing) -> None:
        create_test_listing("draft-listing", status="draft")
        with connection_scope() as conn:
            assert [item.id for item in listings_repo.list_listings(conn)] == [
                "draft-listing",
                TEST_LISTING_ID,
            ]
            active = listings_repo.list_listings(conn, status="active")
        assert [item.id for item in active] == [TEST_LISTING_ID]

    def test_set_listing_status(self, listing) -> None:
        with connection_scope(write=True) as conn:
            closed = listings_repo.set_listing_status(conn, TEST_LISTING_ID, "closed")
        assert closed.status == "closed"

        with pytest.raises(ListingNotFound):
            with connection_scope(write=True) as conn:
                listings_repo.set_listing_status(conn, "nope", "active")


@pytest.mark.unit
@pytest.mark.db
class TestReserve:
    def test_reserve_decrements_immediately(self, listing) -> None:
        reservation = _reserve(500)
        assert reservation.state == "held"
        assert reservation.shares == 500
        assert _available() == 500

    def test_expiry_is_now_plus_ttl(self, listing) -> None:
        now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        reservation = _reserve(1, ttl=60, now=now)
        assert datetime.fromisoformat(reservation.expires_at) == now + timedelta(seconds=60)

    def test_reserve_exact_remainder(self, listing) -> None:
        _reserve(TEST_TOTAL_SHARES)
        assert _available() == 0

    def test_oversell_rejected_and_unchanged(self, listing) -> None:
        _reserve(900)
        with pytest.raises(InsufficientInventory) as excinfo:
            _reserve(101)
        assert excinfo.value.available == 100
        assert excinfo.value.requested == 101
        assert _available() == 100

    @pytest.mark.parametrize("shares", [0, -1, 1.5, "3", True])
    def test_non_positive_integer_shares_rejected(self, listing, shares) -> None:
        with pytest.raises(ValidationError):
            _reserve(shares)
        assert _available() == TEST_TOTAL_SHARES

    def test_inactive_listing_rejected(self, test_db) -> None:
        create_test_listing(status="draft")
        with pytest.raises(ListingNotActive):
            _reserve(1)

    def test_unknown_listing_rejected(self, test_db) -> None:
        with pytest.raises(ListingNotFound):
            _reserve(1)

    def test_concurrent_reservations_never_oversell(self, test_db) -> None:
        """Twenty threads race for ten shares; exactly ten reservations win."""
        create_test_listing(total_shares=10)
        results: list[str] = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(20)

        def worker() -> None:
            barrier.wait()
            try:
                _reserve(1)
                outcome = "ok"
            except InsufficientInventory:
                outcome = "sold_out"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 10
        assert results.count("sold_out") == 10
        assert _available() == 0


@pytest.mark.unit
@pytest.mark.db
class TestReleaseAndCommit:
    def test_release_returns_shares(self, listing) -> None:
        reservation = _reserve(300)
        with connection_scope(write=True) as conn:
            released = listings_repo.release(conn, reservation.id)
        assert released.state == "released"
        assert released.resolved_at is not None
        assert _available() == TEST_TOTAL_SHARES

    def test_release_twice_raises_and_changes_nothing(self, listing) -> None:
        reservation = _reserve(300)
        with connection_scope(write=True) as conn:
            listings_repo.release(conn, reservation.id)
        with pytest.raises(ReservationExpired):
            with connection_scope(write=True) as conn:
                listings_repo.release(conn, reservation.id)
        assert _available() == TEST_TOTAL_SHARES

    def test_commit_keeps_inventory_decremented(self, listing) -> None:
        reservation = _reserve(300)
        with connection_scope(write=True) as conn:
            committed = listings_repo.commit(conn, reservation.id)
        assert committed.state == "committed"
        assert _available() == 700

    def test_committed_reservation_cannot_be_released(self, listing) -> None:
        reservation = _reserve(300)
        with connection_scope(write=True) as conn:
            listings_repo.commit(conn, reservation.id)
        with pytest.raises(ReservationExpired) as excinfo:
            with connection_scope(write=True) as conn:
                listings_repo.release(conn, reservation.id)
        assert excinfo.value.state == "committed"

    def test_unknown_reservation(self, listing) -> None:
        with pytest.raises(NotFoundError):
            with connection_scope(write=True) as conn:
                listings_repo.commit(conn, "missing")

    def test_list_expired_reservations(self, listing) -> None:
        past = datetime.now(UTC) - timedelta(hours=1)
        stale = _reserve(10, ttl=60, now=past)
        _reserve(10, ttl=3600)
        with connection_scope() as conn:
            expired = listings_repo.list_expired_reservations(conn)
        assert [item.id for item in expired] == [stale.id]


@pytest.mark.unit
@pytest.mark.db
class TestRestockAndTake:
    def test_restock_after_take(self, listing) -> None:
        with connection_scope(write=True) as conn:
            assert listings_repo.take(conn, TEST_LISTING_ID, 40).available_shares == 960
            assert listings_repo.restock(conn, TEST_LISTING_ID, 40).available_shares == 1000

    def test_restock_beyond_total_overflows(self, listing) -> None:
        with pytest.raises(InventoryOverflow):
            with connection_scope(write=True) as conn:
                listings_repo.restock(conn, TEST_LISTING_ID, 1)
        assert _available() == TEST_TOTAL_SHARES

    def test_take_ignores_listing_status(self, test_db) -> None:
        create_test_listing(status="closed")
        with connection_scope(write=True) as conn:
            assert listings_repo.take(conn, TEST_LISTING_ID, 5).available_shares == 995

    def test_take_more_than_available(self, listing) -> None:
        _reserve(995)
        with pytest.raises(InsufficientInventory):
            with connection_scope(write=True) as conn:
                listings_repo.take(conn, TEST_LISTING_ID, 6)

    def test_restock_unknown_listing(self, test_db) -> None:
        with pytest.raises(ListingNotFound):
            with connection_scope(write=True) as conn:
                listings_repo.restock(conn, "nope", 1)
