"""Tests for the holdings aggregator."""

from decimal import Decimal

import pytest

from share_ledger.core.errors import HoldingNotFound, InsufficientHoldings, ValidationError
from share_ledger.db import holdings_repo
from share_ledger.db.connection import connection_scope
from share_ledger.db.errors import DatabaseWriteError
from tests.conftest import create_test_listing
from tests.constants import INVESTOR_ID, OTHER_INVESTOR_ID, TEST_LISTING_ID


def _buy(shares: int, price: str, user_id: str = INVESTOR_ID):
    with connection_scope(write=True) as conn:
        return holdings_repo.apply_buy(conn, user_id, TEST_LISTING_ID, shares, Decimal(price))


def _holding(user_id: str = INVESTOR_ID):
    with connection_scope() as conn:
        return holdings_repo.find_holding(conn, user_id, TEST_LISTING_ID)


@pytest.mark.unit
@pytest.mark.db
class TestApplyBuy:
    def test_first_buy_creates_holding_at_price(self, listing) -> None:
        holding = _buy(500, "2.00")
        assert holding.share_quantity == 500
        assert holding.average_cost_basis == Decimal("2.00")

    def test_second_buy_moves_to_weighted_average(self, listing) -> None:
        _buy(100, "2.00")
        holding = _buy(300, "3.00")
        # (100 * 2.00 + 300 * 3.00) / 400 = 2.75
        assert holding.share_quantity == 400
        assert holding.average_cost_basis == Decimal("2.75")

    def test_average_over_several_buys(self, listing) -> None:
        _buy(1, "1.00")
        holding = _buy(2, "1.00")
        assert holding.average_cost_basis == Decimal("1.00")
        holding = _buy(3, "2.00")
        # (3 * 1.00 + 3 * 2.00) / 6 = 1.50
        assert holding.average_cost_basis == Decimal("1.50")

    def test_holdings_are_per_user(self, listing) -> None:
        _buy(10, "2.00")
        _buy(20, "2.00", user_id=OTHER_INVESTOR_ID)
        assert _holding().share_quantity == 10
        assert _holding(OTHER_INVESTOR_ID).share_quantity == 20
        with connection_scope() as conn:
            assert holdings_repo.sum_quantity_for_listing(conn, TEST_LISTING_ID) == 30

    def test_unknown_listing_violates_foreign_key(self, test_db) -> None:
        with pytest.raises(DatabaseWriteError):
            _buy(1, "2.00")

    def test_zero_shares_rejected(self, listing) -> None:
        with pytest.raises(ValidationError):
            _buy(0, "2.00")


@pytest.mark.unit
@pytest.mark.db
class TestApplySell:
    def test_sell_returns_basis_and_keeps_average(self, listing) -> None:
        _buy(100, "2.50")
        with connection_scope(write=True) as conn:
            basis = holdings_repo.apply_sell(conn, INVESTOR_ID, TEST_LISTING_ID, 40)
        assert basis == Decimal("2.50")
        holding = _holding()
        assert holding.share_quantity == 60
        assert holding.average_cost_basis == Decimal("2.50")

    def test_emptied_position_resets_basis(self, listing) -> None:
        _buy(10, "2.00")
        with connection_scope(write=True) as conn:
            holdings_repo.apply_sell(conn, INVESTOR_ID, TEST_LISTING_ID, 10)
        holding = _holding()
        assert holding.share_quantity == 0
        assert holding.average_cost_basis == Decimal("0.00")

    def test_oversell_rejected_and_unchanged(self, listing) -> None:
        _buy(10, "2.00")
        with pytest.raises(InsufficientHoldings) as excinfo:
            with connection_scope(write=True) as conn:
                holdings_repo.apply_sell(conn, INVESTOR_ID, TEST_LISTING_ID, 11)
        assert excinfo.value.held == 10
        assert _holding().share_quantity == 10

    def test_sell_without_holding(self, listing) -> None:
        with pytest.raises(InsufficientHoldings) as excinfo:
            with connection_scope(write=True) as conn:
                holdings_repo.apply_sell(conn, INVESTOR_ID, TEST_LISTING_ID, 1)
        assert excinfo.value.held == 0

    def test_reverse_buy_uses_same_guard(self, listing) -> None:
        _buy(5, "2.00")
        with pytest.raises(InsufficientHoldings):
            with connection_scope(write=True) as conn:
                holdings_repo.reverse_buy(conn, INVESTOR_ID, TEST_LISTING_ID, 6)
        with connection_scope(write=True) as conn:
            holdings_repo.reverse_buy(conn, INVESTOR_ID, TEST_LISTING_ID, 5)
        assert _holding().share_quantity == 0


@pytest.mark.unit
@pytest.mark.db
class TestHoldingQueries:
    def test_get_holding_missing(self, listing) -> None:
        with connection_scope() as conn:
            with pytest.raises(HoldingNotFound):
                holdings_repo.get_holding(conn, INVESTOR_ID, TEST_LISTING_ID)

    def test_list_holdings_hides_empty_positions(self, listing) -> None:
        create_test_listing("second-listing")
        _buy(10, "2.00")
        with connection_scope(write=True) as conn:
            holdings_repo.apply_buy(conn, INVESTOR_ID, "second-listing", 4, Decimal("2.00"))
            holdings_repo.apply_sell(conn, INVESTOR_ID, TEST_LISTING_ID, 10)

        with connection_scope() as conn:
            visible = holdings_repo.list_holdings(conn, INVESTOR_ID)
            everything = holdings_repo.list_holdings(conn, INVESTOR_ID, include_empty=True)

        assert [item.listing_id for item in visible] == ["second-listing"]
        assert [item.listing_id for item in everything] == [TEST_LISTING_ID, "second-listing"]
