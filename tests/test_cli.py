"""
Unit tests for the CLI module (share_ledger/cli.py).

Tests cover:
- Command parsing
- init-db, seed-listings and set-listing-status
- sweep-reservations
- verify-journal and clear-journal-halt exit codes
"""

import argparse
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from share_ledger import cli
from share_ledger.db import journal_repo, listings_repo
from share_ledger.db.connection import connection_scope
from share_ledger.db.errors import DatabaseOperationContext, DatabaseWriteError
from tests.constants import INVESTOR_ID, TEST_LISTING_ID

LISTINGS_YAML = """\
listings:
  - id: harbor-lofts
    title: Harbor Lofts
    total_shares: 1000
    price_per_share: "2.00"
    status: active
  - id: riverside-offices
    title: Riverside Offices
    total_shares: 5000
    price_per_share: "12.50"
"""


# ============================================================================
# PARSER TESTS
# ============================================================================


@pytest.mark.unit
def test_main_without_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "share-ledger" in capsys.readouterr().out


@pytest.mark.unit
def test_parser_verify_journal_range():
    args = cli.build_parser().parse_args(["verify-journal", "--from-seq", "3", "--to-seq", "9"])
    assert (args.from_seq, args.to_seq) == (3, 9)
    assert args.func is cli.cmd_verify_journal


@pytest.mark.unit
def test_parser_rejects_unknown_listing_status():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["set-listing-status", TEST_LISTING_ID, "paused"])


# ============================================================================
# INIT-DB
# ============================================================================


@pytest.mark.unit
def test_cmd_init_db_success():
    with patch("share_ledger.db.schema.init_database") as mock_init:
        assert cli.cmd_init_db(argparse.Namespace()) == 0
        mock_init.assert_called_once()


@pytest.mark.unit
def test_cmd_init_db_error(capsys):
    failure = DatabaseWriteError(context=DatabaseOperationContext(operation="schema.init"))
    with patch("share_ledger.db.schema.init_database", side_effect=failure):
        assert cli.cmd_init_db(argparse.Namespace()) == 1
    assert "Error initializing database" in capsys.readouterr().err


# ============================================================================
# LISTINGS
# ============================================================================


@pytest.mark.unit
def test_load_listings_file_requires_listings_key(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("properties: []\n", encoding="utf-8")
    with pytest.raises(ValueError, match="listings"):
        cli.load_listings_file(path)


@pytest.mark.unit
def test_load_listings_file_reports_missing_fields(tmp_path):
    path = tmp_path / "partial.yaml"
    path.write_text("listings:\n  - id: a\n    title: A\n", encoding="utf-8")
    with pytest.raises(ValueError, match="price_per_share"):
        cli.load_listings_file(path)


@pytest.mark.db
def test_seed_listings_is_rerunnable(test_db, tmp_path, capsys):
    path = tmp_path / "listings.yaml"
    path.write_text(LISTINGS_YAML, encoding="utf-8")

    first = cli.main(["seed-listings", str(path)])
    second = cli.main(["seed-listings", str(path)])

    assert first == second == 0
    output = capsys.readouterr().out
    assert "Listings created: 2, already present: 0" in output
    assert "Listings created: 0, already present: 2" in output
    with connection_scope() as conn:
        offices = listings_repo.get_listing(conn, "riverside-offices")
    assert offices.status == "draft"
    assert str(offices.price_per_share) == "12.50"


@pytest.mark.db
def test_seed_listings_activate(test_db, tmp_path):
    path = tmp_path / "listings.yaml"
    path.write_text(LISTINGS_YAML, encoding="utf-8")

    assert cli.main(["seed-listings", str(path), "--activate"]) == 0

    with connection_scope() as conn:
        assert listings_repo.get_listing(conn, "riverside-offices").status == "active"


@pytest.mark.db
def test_seed_listings_missing_file(test_db, tmp_path, capsys):
    assert cli.main(["seed-listings", str(tmp_path / "nope.yaml")]) == 1
    assert "Error reading listings" in capsys.readouterr().err


@pytest.mark.db
def test_set_listing_status(listing, capsys):
    assert cli.main(["set-listing-status", TEST_LISTING_ID, "closed"]) == 0
    assert "is now closed" in capsys.readouterr().out

    assert cli.main(["set-listing-status", "missing", "active"]) == 1


# ============================================================================
# SWEEP AND JOURNAL
# ============================================================================


@pytest.mark.db
def test_sweep_reservations(listing, capsys):
    with connection_scope(write=True) as conn:
        listings_repo.reserve(
            conn,
            TEST_LISTING_ID,
            25,
            ttl_seconds=1,
            now=datetime.now(UTC) - timedelta(minutes=1),
        )

    assert cli.main(["sweep-reservations"]) == 0

    assert "Sweep complete: 0 orders failed." in capsys.readouterr().out
    with connection_scope() as conn:
        assert listings_repo.get_listing(conn, TEST_LISTING_ID).available_shares == 1000


@pytest.mark.db
def test_verify_and_clear_journal_halt(service, listing, capsys):
    service.submit_order(INVESTOR_ID, TEST_LISTING_ID, 10)

    assert cli.main(["verify-journal"]) == 0
    assert "Journal OK: 2 entries verified." in capsys.readouterr().out

    with connection_scope(write=True) as conn:
        conn.execute("DROP TRIGGER journal_entries_no_update")
        conn.execute("UPDATE journal_entries SET amount = '0.00' WHERE sequence = 2")

    assert cli.main(["verify-journal"]) == 2
    assert "TAMPER DETECTED at sequence 2" in capsys.readouterr().err

    assert cli.main(["clear-journal-halt"]) == 1
    assert cli.main(["clear-journal-halt", "--yes"]) == 0
    assert "Journal halt cleared." in capsys.readouterr().out
    with connection_scope() as conn:
        assert journal_repo.get_halt(conn) is None


@pytest.mark.db
def test_verify_journal_invalid_range(test_db, capsys):
    assert cli.main(["verify-journal", "--from-seq", "5", "--to-seq", "1"]) == 1
    assert "Error:" in capsys.readouterr().err


@pytest.mark.db
def test_clear_journal_halt_when_none_recorded(test_db, capsys):
    assert cli.main(["clear-journal-halt", "--yes"]) == 0
    assert "No journal halt was recorded." in capsys.readouterr().out


# ============================================================================
# RUN
# ============================================================================


@pytest.mark.unit
def test_cmd_run_passes_overrides(test_db):
    with patch("share_ledger.api.server.start_server") as mock_start:
        args = argparse.Namespace(host="127.0.0.1", port=8100)
        assert cli.cmd_run(args) == 0
    mock_start.assert_called_once_with(host="127.0.0.1", port=8100)


@pytest.mark.unit
def test_cmd_run_reports_bind_error(test_db, capsys):
    with patch("share_ledger.api.server.start_server", side_effect=OSError("in use")):
        assert cli.cmd_run(argparse.Namespace(host=None, port=None)) == 1
    assert "Error starting server" in capsys.readouterr().err
