"""
Command-line interface for the share ledger.

Provides CLI commands for server management:
- init-db: Initialize the database schema
- seed-listings: Create listings from a YAML file
- set-listing-status: Open or close a listing for orders
- sweep-reservations: Release expired reservations and fail their orders
- verify-journal: Check the journal hash chain
- clear-journal-halt: Resume journal appends after an audit
- show-config: Print the effective configuration
- run: Start the API server

Usage:
    share-ledger init-db
    share-ledger seed-listings config/listings.example.yaml [--activate]
    share-ledger set-listing-status harbor-lofts active
    share-ledger sweep-reservations
    share-ledger verify-journal [--from-seq N] [--to-seq N]
    share-ledger clear-journal-halt --yes
    share-ledger run [--host HOST] [--port PORT]

Configuration comes from ``config/server.ini`` and ``SHARES_*`` environment
variables (see :mod:`share_ledger.config`).
"""

import argparse
import sys
from pathlib import Path
from typing import Any

import yaml

from share_ledger.config import config, print_config_summary
from share_ledger.logging_setup import configure_logging


def _build_service():
    """Create an order service wired to the configured payment gateway."""
    from share_ledger.core.orders import OrderService
    from share_ledger.core.payments import build_payment_gateway

    return OrderService(build_payment_gateway(config.payment))


def load_listings_file(path: Path) -> list[dict[str, Any]]:
    """
    Read listing definitions from a YAML file.

    Expected shape::

        listings:
          - id: harbor-lofts
            title: Harbor Lofts
            total_shares: 1000
            price_per_share: "2.00"
            status: active

    Raises:
        ValueError: If the document does not have a ``listings`` list.
    """
    with path.open(encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}
    listings = document.get("listings") if isinstance(document, dict) else None
    if not isinstance(listings, list):
        raise ValueError(f"{path} must contain a top-level 'listings' list")
    for index, entry in enumerate(listings):
        if not isinstance(entry, dict):
            raise ValueError(f"Listing #{index + 1} in {path} is not a mapping")
        missing = {"id", "title", "total_shares", "price_per_share"} - set(entry)
        if missing:
            raise ValueError(f"Listing #{index + 1} in {path} is missing {sorted(missing)}")
    return listings


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from share_ledger.db.errors import DatabaseError
    from share_ledger.db.schema import init_database

    try:
        init_database()
        print(f"Database initialized at {config.database.absolute_path}")
        return 0
    except DatabaseError as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_seed_listings(args: argparse.Namespace) -> int:
    """
    Create listings from a YAML file.

    Listings that already exist are skipped, so the command can be re-run
    after editing the file. ``--activate`` overrides each entry's status.

    Returns:
        0 on success, 1 on error
    """
    from share_ledger.core.errors import LedgerError
    from share_ledger.db import listings_repo
    from share_ledger.db.connection import connection_scope
    from share_ledger.db.schema import init_database

    try:
        entries = load_listings_file(Path(args.path))
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error reading listings: {e}", file=sys.stderr)
        return 1

    init_database()
    created = 0
    skipped = 0
    for entry in entries:
        status = "active" if args.activate else str(entry.get("status", "draft"))
        try:
            with connection_scope(write=True) as conn:
                if listings_repo.find_listing(conn, str(entry["id"])) is not None:
                    skipped += 1
                    continue
                listings_repo.create_listing(
                    conn,
                    listing_id=str(entry["id"]),
                    title=str(entry["title"]),
                    total_shares=entry["total_shares"],
                    price_per_share=str(entry["price_per_share"]),
                    status=status,
                )
                created += 1
        except (LedgerError, ValueError) as e:
            print(f"Error creating listing {entry['id']!r}: {e}", file=sys.stderr)
            return 1

    print(f"Listings created: {created}, already present: {skipped}")
    return 0


def cmd_set_listing_status(args: argparse.Namespace) -> int:
    """
    Move a listing to ``draft``, ``active`` or ``closed``.

    Returns:
        0 on success, 1 on error
    """
    from share_ledger.core.errors import LedgerError
    from share_ledger.db import listings_repo
    from share_ledger.db.connection import connection_scope

    try:
        with connection_scope(write=True) as conn:
            listing = listings_repo.set_listing_status(conn, args.listing_id, args.status)
    except LedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Listing {listing.id} is now {listing.status}.")
    return 0


def cmd_sweep_reservations(args: argparse.Namespace) -> int:
    """
    Release expired reservations and mark their pending orders failed.

    Returns:
        0 on success
    """
    service = _build_service()
    failed = service.expire_stale_reservations()
    for order in failed:
        print(f"Order {order.id} failed: reservation expired")
    print(f"Sweep complete: {len(failed)} orders failed.")
    return 0


def cmd_verify_journal(args: argparse.Namespace) -> int:
    """
    Verify the journal hash chain.

    Returns:
        0 when the chain verifies, 2 when tampering was found (appends are
        halted), 1 on invalid arguments
    """
    from share_ledger.core.errors import ValidationError

    service = _build_service()
    try:
        result = service.verify_journal(args.from_seq, args.to_seq)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.ok:
        print(f"Journal OK: {result.entries_checked} entries verified.")
        return 0
    print(
        f"TAMPER DETECTED at sequence {result.first_mismatch_seq}: {result.detail}\n"
        "Journal appends are halted until an operator runs clear-journal-halt.",
        file=sys.stderr,
    )
    return 2


def cmd_clear_journal_halt(args: argparse.Namespace) -> int:
    """
    Clear a recorded journal halt after a manual audit.

    Returns:
        0 on success, 1 if confirmation was not given
    """
    from share_ledger.core.identity import SYSTEM_ACTOR

    if not args.yes:
        print("Refusing to clear the journal halt without --yes.", file=sys.stderr)
        return 1
    service = _build_service()
    if service.clear_journal_halt(SYSTEM_ACTOR):
        print("Journal halt cleared.")
    else:
        print("No journal halt was recorded.")
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    print_config_summary()
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the API server.

    Initializes the database if needed, then serves the FastAPI app with
    uvicorn.

    Configuration Priority:
        1. CLI arguments (--host, --port)
        2. Environment variables (SHARES_HOST, SHARES_PORT)
        3. config/server.ini, then defaults

    Returns:
        0 on clean shutdown, 1 on error
    """
    from share_ledger.db.schema import init_database

    if not config.database.absolute_path.exists():
        print("Database not found. Initializing...")
        init_database()

    from share_ledger.api.server import start_server

    try:
        start_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all sub-commands."""
    parser = argparse.ArgumentParser(
        prog="share-ledger",
        description="Share Ledger - fractional share order ledger",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Initialize the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    seed_parser = subparsers.add_parser("seed-listings", help="Create listings from a YAML file")
    seed_parser.add_argument("path", help="Path to the listings YAML file")
    seed_parser.add_argument(
        "--activate", action="store_true", help="Create every listing as active"
    )
    seed_parser.set_defaults(func=cmd_seed_listings)

    status_parser = subparsers.add_parser(
        "set-listing-status", help="Change a listing's status"
    )
    status_parser.add_argument("listing_id", help="Listing id")
    status_parser.add_argument("status", choices=["draft", "active", "closed"])
    status_parser.set_defaults(func=cmd_set_listing_status)

    sweep_parser = subparsers.add_parser(
        "sweep-reservations", help="Release expired reservations"
    )
    sweep_parser.set_defaults(func=cmd_sweep_reservations)

    verify_parser = subparsers.add_parser("verify-journal", help="Verify the journal hash chain")
    verify_parser.add_argument("--from-seq", type=int, default=None, help="First sequence")
    verify_parser.add_argument("--to-seq", type=int, default=None, help="Last sequence")
    verify_parser.set_defaults(func=cmd_verify_journal)

    halt_parser = subparsers.add_parser(
        "clear-journal-halt", help="Resume journal appends after an audit"
    )
    halt_parser.add_argument("--yes", action="store_true", help="Confirm the audit is complete")
    halt_parser.set_defaults(func=cmd_clear_journal_halt)

    config_parser = subparsers.add_parser("show-config", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_show_config)

    run_parser = subparsers.add_parser("run", help="Start the API server")
    run_parser.add_argument("--host", type=str, default=None, help="Host to bind")
    run_parser.add_argument("--port", type=int, default=None, help="API server port")
    run_parser.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging(config.logging)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
