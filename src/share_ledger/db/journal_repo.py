"""Transaction journal: append-only, hash-chained movement records.

Appends run on the caller's write connection. Because write scopes begin
with ``BEGIN IMMEDIATE``, only one appender at a time can read the chain
head, so ``sequence = head + 1`` and ``previous_hash = head.hash`` are always
computed from the true head. The UNIQUE constraints on ``sequence`` and
``previous_hash`` reject a fork even if that guarantee were ever bypassed.
Every append also records the new head in ``journal_head``; a tail that no
longer matches it fails verification and blocks further appends.

There is deliberately no update or delete function in this module; the
schema triggers reject both. Corrections are new reversing entries.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from decimal import Decimal

from share_ledger.core.errors import TamperDetected, ValidationError
from share_ledger.core.money import money_str
from share_ledger.db.constants import (
    CREDIT,
    DEBIT,
    JOURNAL_KINDS,
    page_bounds,
    utc_now_iso,
)
from share_ledger.db.errors import wraps_sqlite_errors
from share_ledger.db.types import JournalEntry, JournalHalt, VerificationResult
from share_ledger.ledger.chain import GENESIS_HASH, compute_entry_hash, find_first_mismatch

logger = logging.getLogger(__name__)


@wraps_sqlite_errors("journal.append", write=True)
def append(
    conn: sqlite3.Connection,
    *,
    order_id: str,
    kind: str,
    account: str,
    direction: str,
    amount: Decimal,
    memo: str = "",
    now: datetime | None = None,
) -> JournalEntry:
    """Append one entry to the end of the chain.

    Raises:
        ValidationError: On an unknown kind or direction, or a negative amount.
        TamperDetected: While an integrity halt is recorded, or when the last
            entry no longer matches the recorded chain head.
    """
    if kind not in JOURNAL_KINDS:
        raise ValidationError(f"Unknown journal entry kind {kind!r}")
    if direction not in (DEBIT, CREDIT):
        raise ValidationError(f"Unknown journal direction {direction!r}")
    if Decimal(amount) < 0:
        raise ValidationError("Journal amounts are unsigned; use the direction instead")

    halt = get_halt(conn)
    if halt is not None:
        raise TamperDetected(halt.sequence, "journal appends are halted pending audit")

    head = conn.execute(
        "SELECT sequence, hash FROM journal_entries ORDER BY sequence DESC LIMIT 1"
    ).fetchone()
    recorded = get_head(conn)
    actual = (int(head["sequence"]), head["hash"]) if head else None
    if recorded is not None and actual != recorded:
        raise TamperDetected(recorded[0], "last journal entry does not match the recorded head")
    previous_hash = head["hash"] if head else GENESIS_HASH
    sequence = int(head["sequence"]) + 1 if head else 1

    fields = {
        "sequence": sequence,
        "entry_id": uuid.uuid4().hex,
        "order_id": order_id,
        "kind": kind,
        "account": account,
        "direction": direction,
        "amount": money_str(amount),
        "memo": memo,
        "created_at": utc_now_iso(now),
    }
    entry_hash = compute_entry_hash(previous_hash, fields)

    conn.execute(
        """
        INSERT INTO journal_entries
            (sequence, entry_id, order_id, kind, account, direction, amount,
             memo, created_at, previous_hash, hash)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            fields["sequence"],
            fields["entry_id"],
            fields["order_id"],
            fields["kind"],
            fields["account"],
            fields["direction"],
            fields["amount"],
            fields["memo"],
            fields["created_at"],
            previous_hash,
            entry_hash,
        ),
    )
    conn.execute(
        """
        INSERT INTO journal_head (id, sequence, hash) VALUES (1, ?, ?)
        ON CONFLICT(id) DO UPDATE SET sequence = excluded.sequence, hash = excluded.hash
        """,
        (sequence, entry_hash),
    )
    logger.debug(
        "journal: appended #%d %s %s %s %s", sequence, kind, direction, account, fields["amount"]
    )
    return JournalEntry(
        sequence=sequence,
        entry_id=fields["entry_id"],
        order_id=order_id,
        kind=kind,
        account=account,
        direction=direction,
        amount=Decimal(fields["amount"]),
        memo=memo,
        created_at=fields["created_at"],
        previous_hash=previous_hash,
        hash=entry_hash,
    )


def append_pair(
    conn: sqlite3.Connection,
    *,
    order_id: str,
    kind: str,
    debit_account: str,
    credit_account: str,
    amount: Decimal,
    memo: str = "",
) -> tuple[JournalEntry, JournalEntry]:
    """Append the debit and credit legs of one movement, debit first."""
    debit = append(
        conn,
        order_id=order_id,
        kind=kind,
        account=debit_account,
        direction=DEBIT,
        amount=amount,
        memo=memo,
    )
    credit = append(
        conn,
        order_id=order_id,
        kind=kind,
        account=credit_account,
        direction=CREDIT,
        amount=amount,
        memo=memo,
    )
    return debit, credit


@wraps_sqlite_errors("journal.verify", write=False)
def verify(
    conn: sqlite3.Connection,
    from_seq: int | None = None,
    to_seq: int | None = None,
) -> VerificationResult:
    """Recompute the hash chain over ``[from_seq, to_seq]``.

    The range is anchored on the stored hash of the entry just before
    ``from_seq`` (or the genesis hash), so verifying a slice detects edits
    inside the slice as well as a broken link into it. A range that reaches
    the end of the chain is also checked against the recorded head, which
    catches entries removed from the tail. A range starting after the head
    has nothing to check and verifies.

    Returns:
        A :class:`VerificationResult`; ``first_mismatch_seq`` names the first
        entry whose stored hash or ``previous_hash`` disagrees.
    """
    start = 1 if from_seq is None else int(from_seq)
    if start < 1:
        raise ValidationError("from_seq must be >= 1")
    if to_seq is not None and int(to_seq) < start:
        raise ValidationError("to_seq must be >= from_seq")

    head = get_head(conn)
    head_sequence = head[0] if head else 0
    if start - 1 > head_sequence:
        return VerificationResult(
            ok=True,
            first_mismatch_seq=None,
            entries_checked=0,
            detail=f"range starts after the chain head ({head_sequence})",
        )

    anchor = GENESIS_HASH
    if start > 1:
        row = conn.execute(
            "SELECT hash FROM journal_entries WHERE sequence = ?", (start - 1,)
        ).fetchone()
        if row is None:
            return VerificationResult(
                ok=False,
                first_mismatch_seq=start - 1,
                entries_checked=0,
                detail=f"entry {start - 1} preceding the range is missing",
            )
        anchor = row["hash"]

    if to_seq is None:
        cursor = conn.execute(
            "SELECT * FROM journal_entries WHERE sequence >= ? ORDER BY sequence", (start,)
        )
    else:
        cursor = conn.execute(
            """
            SELECT * FROM journal_entries
            WHERE sequence BETWEEN ? AND ?
            ORDER BY sequence
            """,
            (start, int(to_seq)),
        )

    expected_sequence = start
    rows = []
    for row in cursor:
        if int(row["sequence"]) != expected_sequence:
            # A gap means an entry was removed out of band.
            return VerificationResult(
                ok=False,
                first_mismatch_seq=expected_sequence,
                entries_checked=len(rows),
                detail=f"entry {expected_sequence} is missing from the chain",
            )
        rows.append(row)
        expected_sequence += 1

    mismatch, checked, detail = find_first_mismatch(rows, anchor)
    if mismatch is None and (to_seq is None or int(to_seq) >= head_sequence):
        last_sequence = start - 1 + len(rows)
        last_hash = rows[-1]["hash"] if rows else anchor
        if last_sequence < head_sequence:
            mismatch = last_sequence + 1
            detail = f"entry {mismatch} is missing from the end of the chain"
        elif last_sequence > head_sequence:
            mismatch = head_sequence + 1
            detail = f"entry {mismatch} lies beyond the recorded chain head"
        elif head is not None and last_hash != head[1]:
            mismatch = head_sequence
            detail = f"entry {mismatch} does not match the recorded chain head"
    return VerificationResult(
        ok=mismatch is None,
        first_mismatch_seq=mismatch,
        entries_checked=checked,
        detail=detail,
    )


@wraps_sqlite_errors("journal.get_head", write=False)
def get_head(conn: sqlite3.Connection) -> tuple[int, str] | None:
    """Return ``(sequence, hash)`` recorded by the last append, if any."""
    row = conn.execute("SELECT sequence, hash FROM journal_head WHERE id = 1").fetchone()
    if row is None:
        return None
    return int(row["sequence"]), row["hash"]


@wraps_sqlite_errors("journal.get_halt", write=False)
def get_halt(conn: sqlite3.Connection) -> JournalHalt | None:
    """Return the recorded integrity halt, if any."""
    row = conn.execute("SELECT * FROM journal_halt WHERE id = 1").fetchone()
    if row is None:
        return None
    return JournalHalt(
        sequence=int(row["sequence"]), detail=row["detail"], recorded_at=row["recorded_at"]
    )


@wraps_sqlite_errors("journal.record_halt", write=True)
def record_halt(conn: sqlite3.Connection, sequence: int, detail: str | None) -> JournalHalt:
    """Stop further appends until an operator clears the halt.

    An existing halt is kept if it points at an earlier sequence.
    """
    existing = get_halt(conn)
    if existing is not None and existing.sequence <= sequence:
        return existing
    conn.execute(
        """
        INSERT INTO journal_halt (id, sequence, detail, recorded_at)
        VALUES (1, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            sequence = excluded.sequence,
            detail = excluded.detail,
            recorded_at = excluded.recorded_at
        """,
        (sequence, detail, utc_now_iso()),
    )
    halt = get_halt(conn)
    assert halt is not None
    return halt


@wraps_sqlite_errors("journal.clear_halt", write=True)
def clear_halt(conn: sqlite3.Connection) -> bool:
    """Remove the integrity halt. Returns True when one was present."""
    return conn.execute("DELETE FROM journal_halt WHERE id = 1").rowcount > 0


@wraps_sqlite_errors("journal.list_entries", write=False)
def list_entries(
    conn: sqlite3.Connection,
    *,
    order_id: str | None = None,
    account: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> list[JournalEntry]:
    """Return entries newest-first, filtered by order and/or account."""
    clauses: list[str] = []
    params: list[object] = []
    if order_id is not None:
        clauses.append("order_id = ?")
        params.append(order_id)
    if account is not None:
        clauses.append("account = ?")
        params.append(account)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    limit, offset = page_bounds(page, limit)
    rows = conn.execute(
        f"SELECT * FROM journal_entries {where} ORDER BY sequence DESC LIMIT ? OFFSET ?",  # nosec B608
        [*params, limit, offset],
    ).fetchall()
    return [JournalEntry.from_row(row) for row in rows]


@wraps_sqlite_errors("journal.count_entries", write=False)
def count_entries(conn: sqlite3.Connection, *, account: str | None = None) -> int:
    """Number of entries in the chain, optionally for one account."""
    if account is None:
        row = conn.execute("SELECT COUNT(*) FROM journal_entries").fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) FROM journal_entries WHERE account = ?", (account,)
        ).fetchone()
    return int(row[0])
