"""Hash-chain primitives for the transaction journal.

Overview
--------
This module is pure: it computes and checks hashes but never touches the
database. :mod:`share_ledger.db.journal_repo` persists entries and calls in
here, and so do the tests.

Every journal entry stores two digests::

    previous_hash = hash of the entry before it (GENESIS_HASH for the first)
    hash          = sha256(previous_hash || canonical_json(entry fields))

``canonical_json`` is the entry body serialised with ``sort_keys=True`` and
compact separators, amounts rendered as fixed two-place decimal strings.
Because ``previous_hash`` is part of the digest input, editing any historical
field changes that entry's hash, and every later link then disagrees with
what was stored.

Hashed fields
-------------
``sequence``, ``entry_id``, ``order_id``, ``kind``, ``account``,
``direction``, ``amount``, ``memo``, ``created_at``. ``hash`` and
``previous_hash`` are never part of the body; ``previous_hash`` is prepended
to it instead.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from share_ledger.core.money import money_str

GENESIS_HASH = "0" * 64

HASHED_FIELDS = (
    "sequence",
    "entry_id",
    "order_id",
    "kind",
    "account",
    "direction",
    "amount",
    "memo",
    "created_at",
)


def canonical_payload(fields: Mapping[str, Any]) -> str:
    """Serialise the hashed fields of an entry deterministically.

    Args:
        fields: Mapping holding at least every name in :data:`HASHED_FIELDS`.
            Extra keys (``hash``, ``previous_hash``) are ignored.

    Returns:
        Compact JSON with sorted keys. ``amount`` is always rendered as a
        cent-quantised string so ``Decimal("5")`` and ``"5.00"`` agree.
    """
    body: dict[str, Any] = {}
    for name in HASHED_FIELDS:
        value = fields[name]
        if name == "amount":
            value = money_str(Decimal(value))
        elif name == "sequence":
            value = int(value)
        body[name] = value
    return json.dumps(body, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def compute_entry_hash(previous_hash: str, fields: Mapping[str, Any]) -> str:
    """Return the 64-character SHA-256 hex digest linking an entry to its predecessor.

    Example::

        first = compute_entry_hash(GENESIS_HASH, entry_fields)
        assert len(first) == 64
    """
    digest = hashlib.sha256()
    digest.update(previous_hash.encode("ascii"))
    digest.update(canonical_payload(fields).encode("utf-8"))
    return digest.hexdigest()


def find_first_mismatch(
    rows: Iterable[Mapping[str, Any]],
    anchor_hash: str,
) -> tuple[int | None, int, str | None]:
    """Walk ``rows`` in sequence order and report the first broken link.

    Two checks are made per row:

    1. ``previous_hash`` equals the hash of the row before it (``anchor_hash``
       for the first row in the range).
    2. ``hash`` equals the recomputed digest of the row.

    Args:
        rows: Journal rows ordered by ascending ``sequence``.
        anchor_hash: Stored hash of the entry immediately preceding the range,
            or :data:`GENESIS_HASH` when the range starts at the beginning.

    Returns:
        ``(first_mismatch_seq, entries_checked, detail)``. ``first_mismatch_seq``
        is ``None`` when the whole range verifies.
    """
    expected_previous = anchor_hash
    checked = 0
    for row in rows:
        checked += 1
        sequence = int(row["sequence"])
        if row["previous_hash"] != expected_previous:
            return (
                sequence,
                checked,
                f"previous_hash link broken: stored {row['previous_hash']!r}, "
                f"expected {expected_previous!r}",
            )
        recomputed = compute_entry_hash(row["previous_hash"], row)
        if row["hash"] != recomputed:
            return (
                sequence,
                checked,
                f"hash mismatch: stored {row['hash']!r}, recomputed {recomputed!r}",
            )
        expected_previous = row["hash"]
    return None, checked, None
