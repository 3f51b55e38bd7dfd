"""Ledger package: hash-chain rules for the transaction journal.

The journal is the **authoritative record** of every monetary and share
movement. Rows live in the ``journal_entries`` table; this package defines
how each row is bound to the one before it.

Public surface
--------------
- :data:`GENESIS_HASH`: ``previous_hash`` of the first entry.
- :func:`canonical_payload`: deterministic serialisation of an entry.
- :func:`compute_entry_hash`: ``sha256(previous_hash || canonical_payload)``.
- :func:`find_first_mismatch`: recompute a range and report the first break.

Usage example
-------------
::

    from share_ledger.ledger import GENESIS_HASH, compute_entry_hash

    digest = compute_entry_hash(GENESIS_HASH, entry_fields)
"""

from share_ledger.ledger.chain import (
    GENESIS_HASH,
    HASHED_FIELDS,
    canonical_payload,
    compute_entry_hash,
    find_first_mismatch,
)

__all__ = [
    "GENESIS_HASH",
    "HASHED_FIELDS",
    "canonical_payload",
    "compute_entry_hash",
    "find_first_mismatch",
]
