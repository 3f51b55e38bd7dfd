"""In-process keyed locks.

SQLite serialises writers, but an order's lifecycle spans several
transactions with a payment call between them. Holding the order's lock for
the whole lifecycle stops a cancel and a settle of the same order from
interleaving inside one process.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    """A lock per key, created on first use and dropped once unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Block until ``key`` is free, then hold it for the ``with`` body.

        Re-entrant for the owning thread, so a cancel that delegates to a
        helper taking the same key does not deadlock.
        """
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
