"""Tests for in-process keyed locks."""

import threading
import time

import pytest

from share_ledger.core.locks import KeyedLocks


@pytest.mark.unit
class TestKeyedLocks:
    def test_lock_is_dropped_after_use(self) -> None:
        locks = KeyedLocks()
        with locks.hold("order-1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant_for_the_owning_thread(self) -> None:
        locks = KeyedLocks()
        with locks.hold("order-1"):
            with locks.hold("order-1"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_same_key_serialises_threads(self) -> None:
        locks = KeyedLocks()
        active = 0
        peak = 0
        counter_lock = threading.Lock()

        def worker() -> None:
            nonlocal active, peak
            with locks.hold("order-1"):
                with counter_lock:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.01)
                with counter_lock:
                    active -= 1

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert peak == 1
        assert len(locks) == 0

    def test_different_keys_do_not_block(self) -> None:
        locks = KeyedLocks()
        entered = threading.Event()

        def other() -> None:
            with locks.hold("order-2"):
                entered.set()

        with locks.hold("order-1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=2)
            thread.join()

    def test_released_on_exception(self) -> None:
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("order-1"):
                raise RuntimeError("boom")
        assert len(locks) == 0
