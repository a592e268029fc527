"""
============================================================================
Quantum Alpha Copy Trader
Keyed Locks - Per-key mutual exclusion
============================================================================

Thread Safety: One mutex per live key, created on demand and dropped when
the last holder releases it, so unrelated keys never contend and the
registry does not grow with the number of keys ever seen.

Example Usage:
    locks = KeyedLockRegistry("ledger-row")
    with locks.hold(trade_id):
        ...  # read-modify-write of one row

============================================================================
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List
import threading


class KeyedLockRegistry:
    """Registry of reference-counted mutexes keyed by string."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
