"""
Per-key critical sections
Serializes read-modify-write sequences on one (item, location) or
(order, stage) key while leaving other keys free to proceed
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLockRegistry:
    """Hands out one re-entrant lock per key"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


# Process wide registries; the ledger, bins and reposting share the stock one
stock_key_locks = KeyedLockRegistry()
stage_key_locks = KeyedLockRegistry()
