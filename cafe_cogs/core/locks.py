"""Per-key mutual exclusion for branch stock rows.

Every write to a (branch_id, raw_item_id) row goes through ``stock_locks`` so
two orders consuming the same ingredient in the same branch cannot both read
a stale quantity. Multi-key operations (transfers) acquire their keys in
sorted order.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, Iterator


class KeyedLock:
    """A registry of re-entrant locks, one per key, created on demand.

    Entries are reference counted and dropped when their last holder
    releases them, so keys that are used once (order ids) do not accumulate.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, list] = {}  # key -> [RLock, holders]

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]) -> Iterator[None]:
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                lock.acquire()
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        return len(self._locks)


stock_locks = KeyedLock()


def stock_key(branch_id: str, raw_item_id: int) -> tuple:
    return (str(branch_id), int(raw_item_id))
