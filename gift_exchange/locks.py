from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class GroupLocks:
    """
    One mutex per group id.

    Mutating commands on the same group run one at a time inside this lock;
    commands on different groups never contend. The database row lock taken
    inside the transaction covers the multi-process case.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, group_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(group_id)
            if lock is None:
                lock = self._locks[group_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, group_id: str) -> Iterator[None]:
        lock = self._lock_for(group_id)
        with lock:
            yield

    def forget(self, group_id: str) -> None:
        with self._guard:
            self._locks.pop(group_id, None)
