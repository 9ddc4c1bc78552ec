from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class OrderLocks:
    """Per-order mutexes; an entry lives only while someone holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(order_id, threading.Lock())
            self._users[order_id] = self._users.get(order_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[order_id] -= 1
                if self._users[order_id] == 0:
                    del self._users[order_id]
                    del self._locks[order_id]


ORDER_LOCKS = OrderLocks()
