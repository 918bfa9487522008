"""In-process reservation locks for the check-then-book gap.

Two calls asking for the same slot at the same moment would otherwise both
see it free and both create an event.  Holding a lock keyed by the window
(normalized to UTC) serialises them, so the second caller's availability
check sees the first caller's event.  Locks only protect requests inside
one process.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from receptionist.models import TimeWindow


class SlotReservations:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        # window key → (lock, number of holders or waiters)
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, window: TimeWindow) -> Iterator[None]:
        key = window.key()
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def active(self) -> int:
        """Number of windows currently held or waited on."""
        with self._guard:
            return len(self._locks)
