"""
RunGuard - at most one in-flight run per (app, env).

The busy set is the only state shared by concurrently executing runs,
so every read-modify-write on it happens under a lock.
"""

import threading

RunKey = tuple[str, str]


class RunGuard:
    """In-memory slot tracker for (app, env) pairs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._busy: set[RunKey] = set()

    def try_acquire(self, key: RunKey) -> bool:
        """
        Mark key busy if it is free.

        Returns:
            True if the slot was free and is now held by the caller,
            False if another run already holds it
        """
        with self._lock:
            if key in self._busy:
                return False
            self._busy.add(key)
            return True

    def release(self, key: RunKey) -> None:
        """Free the slot. Releasing a free slot is a no-op."""
        with self._lock:
            self._busy.discard(key)

    def is_running(self, key: RunKey) -> bool:
        with self._lock:
            return key in self._busy

    def active(self) -> list[RunKey]:
        """Snapshot of currently held slots."""
        with self._lock:
            return sorted(self._busy)
