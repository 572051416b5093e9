"""
Per-key locks for serialising read-modify-write sequences in-process.

Different keys never block each other. Entries are reference counted and
removed once no thread holds or waits on them.
"""
from contextlib import contextmanager
import threading


class KeyedLock:
    """A registry of locks, one per hashable key."""

    def __init__(self):
        self._lock = threading.Lock()
        self._locks: dict = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key):
        with self._lock:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)


# Serialises analytics updates per (user_id, quiz_id)
analytics_locks = KeyedLock()
