import threading
from contextlib import contextmanager


class ListingLocks:
    """
    One mutex per listing id, shared by every request in this process.

    Row locks (SELECT ... FOR UPDATE) serialize writers across processes on
    databases that support them; this covers threads of one process on
    databases that don't (SQLite).
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, listing_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(listing_id)
            if lock is None:
                lock = self._locks[listing_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, listing_id: int):
        lock = self._lock_for(listing_id)
        with lock:
            yield

    def __len__(self):
        return len(self._locks)
