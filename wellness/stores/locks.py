from contextlib import contextmanager
from threading import Lock

from wellness.scheduling.errors import StoreTimeoutError


class CounselorLockRegistry:
    """One in-process lock per counselor, shared by every store instance."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._guard = Lock()
        self._locks: dict[int, Lock] = {}

    def _lock_for(self, counselor_id: int) -> Lock:
        with self._guard:
            lock = self._locks.get(counselor_id)
            if lock is None:
                lock = Lock()
                self._locks[counselor_id] = lock
            return lock

    @contextmanager
    def hold(self, counselor_id: int):
        lock = self._lock_for(counselor_id)
        if not lock.acquire(timeout=self.timeout_seconds):
            raise StoreTimeoutError(
                f'Timed out after {self.timeout_seconds}s waiting for counselor {counselor_id}'
            )
        try:
            yield
        finally:
            lock.release()
