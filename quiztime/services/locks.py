import logging
import threading
import weakref
from contextlib import contextmanager

from flask import current_app

from quiztime.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    Registry of re-entrant locks, one per key.

    Locks are held weakly so the registry does not grow with every user who
    ever played; a lock lives as long as someone holds or waits on it.
    """

    def __init__(self, timeout=5.0):
        self.timeout = timeout
        self._locks = weakref.WeakValueDictionary()
        self._registry_lock = threading.Lock()

    def _lock_for(self, key):
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = _NamedRLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key, timeout=None):
        lock = self._lock_for(key)
        wait = self.timeout if timeout is None else timeout
        if not lock.acquire(timeout=wait):
            logger.warning(f"Timed out after {wait}s waiting for lock {key}")
            raise StorageUnavailableError(
                f"Timed out waiting for {key}, please retry")
        try:
            yield
        finally:
            lock.release()


class _NamedRLock:
    # threading.RLock() returns a C object that cannot be weakly referenced

    def __init__(self):
        self._lock = threading.RLock()

    def acquire(self, timeout=-1):
        return self._lock.acquire(timeout=timeout)

    def release(self):
        self._lock.release()


def user_key(user_id):
    return f"user:{user_id}"


LEADERBOARD_KEY = 'leaderboard'


def get_locks():
    """Return the lock registry installed on the current app."""
    return current_app.extensions['quiztime_locks']
