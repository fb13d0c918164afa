"""Per-account locking for import runs.

At most one import may run for an account at a time. Locks live in process
memory and are dropped once no caller holds or waits on them.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager

from plantcare.backup.exceptions import ImportInProgressError

logger = logging.getLogger(__name__)


class AccountLockManager:
    """Reference-counted mutexes keyed by user ID."""

    def __init__(self):
        self._locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._lock_count: dict[int, int] = defaultdict(int)
        self._access_lock = threading.Lock()

    @contextmanager
    def hold(self, user_id: int, timeout: float = 0) -> Iterator[None]:
        """Hold the lock for an account for the duration of the block.

        Args:
            user_id: Account to lock.
            timeout: Seconds to wait for a busy lock; 0 fails immediately.

        Raises:
            ImportInProgressError: If the lock could not be acquired.
        """
        with self._access_lock:
            lock = self._locks[user_id]
            self._lock_count[user_id] += 1

        try:
            acquired = lock.acquire(timeout=timeout) if timeout > 0 else lock.acquire(False)
            if not acquired:
                logger.warning(f"Rejected concurrent import for user {user_id}")
                raise ImportInProgressError(
                    "Another import is already running for this account. "
                    "Wait for it to finish and try again."
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._access_lock:
                self._lock_count[user_id] -= 1
                if self._lock_count[user_id] == 0:
                    self._locks.pop(user_id, None)
                    self._lock_count.pop(user_id, None)

    def is_locked(self, user_id: int) -> bool:
        with self._access_lock:
            lock = self._locks.get(user_id)
            return lock is not None and lock.locked()


account_locks = AccountLockManager()
