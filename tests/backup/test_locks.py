"""Tests for per-account import locks."""

import threading

import pytest

from plantcare.backup.exceptions import ImportInProgressError
from plantcare.backup.locks import AccountLockManager


class TestAccountLockManager:
    """Test mutual exclusion of imports per account."""

    def test_second_holder_is_rejected(self):
        """Test that a busy account fails fast."""
        locks = AccountLockManager()

        with locks.hold(1):
            assert locks.is_locked(1) is True
            with pytest.raises(ImportInProgressError):
                with locks.hold(1):
                    pass

    def test_accounts_are_independent(self):
        """Test that different accounts do not block each other."""
        locks = AccountLockManager()

        with locks.hold(1):
            with locks.hold(2):
                assert locks.is_locked(2) is True

    def test_released_after_block(self):
        """Test that the lock is freed and forgotten when the block exits."""
        locks = AccountLockManager()

        with locks.hold(1):
            pass

        assert locks.is_locked(1) is False
        assert locks._locks == {}
        assert locks._lock_count == {}

    def test_released_on_error(self):
        """Test that an exception inside the block releases the lock."""
        locks = AccountLockManager()

        with pytest.raises(RuntimeError):
            with locks.hold(1):
                raise RuntimeError("boom")

        with locks.hold(1):
            assert locks.is_locked(1) is True

    def test_rejected_attempt_keeps_holder(self):
        """Test that a failed attempt does not release someone else's lock."""
        locks = AccountLockManager()

        with locks.hold(1):
            with pytest.raises(ImportInProgressError):
                with locks.hold(1):
                    pass
            assert locks.is_locked(1) is True

    def test_waits_with_timeout(self):
        """Test that a waiting caller gets the lock once it is released."""
        locks = AccountLockManager()
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(1):
                acquired.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(timeout=5)

        release.set()
        with locks.hold(1, timeout=5):
            assert locks.is_locked(1) is True

        thread.join(timeout=5)
