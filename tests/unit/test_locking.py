#!/usr/bin/env python3
"""
Unit Tests for hold guards
"""

import threading
import time
import unittest
import sys
from pathlib import Path
from datetime import date
from unittest.mock import MagicMock

# Add the src directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

import redis

from campus_parking.domain.exceptions import InvalidState
from campus_parking.infrastructure.locking import (
    LocalHoldGuard, NullHoldGuard, RedisHoldGuard, hold_key_name
)


KEY = ("lot-1", "A1", date(2025, 3, 10))


class TestHoldKeyName(unittest.TestCase):

    def test_key_name(self):
        self.assertEqual(hold_key_name(KEY), "campus_parking:hold:lot-1:A1:2025-03-10")


class TestLocalHoldGuard(unittest.TestCase):
    """Unit tests for the in-process guard"""

    def test_same_key_is_exclusive(self):
        """Test two threads never hold the same key at once"""
        guard = LocalHoldGuard()
        inside = []
        overlaps = []

        def worker():
            with guard.hold(KEY):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(overlaps, [])

    def test_different_keys_do_not_block(self):
        """Test holding one key leaves another key free"""
        guard = LocalHoldGuard()
        other = ("lot-1", "A2", date(2025, 3, 10))
        entered = threading.Event()

        def worker():
            with guard.hold(other):
                entered.set()

        with guard.hold(KEY):
            thread = threading.Thread(target=worker)
            thread.start()
            self.assertTrue(entered.wait(timeout=1))
            thread.join()

    def test_lock_released_on_error(self):
        guard = LocalHoldGuard()

        with self.assertRaises(RuntimeError):
            with guard.hold(KEY):
                raise RuntimeError("boom")

        with guard.hold(KEY):
            pass

    def test_released_keys_are_forgotten(self):
        """Test per-key locks are dropped once nobody holds or waits for them"""
        guard = LocalHoldGuard()

        with guard.hold(KEY):
            self.assertEqual(guard.active_keys, 1)
        for day in range(1, 29):
            with guard.hold(("lot-1", "A1", date(2025, 2, day))):
                pass

        self.assertEqual(guard.active_keys, 0)

    def test_contended_key_is_forgotten_after_last_release(self):
        guard = LocalHoldGuard()
        threads = []

        def worker():
            with guard.hold(KEY):
                time.sleep(0.005)

        for _ in range(6):
            threads.append(threading.Thread(target=worker))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(guard.active_keys, 0)

    def test_null_guard_is_a_no_op(self):
        with NullHoldGuard().hold(KEY):
            with NullHoldGuard().hold(KEY):
                pass


class TestRedisHoldGuard(unittest.TestCase):
    """Unit tests for the redis-backed guard"""

    def setUp(self):
        self.client = MagicMock()
        self.lock = self.client.lock.return_value
        self.guard = RedisHoldGuard(client=self.client, lock_timeout=7, blocking_timeout=2)

    def test_acquires_and_releases_named_lock(self):
        self.lock.acquire.return_value = True

        with self.guard.hold(KEY):
            self.lock.release.assert_not_called()

        self.client.lock.assert_called_once_with(
            "campus_parking:hold:lot-1:A1:2025-03-10", timeout=7, blocking_timeout=2
        )
        self.lock.release.assert_called_once()

    def test_busy_lock_raises_invalid_state(self):
        """Test a lock that cannot be acquired in time fails the request"""
        self.lock.acquire.return_value = False
        body = MagicMock()

        with self.assertRaises(InvalidState):
            with self.guard.hold(KEY):
                body()

        body.assert_not_called()
        self.lock.release.assert_not_called()

    def test_expired_lock_release_is_logged(self):
        """Test a lock that timed out before release does not raise"""
        self.lock.acquire.return_value = True
        self.lock.release.side_effect = redis.exceptions.LockError("expired")

        with self.assertLogs("RedisHoldGuard", level="WARNING"):
            with self.guard.hold(KEY):
                pass


if __name__ == '__main__':
    unittest.main()
