# File: src/campus_parking/infrastructure/locking.py
"""
Hold guards

A hold guard serialises the availability check and the insert of a new
temporary hold for one (lot, spot, date). Three implementations:
1. NullHoldGuard - no exclusion, concurrent holds can both succeed
2. LocalHoldGuard - per-key threading locks, for a single process
3. RedisHoldGuard - redis locks, for several processes sharing one store
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, Optional, Tuple
import logging
import threading

import redis

from ..domain.exceptions import InvalidState


HoldKey = Tuple[str, str, date]


def hold_key_name(key: HoldKey, prefix: str = "campus_parking:hold") -> str:
    lot_id, spot_id, booking_date = key
    return f"{prefix}:{lot_id}:{spot_id}:{booking_date.isoformat()}"


class HoldGuard(ABC):
    """Mutual exclusion around the hold check-then-insert"""

    @abstractmethod
    @contextmanager
    def hold(self, key: HoldKey) -> Iterator[None]:
        pass


class NullHoldGuard(HoldGuard):

    @contextmanager
    def hold(self, key: HoldKey) -> Iterator[None]:
        yield


class LocalHoldGuard(HoldGuard):
    """
    Per-key locks held in this process.

    A key's lock lives only while some caller holds or waits for it.
    """

    def __init__(self):
        # key -> [lock, number of callers holding or waiting]
        self._locks: Dict[HoldKey, list] = {}
        self._registry_lock = threading.Lock()

    def _acquire_entry(self, key: HoldKey) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: HoldKey) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @property
    def active_keys(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, key: HoldKey) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)


class RedisHoldGuard(HoldGuard):
    """
    Distributed lock per key using redis-py's Lock.

    The lock expires after lock_timeout seconds so that a crashed holder
    cannot block a spot forever.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        client: Optional[redis.Redis] = None,
        lock_timeout: float = 10.0,
        blocking_timeout: float = 5.0
    ):
        self.redis_client = client or redis.Redis.from_url(redis_url)
        self.lock_timeout = lock_timeout
        self.blocking_timeout = blocking_timeout
        self._logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def hold(self, key: HoldKey) -> Iterator[None]:
        name = hold_key_name(key)
        lock = self.redis_client.lock(name, timeout=self.lock_timeout, blocking_timeout=self.blocking_timeout)
        if not lock.acquire():
            self._logger.warning(f"Could not acquire hold lock {name}")
            raise InvalidState("Spot is being reserved by another request", {"lock": name})
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError as e:
                self._logger.warning(f"Hold lock {name} expired before release: {e}")
