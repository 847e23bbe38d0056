# File: src/campus_parking/infrastructure/factories.py
"""
Factory Pattern Implementation for the booking core

This module implements:
1. ParkingLotFactory - standard spot layouts and new lots
2. ServiceFactory - builds repositories, hold guard, event bus and the
   application services from Settings
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Union
import logging
import uuid

from ..config import Settings
from ..domain.models import ParkingLot, Spot
from .locking import HoldGuard, LocalHoldGuard, NullHoldGuard, RedisHoldGuard
from .messaging import EventBus, RedisEventForwarder
from .repositories import (
    Repositories, create_in_memory_repositories, create_mongo_repositories,
    create_sqlalchemy_repositories
)


PREMIUM_SPOT_COUNT = 5
HANDICAP_INTERVAL = 10


# ============================================================================
# DOMAIN OBJECT FACTORIES
# ============================================================================

class ParkingLotFactory:
    """Factory for creating ParkingLot domain objects"""

    @staticmethod
    def generate_spots(count: int) -> List[Spot]:
        """
        Standard layout: ids "1".."count", the first five spots Premium,
        every tenth spot Handicap and accessible, the rest Regular.
        """
        if count < 0:
            raise ValueError("Spot count cannot be negative")

        spots = []
        for number in range(1, count + 1):
            if number <= PREMIUM_SPOT_COUNT:
                spot = Spot(id=str(number), category="Premium")
            elif number % HANDICAP_INTERVAL == 0:
                spot = Spot(id=str(number), category="Handicap", accessibility=True)
            else:
                spot = Spot(id=str(number), category="Regular")
            spots.append(spot)
        return spots

    @staticmethod
    def create_lot(
        name: str,
        hourly_rate: Union[Decimal, float, str],
        spot_count: Optional[int] = None,
        spots: Optional[List[Spot]] = None,
        location: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
        is_active: bool = True,
        now: Optional[datetime] = None
    ) -> ParkingLot:
        """Create a lot from an explicit spot list or a generated layout"""
        if spots is None:
            spots = ParkingLotFactory.generate_spots(spot_count or 0)

        now = now or datetime.now()
        return ParkingLot(
            id=str(uuid.uuid4()),
            name=name.strip(),
            hourly_rate=hourly_rate,
            location=location,
            latitude=latitude,
            longitude=longitude,
            total_spots=len(spots),
            spots=spots,
            is_active=is_active,
            created_at=now,
            updated_at=now
        )


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class ServiceFactory:
    """
    Factory for creating application services from Settings

    One factory owns one store: services created from the same factory
    share the repositories, hold guard and event bus.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Callable[[], datetime]] = None):
        self.settings = settings or Settings()
        self.clock = clock
        self._repositories: Optional[Repositories] = None
        self._hold_guard: Optional[HoldGuard] = None
        self._event_bus: Optional[EventBus] = None
        self._logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def create_repositories(settings: Settings) -> Repositories:
        backend = settings.storage_backend
        if backend == "memory":
            return create_in_memory_repositories()
        if backend == "sqlalchemy":
            return create_sqlalchemy_repositories(settings.database_url)
        if backend == "mongodb":
            return create_mongo_repositories(settings.mongo_url, settings.mongo_database)
        raise ValueError(f"Unknown storage backend: {backend}")

    @staticmethod
    def create_hold_guard(settings: Settings) -> HoldGuard:
        if settings.hold_guard == "redis":
            return RedisHoldGuard(settings.redis_url)
        if settings.hold_guard == "local":
            return LocalHoldGuard()
        return NullHoldGuard()

    @staticmethod
    def create_event_bus(settings: Settings) -> EventBus:
        event_bus = EventBus()
        if settings.event_channel and settings.notifications_enabled:
            event_bus.subscribe_all(RedisEventForwarder(settings.event_channel, settings.redis_url))
        return event_bus

    @property
    def repositories(self) -> Repositories:
        if self._repositories is None:
            self._logger.info(f"Opening {self.settings.storage_backend} store")
            self._repositories = self.create_repositories(self.settings)
        return self._repositories

    @property
    def hold_guard(self) -> HoldGuard:
        if self._hold_guard is None:
            self._hold_guard = self.create_hold_guard(self.settings)
        return self._hold_guard

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = self.create_event_bus(self.settings)
        return self._event_bus

    def create_booking_service(self) -> 'BookingService':
        """Create BookingService with dependencies"""
        from ..application.booking_service import BookingService

        return BookingService(
            repositories=self.repositories,
            clock=self.clock,
            hold_guard=self.hold_guard,
            event_bus=self.event_bus,
            hold_minutes=self.settings.hold_minutes,
            enforce_hold_uniqueness=self.settings.enforce_hold_uniqueness
        )

    def create_admin_service(self) -> 'AdminService':
        """Create AdminService with dependencies"""
        from ..application.admin_service import AdminService

        return AdminService(
            repositories=self.repositories,
            clock=self.clock,
            recent_limit=self.settings.dashboard_recent_limit,
            default_hourly_rate=self.settings.default_hourly_rate
        )

    def close(self) -> None:
        if self._repositories is not None:
            self._repositories.close()
            self._repositories = None
