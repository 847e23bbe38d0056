#!/usr/bin/env python3
"""
Integration Tests for the booking lifecycle

These tests wire the services through ServiceFactory and verify:
1. Hold, confirm and checkout against SQLite storage
2. Cancellation freeing the spot for another user
3. Admin dashboard over bookings written by the booking service
4. Exactly one winner when several threads hold the same spot
"""

import threading
import unittest
import sys
from pathlib import Path
from datetime import date, datetime, timedelta
from decimal import Decimal

# Add the src directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from campus_parking.application.dtos import ParkingLotCreateDTO
from campus_parking.config import Settings
from campus_parking.domain.exceptions import Expired, SpotUnavailable
from campus_parking.domain.models import BookingStatus, User
from campus_parking.infrastructure.factories import ServiceFactory
from campus_parking.infrastructure.messaging import EventType, RecordingEventHandler


DAY = date(2025, 3, 10)


class FakeClock:

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestBookingLifecycle(unittest.TestCase):
    """End-to-end scenarios on the SQLAlchemy backend"""

    def setUp(self):
        self.clock = FakeClock(datetime(2025, 3, 10, 8, 0))
        settings = Settings(storage_backend="sqlalchemy", database_url="sqlite://")
        self.factory = ServiceFactory(settings, clock=self.clock)
        self.booking_service = self.factory.create_booking_service()
        self.admin_service = self.factory.create_admin_service()

        self.recorder = RecordingEventHandler()
        self.factory.event_bus.subscribe_all(self.recorder)

        self.lot = self.admin_service.add_parking_lot(
            ParkingLotCreateDTO(name="Engineering Lot", hourly_rate="2.50", total_spots=15)
        )
        users = self.factory.repositories.users
        users.add(User(id="alice", name="Alice", email="alice@example.edu"))
        users.add(User(id="bob", name="Bob", email="bob@example.edu"))

        self.payment = {"method": "card", "amount": "5.00", "reference": "TX-1"}

    def tearDown(self):
        self.factory.close()

    def test_hold_confirm_and_late_checkout(self):
        """Test the full happy path ending with a 30 minute late checkout"""
        spots = self.booking_service.get_available_spots(self.lot.id, DAY, "09:00", "11:00")
        self.assertEqual(len(spots), 15)

        hold = self.booking_service.create_hold("alice", self.lot.id, "1", DAY, "09:00", "11:00")
        self.assertEqual(hold.total_cost, Decimal("5.00"))

        self.clock.now += timedelta(minutes=4)
        self.booking_service.confirm(hold.id, self.payment)
        self.assertEqual(self.factory.repositories.users.get("alice").bookings, [hold.id])

        spots = self.booking_service.get_available_spots(self.lot.id, DAY, "10:00", "12:00")
        self.assertNotIn("1", [s.id for s in spots])

        self.clock.now = datetime(2025, 3, 10, 11, 30)
        result = self.booking_service.checkout(hold.id, "alice")

        self.assertEqual(result.final_cost, Decimal("6.875"))
        stored = self.booking_service.get_booking(hold.id)
        self.assertEqual(stored.status, BookingStatus.COMPLETED)
        self.assertEqual(stored.additional_cost, Decimal("1.875"))
        self.assertEqual(
            [e.event_type for e in self.recorder.events],
            [EventType.BOOKING_HELD, EventType.BOOKING_CONFIRMED,
             EventType.BOOKING_COMPLETED, EventType.SPOT_RELEASED]
        )

    def test_expired_hold_frees_the_spot(self):
        """Test an unconfirmed hold expires and another user can take the spot"""
        hold = self.booking_service.create_hold("alice", self.lot.id, "1", DAY, "09:00", "11:00")
        with self.assertRaises(SpotUnavailable):
            self.booking_service.create_hold("bob", self.lot.id, "1", DAY, "10:00", "12:00")

        self.clock.now += timedelta(minutes=6)

        with self.assertRaises(Expired):
            self.booking_service.confirm(hold.id, self.payment)
        second = self.booking_service.create_hold("bob", self.lot.id, "1", DAY, "10:00", "12:00")
        self.assertEqual(self.booking_service.sweep_expired_holds(), 1)
        self.assertEqual(self.booking_service.get_booking(second.id).user_id, "bob")

    def test_cancel_releases_spot(self):
        hold = self.booking_service.create_hold("alice", self.lot.id, "2", DAY, "09:00", "11:00")
        self.booking_service.confirm(hold.id, self.payment)

        self.clock.now = datetime(2025, 3, 10, 8, 30)
        self.booking_service.cancel(hold.id, "alice")

        retry = self.booking_service.create_hold("bob", self.lot.id, "2", DAY, "09:00", "11:00")
        self.assertEqual(retry.status, BookingStatus.TEMPORARY)
        self.assertEqual(self.booking_service.get_user_bookings("alice", "cancelled")[0].id, hold.id)

    def test_dashboard_reflects_confirmed_bookings(self):
        """Test eight confirmed spots out of fifteen read as 53 percent"""
        for spot in range(1, 9):
            hold = self.booking_service.create_hold("alice", self.lot.id, str(spot), DAY, "09:00", "11:00")
            self.booking_service.confirm(hold.id, self.payment)
        self.booking_service.create_hold("bob", self.lot.id, "9", DAY, "09:00", "11:00")

        dashboard = self.admin_service.get_dashboard_data()

        self.assertEqual(dashboard.total_bookings, 8)
        self.assertEqual(dashboard.total_revenue, Decimal("40.00"))
        self.assertEqual(dashboard.occupancy_rate, 53)
        self.assertEqual(dashboard.weekly_bookings[-1].count, 9)
        self.assertEqual(dashboard.parking_lots[0].today_revenue, Decimal("40.00"))

        report = self.admin_service.generate_report("usage", DAY, DAY)
        self.assertEqual(report.total_bookings, 9)
        self.assertEqual(report.top_users[0].name, "Alice")


class TestConcurrentHolds(unittest.TestCase):
    """Concurrent hold creation on one spot"""

    def test_exactly_one_hold_wins(self):
        """Test twenty racing holds on one spot produce a single booking"""
        clock = FakeClock(datetime(2025, 3, 10, 8, 0))
        factory = ServiceFactory(Settings(), clock=clock)
        service = factory.create_booking_service()
        lot = factory.create_admin_service().add_parking_lot(
            ParkingLotCreateDTO(name="Race Lot", hourly_rate="2.50", total_spots=3)
        )

        barrier = threading.Barrier(20)
        successes = []
        refusals = []
        errors = []

        def attempt(user_number):
            barrier.wait()
            try:
                booking = service.create_hold(f"user-{user_number}", lot.id, "1", DAY, "09:00", "11:00")
                successes.append(booking.id)
            except SpotUnavailable:
                refusals.append(user_number)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(refusals), 19)
        stored = factory.repositories.bookings.find_by_lot_and_date(lot.id, DAY)
        self.assertEqual([b.id for b in stored], successes)


if __name__ == '__main__':
    unittest.main()
