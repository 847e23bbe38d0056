#!/usr/bin/env python3
"""
Unit Tests for Domain Models

Tests for:
1. Value objects (TimeRange, Spot, PaymentDetails)
2. The booking status transition table
3. Entity validation and behaviour (ParkingLot, Booking, User)
"""

import unittest
import sys
from pathlib import Path
from datetime import date, datetime, timedelta
from decimal import Decimal

# Add the src directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from campus_parking.domain.exceptions import InvalidState, InvalidRate, InvalidWindow, BookingError
from campus_parking.domain.models import (
    TimeRange, Spot, PaymentDetails, BookingStatus, UserRole,
    ParkingLot, Booking, User, to_decimal
)


class TestTimeRange(unittest.TestCase):
    """Unit tests for TimeRange value object"""

    def setUp(self):
        self.nine = datetime(2025, 3, 10, 9, 0)

    def test_end_must_follow_start(self):
        """Test empty and inverted ranges are rejected"""
        with self.assertRaises(InvalidWindow):
            TimeRange(self.nine, self.nine)
        with self.assertRaises(InvalidWindow):
            TimeRange(self.nine, self.nine - timedelta(minutes=1))

    def test_duration_hours(self):
        time_range = TimeRange(self.nine, self.nine + timedelta(minutes=150))
        self.assertEqual(time_range.duration_hours, Decimal("2.5"))

    def test_half_open_overlap(self):
        """Test adjacent ranges do not overlap"""
        morning = TimeRange(self.nine, self.nine + timedelta(hours=2))
        adjacent = TimeRange(self.nine + timedelta(hours=2), self.nine + timedelta(hours=3))
        crossing = TimeRange(self.nine + timedelta(hours=1), self.nine + timedelta(hours=3))

        self.assertFalse(morning.overlaps(adjacent))
        self.assertFalse(adjacent.overlaps(morning))
        self.assertTrue(morning.overlaps(crossing))
        self.assertTrue(crossing.overlaps(morning))

    def test_contains(self):
        time_range = TimeRange(self.nine, self.nine + timedelta(hours=1))
        self.assertTrue(time_range.contains(self.nine))
        self.assertFalse(time_range.contains(self.nine + timedelta(hours=1)))


class TestValueObjects(unittest.TestCase):
    """Unit tests for Spot and PaymentDetails"""

    def test_spot_defaults_and_round_trip(self):
        spot = Spot.from_dict({"id": 7})
        self.assertEqual(spot, Spot("7", "Regular", False))
        self.assertEqual(Spot.from_dict(spot.to_dict()), spot)

    def test_spot_id_cannot_be_blank(self):
        with self.assertRaises(ValueError):
            Spot("  ")

    def test_payment_amount_is_exact_and_non_negative(self):
        """Test float amounts become exact decimals and negatives are refused"""
        payment = PaymentDetails(method="card", amount=0.1)
        self.assertEqual(payment.amount, Decimal("0.1"))

        with self.assertRaises(ValueError):
            PaymentDetails(method="card", amount="-1")

    def test_payment_keeps_extra_fields(self):
        """Test unknown payment fields survive serialization"""
        data = {
            "method": "card",
            "amount": "5.00",
            "timestamp": "2025-03-10T08:59:00",
            "reference": "TX-1",
            "last4": "4242"
        }

        payment = PaymentDetails.from_dict(data)

        self.assertEqual(payment.extra, {"last4": "4242"})
        self.assertEqual(payment.timestamp, datetime(2025, 3, 10, 8, 59))
        self.assertEqual(payment.to_dict(), data)


class TestBookingStatus(unittest.TestCase):
    """Unit tests for the lifecycle transition table"""

    def test_allowed_transitions(self):
        self.assertTrue(BookingStatus.TEMPORARY.can_transition_to(BookingStatus.CONFIRMED))
        self.assertTrue(BookingStatus.CONFIRMED.can_transition_to(BookingStatus.COMPLETED))
        self.assertTrue(BookingStatus.CONFIRMED.can_transition_to(BookingStatus.CANCELLED))

    def test_everything_else_is_refused(self):
        """Test every transition outside the table raises InvalidState"""
        allowed = {
            (BookingStatus.TEMPORARY, BookingStatus.CONFIRMED),
            (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
            (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        }
        for source in BookingStatus:
            for target in BookingStatus:
                if (source, target) in allowed:
                    continue
                with self.subTest(source=source, target=target):
                    with self.assertRaises(InvalidState):
                        source.ensure_transition(target)

    def test_terminal_states(self):
        self.assertTrue(BookingStatus.COMPLETED.is_terminal)
        self.assertTrue(BookingStatus.CANCELLED.is_terminal)
        self.assertFalse(BookingStatus.TEMPORARY.is_terminal)


class TestParkingLot(unittest.TestCase):
    """Unit tests for ParkingLot entity"""

    def test_valid_lot(self):
        lot = ParkingLot(name="North Lot", hourly_rate=2.5, spots=[Spot("1"), Spot("2")])

        self.assertEqual(lot.hourly_rate, Decimal("2.5"))
        self.assertEqual(lot.total_spots, 2)
        self.assertTrue(lot.has_spot("2"))
        self.assertIsNone(lot.get_spot("3"))
        self.assertTrue(lot.is_active)

    def test_validation(self):
        """Test invalid names, rates, coordinates and spot lists are rejected"""
        with self.assertRaises(ValueError):
            ParkingLot(name=" ", hourly_rate="2.5")
        with self.assertRaises(InvalidRate):
            ParkingLot(name="Lot", hourly_rate="-0.01")
        with self.assertRaises(ValueError):
            ParkingLot(name="Lot", hourly_rate="2.5", latitude=91)
        with self.assertRaises(ValueError):
            ParkingLot(name="Lot", hourly_rate="2.5", longitude=-181)
        with self.assertRaises(ValueError):
            ParkingLot(name="Lot", hourly_rate="2.5", total_spots=3, spots=[Spot("1")])
        with self.assertRaises(ValueError):
            ParkingLot(name="Lot", hourly_rate="2.5", spots=[Spot("1"), Spot("1")])

    def test_replace_spots_and_deactivate(self):
        lot = ParkingLot(name="Lot", hourly_rate="2.5", spots=[Spot("1")])

        lot.replace_spots([Spot("a"), Spot("b"), Spot("c")])
        lot.deactivate()

        self.assertEqual(lot.total_spots, 3)
        self.assertFalse(lot.is_active)
        self.assertEqual(lot.to_dict()["hourly_rate"], "2.5")


class TestBooking(unittest.TestCase):
    """Unit tests for Booking entity"""

    def setUp(self):
        self.now = datetime(2025, 3, 10, 8, 0)
        self.booking = Booking(
            user_id="user-1",
            lot_id="lot-1",
            spot_id="A1",
            booking_date=date(2025, 3, 10),
            start_time=datetime(2025, 3, 10, 9, 0),
            end_time=datetime(2025, 3, 10, 11, 0),
            hourly_rate="2.50",
            total_cost="5.00",
            created_at=self.now,
            expires_at=self.now + timedelta(minutes=5)
        )

    def test_defaults(self):
        self.assertEqual(self.booking.status, BookingStatus.TEMPORARY)
        self.assertEqual(self.booking.duration, Decimal("2"))
        self.assertEqual(self.booking.effective_hourly_rate, Decimal("2.50"))

    def test_hold_expiry(self):
        """Test a hold is live up to and including its expiry instant"""
        self.assertFalse(self.booking.is_expired(self.now + timedelta(minutes=5)))
        self.assertTrue(self.booking.is_expired(self.now + timedelta(minutes=5, seconds=1)))
        self.assertTrue(self.booking.blocks_spot(self.now))
        self.assertFalse(self.booking.blocks_spot(self.now + timedelta(minutes=6)))

    def test_confirm_clears_expiry(self):
        payment = PaymentDetails(method="card", amount="5.00")

        self.booking.confirm(payment, self.now + timedelta(minutes=1))

        self.assertEqual(self.booking.status, BookingStatus.CONFIRMED)
        self.assertIsNone(self.booking.expires_at)
        self.assertEqual(self.booking.payment_details, payment)
        self.assertTrue(self.booking.blocks_spot(self.now + timedelta(days=1)))

    def test_cancel_requires_confirmation(self):
        """Test a temporary hold cannot be cancelled directly"""
        with self.assertRaises(InvalidState):
            self.booking.cancel(self.now)

    def test_complete_records_settlement(self):
        self.booking.confirm(PaymentDetails(method="card", amount="5.00"), self.now)
        checkout_at = datetime(2025, 3, 10, 11, 30)

        self.booking.complete(checkout_at, Decimal("2.00"), Decimal("1.875"), Decimal("6.875"))

        self.assertEqual(self.booking.status, BookingStatus.COMPLETED)
        self.assertEqual(self.booking.final_cost, Decimal("6.875"))
        self.assertEqual(self.booking.updated_at, checkout_at)
        with self.assertRaises(InvalidState):
            self.booking.cancel(checkout_at)

    def test_to_dict(self):
        data = self.booking.to_dict()

        self.assertEqual(data["date"], "2025-03-10")
        self.assertEqual(data["status"], "temporary")
        self.assertEqual(data["total_cost"], "5.00")
        self.assertIsNone(data["payment_details"])

    def test_has_started_and_ownership(self):
        self.assertFalse(self.booking.has_started(datetime(2025, 3, 10, 9, 0)))
        self.assertTrue(self.booking.has_started(datetime(2025, 3, 10, 9, 1)))
        self.assertTrue(self.booking.is_owned_by("user-1"))
        self.assertFalse(self.booking.is_owned_by("user-2"))


class TestUser(unittest.TestCase):
    """Unit tests for User entity"""

    def test_add_booking_is_idempotent(self):
        user = User(name="Alice", email="alice@example.edu")

        self.assertTrue(user.add_booking("b-1"))
        self.assertFalse(user.add_booking("b-1"))
        self.assertEqual(user.bookings, ["b-1"])
        self.assertFalse(user.is_admin)

    def test_admin_role(self):
        admin = User(name="Root", email="root@example.edu", role=UserRole.ADMIN)
        self.assertTrue(admin.is_admin)
        self.assertEqual(admin.to_dict()["role"], "admin")


class TestErrors(unittest.TestCase):
    """Unit tests for error payloads"""

    def test_error_carries_code_and_details(self):
        error = InvalidState("nope", {"status": "completed"})
        data = error.to_dict()

        self.assertIsInstance(error, BookingError)
        self.assertEqual(data["error"], "nope")
        self.assertEqual(data["error_code"], "invalid_state")
        self.assertEqual(data["details"], {"status": "completed"})
        self.assertIsNone(to_decimal(None))


if __name__ == '__main__':
    unittest.main()
