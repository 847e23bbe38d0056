#!/usr/bin/env python3
"""
Unit Tests for time and pricing utilities
"""

import unittest
import sys
from pathlib import Path
from datetime import date, datetime, timedelta
from decimal import Decimal

# Add the src directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from campus_parking.domain.exceptions import InvalidTimeFormat, InvalidWindow, InvalidRate
from campus_parking.domain.pricing import (
    normalize_interval, compute_base_cost, compute_overtime_cost,
    round_to_half_hour, hours_between, HOLD_DURATION, OVERTIME_MULTIPLIER
)


class TestNormalizeInterval(unittest.TestCase):
    """Unit tests for normalize_interval"""

    def test_combines_date_and_clock_strings(self):
        """Test a date plus HH:MM strings gives two instants on that date"""
        start, end = normalize_interval(date(2025, 3, 10), "09:00", "11:30")

        self.assertEqual(start, datetime(2025, 3, 10, 9, 0))
        self.assertEqual(end, datetime(2025, 3, 10, 11, 30))

    def test_accepts_iso_date_string_and_datetime(self):
        """Test the date may be given as ISO text or as a datetime"""
        from_text = normalize_interval("2025-03-10", "00:00", "23:59")
        from_datetime = normalize_interval(datetime(2025, 3, 10, 17, 45), "00:00", "23:59")

        self.assertEqual(from_text, from_datetime)
        self.assertEqual(from_text[1], datetime(2025, 3, 10, 23, 59))

    def test_rejects_malformed_clock_strings(self):
        """Test anything other than 24-hour HH:MM is rejected"""
        for bad in ["9:00", "24:00", "12:60", "12-30", "noon", "", "12:3"]:
            with self.subTest(clock=bad):
                with self.assertRaises(InvalidTimeFormat):
                    normalize_interval(date(2025, 3, 10), bad, "13:00")

    def test_rejects_bad_dates(self):
        """Test unparseable dates are rejected"""
        for bad in ["2025-13-01", "tomorrow", 20250310]:
            with self.subTest(date=bad):
                with self.assertRaises(InvalidTimeFormat):
                    normalize_interval(bad, "09:00", "10:00")

    def test_does_not_enforce_order(self):
        """Test an inverted window is returned as-is"""
        start, end = normalize_interval(date(2025, 3, 10), "11:00", "09:00")
        self.assertGreater(start, end)


class TestCosts(unittest.TestCase):
    """Unit tests for cost computations"""

    def setUp(self):
        self.start = datetime(2025, 3, 10, 9, 0)

    def test_base_cost_for_two_hours(self):
        """Test 2.50 per hour for 09:00 to 11:00 costs exactly 5.00"""
        cost = compute_base_cost(Decimal("2.50"), self.start, self.start + timedelta(hours=2))
        self.assertEqual(cost, Decimal("5.00"))

    def test_base_cost_accepts_float_rate_without_drift(self):
        """Test float rates are converted exactly"""
        cost = compute_base_cost(2.1, self.start, self.start + timedelta(hours=3))
        self.assertEqual(cost, Decimal("6.3"))

    def test_base_cost_is_linear_in_duration(self):
        """Test doubling the duration doubles the cost"""
        for minutes in [15, 30, 45, 90, 150, 240]:
            with self.subTest(minutes=minutes):
                single = compute_base_cost("3.75", self.start, self.start + timedelta(minutes=minutes))
                double = compute_base_cost("3.75", self.start, self.start + timedelta(minutes=2 * minutes))
                self.assertEqual(double, single * 2)

    def test_zero_length_window_costs_nothing(self):
        """Test an empty window is allowed and free"""
        self.assertEqual(compute_base_cost("2.50", self.start, self.start), Decimal("0"))

    def test_non_positive_rate_is_rejected(self):
        """Test zero and negative rates raise InvalidRate"""
        for rate in ["0", "-1.5", 0]:
            with self.subTest(rate=rate):
                with self.assertRaises(InvalidRate):
                    compute_base_cost(rate, self.start, self.start + timedelta(hours=1))

    def test_inverted_window_is_rejected(self):
        """Test end before start raises InvalidWindow"""
        with self.assertRaises(InvalidWindow):
            compute_base_cost("2.50", self.start, self.start - timedelta(minutes=1))

    def test_overtime_cost(self):
        """Test overtime is charged at one and a half times the rate"""
        self.assertEqual(OVERTIME_MULTIPLIER, Decimal("1.5"))
        self.assertEqual(compute_overtime_cost(Decimal("2.50"), Decimal("0.5")), Decimal("1.875"))
        self.assertEqual(compute_overtime_cost("4", "0"), Decimal("0"))

    def test_negative_overtime_is_rejected(self):
        """Test negative overtime hours raise InvalidWindow"""
        with self.assertRaises(InvalidWindow):
            compute_overtime_cost("2.50", "-0.25")


class TestHelpers(unittest.TestCase):
    """Unit tests for duration helpers"""

    def test_round_to_half_hour(self):
        """Test rounding up to half hours with a half-hour minimum"""
        cases = {
            "0": Decimal("0.5"),
            "0.2": Decimal("0.5"),
            "0.5": Decimal("0.5"),
            "0.51": Decimal("1"),
            "1": Decimal("1"),
            "2.26": Decimal("2.5"),
            "2.75": Decimal("3"),
        }
        for hours, expected in cases.items():
            with self.subTest(hours=hours):
                self.assertEqual(round_to_half_hour(hours), expected)

    def test_hours_between_is_exact(self):
        """Test durations are exact decimals"""
        start = datetime(2025, 3, 10, 9, 0)
        self.assertEqual(hours_between(start, start + timedelta(minutes=90)), Decimal("1.5"))
        self.assertEqual(hours_between(start, start + timedelta(minutes=45)), Decimal("0.75"))
        self.assertEqual(hours_between(start + timedelta(hours=1), start), Decimal("-1"))

    def test_hold_duration_is_five_minutes(self):
        self.assertEqual(HOLD_DURATION, timedelta(minutes=5))


if __name__ == '__main__':
    unittest.main()
