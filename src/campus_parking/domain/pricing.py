# File: src/campus_parking/domain/pricing.py
"""
Time and Pricing Utilities

This module contains the pure functions used by holds and settlement:
1. normalize_interval - turn a calendar date plus two HH:MM strings into instants
2. compute_base_cost - hourly rate times exact duration
3. compute_overtime_cost - hourly rate times overtime hours times 1.5
4. round_to_half_hour - rounding helper for display durations

All arithmetic is done in Decimal so that quoted prices survive storage
and settlement without float drift.
"""

from typing import Tuple, Union
from datetime import datetime, date, time, timedelta
from decimal import Decimal, ROUND_CEILING
import re

from .exceptions import InvalidTimeFormat, InvalidWindow, InvalidRate
from .models import timedelta_hours, to_decimal


HOLD_DURATION = timedelta(minutes=5)
OVERTIME_MULTIPLIER = Decimal('1.5')
MINIMUM_BILLABLE_HOURS = Decimal('0.5')

_CLOCK_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')

Number = Union[Decimal, float, int, str]


# ============================================================================
# TIME HELPERS
# ============================================================================

def parse_date(value: Union[date, datetime, str]) -> date:
    """Accept a date, a datetime or an ISO YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidTimeFormat(f"Invalid date: {value!r}", {"date": str(value)})


def parse_clock(value: str) -> time:
    """Parse a 24-hour HH:MM string"""
    match = _CLOCK_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        raise InvalidTimeFormat(f"Invalid time format: {value!r}, expected HH:MM", {"time": str(value)})
    return time(int(match.group(1)), int(match.group(2)))


def normalize_interval(
    booking_date: Union[date, datetime, str],
    start_clock: str,
    end_clock: str
) -> Tuple[datetime, datetime]:
    """
    Combine a date with start and end clock strings.
    start < end is not enforced here; callers check the window.
    """
    day = parse_date(booking_date)
    start = datetime.combine(day, parse_clock(start_clock))
    end = datetime.combine(day, parse_clock(end_clock))
    return start, end


def hours_between(start: datetime, end: datetime) -> Decimal:
    """Exact signed number of hours from start to end"""
    return timedelta_hours(end - start)


# ============================================================================
# PRICING
# ============================================================================

def compute_base_cost(hourly_rate: Number, start: datetime, end: datetime) -> Decimal:
    rate = to_decimal(hourly_rate)
    if rate <= 0:
        raise InvalidRate(f"Hourly rate must be positive: {rate}", {"hourly_rate": str(rate)})
    if end < start:
        raise InvalidWindow(
            "End time is before start time",
            {"start_time": start.isoformat(), "end_time": end.isoformat()}
        )
    return rate * hours_between(start, end)


def compute_overtime_cost(hourly_rate: Number, overtime_hours: Number) -> Decimal:
    hours = to_decimal(overtime_hours)
    if hours < 0:
        raise InvalidWindow(f"Overtime hours cannot be negative: {hours}")
    return to_decimal(hourly_rate) * hours * OVERTIME_MULTIPLIER


def round_to_half_hour(hours: Number) -> Decimal:
    """Round up to the next half hour, never below half an hour"""
    doubled = (to_decimal(hours) * 2).to_integral_value(rounding=ROUND_CEILING)
    return max(doubled / 2, MINIMUM_BILLABLE_HOURS)
