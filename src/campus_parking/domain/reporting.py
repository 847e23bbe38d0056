# File: src/campus_parking/domain/reporting.py
"""
Aggregation and Reporting

Pure aggregations over lots and bookings used by the admin dashboard and
the revenue / occupancy / usage reports. Percentages are rounded half up
to whole numbers.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Booking, BookingStatus, ParkingLot


WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
TREND_DAYS = 7


@dataclass(frozen=True)
class LotOccupancy:
    """Value Object: occupancy of one lot"""
    lot_id: str
    name: str
    occupied_spots: int
    total_spots: int
    occupancy_rate: int


@dataclass(frozen=True)
class UsageSummary:
    """Value Object: who parks, when, and for how long"""
    total_bookings: int
    bookings_by_status: Dict[str, int]
    top_users: List[Tuple[str, int]]
    peak_hours: List[Tuple[int, int]]
    average_duration_hours: Decimal


@dataclass
class OccupancyReport:
    average_occupancy_rate: int
    by_lot: Dict[str, int] = field(default_factory=dict)
    by_date: Dict[str, int] = field(default_factory=dict)


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, rounded half up; 0 for an empty whole"""
    if not whole:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _confirmed(bookings: Iterable[Booking]) -> List[Booking]:
    return [b for b in bookings if b.status == BookingStatus.CONFIRMED]


def _payment_amount(booking: Booking) -> Decimal:
    if booking.payment_details is None:
        return Decimal('0')
    return booking.payment_details.amount


# ============================================================================
# OCCUPANCY
# ============================================================================

def occupancy_by_lot(lots: Iterable[ParkingLot], bookings_today: Iterable[Booking]) -> List[LotOccupancy]:
    occupied: Dict[str, set] = defaultdict(set)
    for booking in _confirmed(bookings_today):
        occupied[booking.lot_id].add(booking.spot_id)

    rows = []
    for lot in lots:
        count = len(occupied.get(lot.id, ()))
        rows.append(LotOccupancy(
            lot_id=lot.id,
            name=lot.name,
            occupied_spots=count,
            total_spots=lot.total_spots,
            occupancy_rate=percent(count, lot.total_spots)
        ))
    return rows


def overall_occupancy_rate(rows: Iterable[LotOccupancy]) -> int:
    rows = list(rows)
    occupied = sum(row.occupied_spots for row in rows)
    total = sum(row.total_spots for row in rows)
    return percent(occupied, total)


def occupancy_report(
    lots: Sequence[ParkingLot],
    bookings: Iterable[Booking],
    start: date,
    end: date
) -> OccupancyReport:
    """
    Daily occupancy between start and end inclusive.

    by_date holds the overall rate for each day, by_lot the average of each
    lot's daily rate, and the headline figure is the mean of the daily rates.
    """
    by_day: Dict[date, List[Booking]] = defaultdict(list)
    for booking in _confirmed(bookings):
        by_day[booking.booking_date].append(booking)

    by_date: Dict[str, int] = {}
    lot_rates: Dict[str, List[int]] = defaultdict(list)
    day = start
    while day <= end:
        rows = occupancy_by_lot(lots, by_day.get(day, []))
        by_date[day.isoformat()] = overall_occupancy_rate(rows)
        for row in rows:
            lot_rates[row.lot_id].append(row.occupancy_rate)
        day += timedelta(days=1)

    def _mean(values: List[int]) -> int:
        return percent(sum(values), len(values) * 100) if values else 0

    return OccupancyReport(
        average_occupancy_rate=_mean(list(by_date.values())),
        by_lot={lot_id: _mean(rates) for lot_id, rates in lot_rates.items()},
        by_date=by_date
    )


# ============================================================================
# REVENUE
# ============================================================================

def total_revenue(bookings: Iterable[Booking]) -> Decimal:
    """Sum of payment amounts over confirmed bookings"""
    return sum((_payment_amount(b) for b in _confirmed(bookings)), Decimal('0'))


def revenue_by_lot(bookings: Iterable[Booking]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: Decimal('0'))
    for booking in _confirmed(bookings):
        totals[booking.lot_id] += _payment_amount(booking)
    return dict(totals)


def revenue_by_date(bookings: Iterable[Booking]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: Decimal('0'))
    for booking in _confirmed(bookings):
        totals[booking.booking_date.isoformat()] += _payment_amount(booking)
    return dict(sorted(totals.items()))


# ============================================================================
# TRENDS AND USAGE
# ============================================================================

def _trend_days(today: date) -> List[date]:
    return [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]


def weekly_booking_counts(bookings: Iterable[Booking], today: date) -> List[int]:
    """Bookings created on each of the 7 days ending today, oldest first"""
    created = Counter(b.created_at.date() for b in bookings if b.created_at is not None)
    return [created.get(day, 0) for day in _trend_days(today)]


def weekly_booking_trend(bookings: Iterable[Booking], today: date) -> List[Tuple[str, int]]:
    counts = weekly_booking_counts(bookings, today)
    labels = [WEEKDAY_LABELS[day.weekday()] for day in _trend_days(today)]
    return list(zip(labels, counts))


def usage_summary(bookings: Iterable[Booking], top_n: int = 5) -> UsageSummary:
    bookings = list(bookings)
    by_status = Counter(b.status.value for b in bookings)
    active = [b for b in bookings if b.status != BookingStatus.CANCELLED]

    users = Counter(b.user_id for b in active)
    hours = Counter(b.start_time.hour for b in active)
    durations = [b.duration for b in active if b.duration is not None]
    average: Optional[Decimal] = None
    if durations:
        average = (sum(durations, Decimal('0')) / len(durations)).quantize(
            Decimal('0.01'), rounding=ROUND_HALF_UP
        )

    return UsageSummary(
        total_bookings=len(bookings),
        bookings_by_status=dict(by_status),
        top_users=users.most_common(top_n),
        peak_hours=hours.most_common(top_n),
        average_duration_hours=average if average is not None else Decimal('0')
    )
