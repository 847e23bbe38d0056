# File: src/campus_parking/domain/availability.py
"""
Availability Calculator

A spot is available for a window when no blocking booking on that spot
overlaps the window. Blocking bookings are confirmed bookings and
temporary holds that have not yet expired. Intervals are half-open, so a
booking ending at 11:00 does not collide with one starting at 11:00.
"""

from typing import Iterable, List
from datetime import datetime

from .exceptions import InvalidWindow
from .models import Booking, ParkingLot, Spot, TimeRange


def _query_window(window_start: datetime, window_end: datetime) -> TimeRange:
    if window_end <= window_start:
        raise InvalidWindow(
            "Query window end must be after its start",
            {"start_time": window_start.isoformat(), "end_time": window_end.isoformat()}
        )
    return TimeRange(window_start, window_end)


def blocking_bookings(
    bookings: Iterable[Booking],
    spot_id: str,
    window_start: datetime,
    window_end: datetime,
    now: datetime
) -> List[Booking]:
    """Bookings on spot_id that block the window at instant now"""
    window = _query_window(window_start, window_end)
    return [
        booking for booking in bookings
        if booking.spot_id == spot_id
        and booking.blocks_spot(now)
        and booking.time_range.overlaps(window)
    ]


def available_spots(
    lot: ParkingLot,
    bookings_on_date: Iterable[Booking],
    window_start: datetime,
    window_end: datetime,
    now: datetime
) -> List[Spot]:
    """
    Spots of the lot free for the whole window, in lot order.

    Bookings for other lots are ignored.
    """
    window = _query_window(window_start, window_end)

    taken = set()
    for booking in bookings_on_date:
        if booking.lot_id != lot.id:
            continue
        if booking.blocks_spot(now) and booking.time_range.overlaps(window):
            taken.add(booking.spot_id)

    return [spot for spot in lot.spots if spot.id not in taken]
