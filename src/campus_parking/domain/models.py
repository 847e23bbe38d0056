# File: src/campus_parking/domain/models.py
"""
Domain Models for the Campus Parking booking core

This module contains:
1. Value Objects: TimeRange, Spot, PaymentDetails
2. Enums: BookingStatus (with its transition table), UserRole
3. Entities: ParkingLot, Booking, User

Entities validate themselves on construction. Booking state changes go
through BookingStatus.ensure_transition so that illegal transitions are
rejected in one place.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Callable, Union
from datetime import datetime, date, timedelta
from decimal import Decimal
from enum import Enum
import uuid

from .exceptions import InvalidState, InvalidRate, InvalidWindow


Clock = Callable[[], datetime]

SECONDS_PER_HOUR = Decimal(3600)


def to_decimal(value: Union[Decimal, float, int, str, None]) -> Optional[Decimal]:
    """Convert a number to Decimal without binary float artefacts"""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def timedelta_hours(delta: timedelta) -> Decimal:
    """Exact length of a timedelta in hours"""
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1000000)
    return seconds / SECONDS_PER_HOUR


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: half-open interval [start_time, end_time)
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise InvalidWindow(
                "End time must be after start time",
                {"start_time": self.start_time.isoformat(), "end_time": self.end_time.isoformat()}
            )

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_hours(self) -> Decimal:
        """Exact duration in hours"""
        return timedelta_hours(self.duration)

    def overlaps(self, other: 'TimeRange') -> bool:
        """Two half-open intervals overlap iff a0 < b1 and b0 < a1"""
        return self.start_time < other.end_time and other.start_time < self.end_time

    def contains(self, instant: datetime) -> bool:
        return self.start_time <= instant < self.end_time

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%H:%M")
        return f"{start_str} to {end_str} ({float(self.duration_hours):.1f} hours)"


@dataclass(frozen=True)
class Spot:
    """
    Value Object: a bookable space, identified by an id unique within its lot
    """
    id: str
    category: str = "Regular"
    accessibility: bool = False

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("Spot id cannot be empty")
        object.__setattr__(self, 'id', str(self.id).strip())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "accessibility": self.accessibility
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Spot':
        return cls(
            id=str(data["id"]),
            category=data.get("category", "Regular"),
            accessibility=bool(data.get("accessibility", False))
        )


@dataclass(frozen=True)
class PaymentDetails:
    """
    Value Object: payment record handed over by the payment collaborator.
    Stored verbatim, authenticity is not checked here.
    """
    method: str
    amount: Decimal
    timestamp: Optional[datetime] = None
    reference: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        amount = to_decimal(self.amount)
        if amount < Decimal('0'):
            raise ValueError("Payment amount cannot be negative")
        object.__setattr__(self, 'amount', amount)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation; the amount is kept as a string to stay exact"""
        data = dict(self.extra)
        data.update({
            "method": self.method,
            "amount": str(self.amount),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "reference": self.reference
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentDetails':
        known = {"method", "amount", "timestamp", "reference"}
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            method=data.get("method", "unknown"),
            amount=to_decimal(data.get("amount", 0)),
            timestamp=timestamp,
            reference=data.get("reference"),
            extra={k: v for k, v in data.items() if k not in known}
        )


# ============================================================================
# ENUMS
# ============================================================================

class BookingStatus(Enum):
    """
    Booking lifecycle states

    temporary -> confirmed -> completed
    confirmed -> cancelled
    An unconfirmed temporary booking simply expires; it has no exit state.
    """
    TEMPORARY = "temporary"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: 'BookingStatus') -> bool:
        return target in _TRANSITIONS[self]

    def ensure_transition(self, target: 'BookingStatus') -> None:
        """Single point where booking transitions are checked"""
        if not self.can_transition_to(target):
            raise InvalidState(
                f"Cannot move booking from {self.value} to {target.value}",
                {"current_status": self.value, "target_status": target.value}
            )

    def __str__(self) -> str:
        return self.value


_TRANSITIONS = {
    BookingStatus.TEMPORARY: frozenset({BookingStatus.CONFIRMED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class UserRole(Enum):
    USER = "user"
    ADMIN = "admin"


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class ParkingLot(Entity):
    """
    Entity: a named parking facility and its ordered list of spots
    """

    def __init__(
        self,
        name: str,
        hourly_rate: Union[Decimal, float, str],
        location: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
        total_spots: Optional[int] = None,
        spots: Optional[List[Spot]] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.location = location
        self.latitude = latitude
        self.longitude = longitude
        self.hourly_rate = to_decimal(hourly_rate)
        self.spots = list(spots or [])
        self.total_spots = len(self.spots) if total_spots is None else total_spots
        self.is_active = is_active
        self.created_at = created_at
        self.updated_at = updated_at
        self._validate()

    def _validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Parking lot name cannot be empty")

        if self.hourly_rate < Decimal('0'):
            raise InvalidRate(f"Hourly rate cannot be negative: {self.hourly_rate}")

        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude must be between -90 and 90: {self.latitude}")

        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude must be between -180 and 180: {self.longitude}")

        if self.total_spots < 0:
            raise ValueError("Total spot count cannot be negative")

        # Spot count must agree with a populated spot list
        if self.spots and self.total_spots != len(self.spots):
            raise ValueError(
                f"Total spot count ({self.total_spots}) does not match spot list ({len(self.spots)})"
            )

        spot_ids = [spot.id for spot in self.spots]
        if len(spot_ids) != len(set(spot_ids)):
            raise ValueError("Spot ids must be unique within a lot")

    def get_spot(self, spot_id: str) -> Optional[Spot]:
        for spot in self.spots:
            if spot.id == spot_id:
                return spot
        return None

    def has_spot(self, spot_id: str) -> bool:
        return self.get_spot(spot_id) is not None

    def replace_spots(self, spots: List[Spot]) -> None:
        self.spots = list(spots)
        self.total_spots = len(self.spots)
        self._validate()

    def deactivate(self) -> None:
        self.is_active = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "hourly_rate": str(self.hourly_rate),
            "total_spots": self.total_spots,
            "spots": [spot.to_dict() for spot in self.spots],
            "is_active": self.is_active
        }

    def __str__(self) -> str:
        return f"{self.name} ({self.total_spots} spots, {self.hourly_rate}/hr)"


class Booking(Entity):
    """
    Entity: a reservation of one spot for one time window

    The hourly rate is captured when the hold is created so that settlement
    never has to derive it back from total cost and duration.
    """

    def __init__(
        self,
        user_id: str,
        lot_id: str,
        spot_id: str,
        booking_date: date,
        start_time: datetime,
        end_time: datetime,
        hourly_rate: Union[Decimal, float, str, None],
        total_cost: Union[Decimal, float, str],
        status: BookingStatus = BookingStatus.TEMPORARY,
        created_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
        duration: Union[Decimal, float, str, None] = None,
        payment_details: Optional[PaymentDetails] = None,
        actual_end_time: Optional[datetime] = None,
        actual_duration: Union[Decimal, float, str, None] = None,
        additional_cost: Union[Decimal, float, str, None] = None,
        final_cost: Union[Decimal, float, str, None] = None,
        updated_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.user_id = user_id
        self.lot_id = lot_id
        self.spot_id = spot_id
        self.booking_date = booking_date
        self.time_range = TimeRange(start_time, end_time)
        self.hourly_rate = to_decimal(hourly_rate)
        self.total_cost = to_decimal(total_cost)
        self.status = status
        self.created_at = created_at
        self.expires_at = expires_at
        self.duration = to_decimal(duration) if duration is not None else self.time_range.duration_hours
        self.payment_details = payment_details
        self.actual_end_time = actual_end_time
        self.actual_duration = to_decimal(actual_duration)
        self.additional_cost = to_decimal(additional_cost)
        self.final_cost = to_decimal(final_cost)
        self.updated_at = updated_at

    @property
    def start_time(self) -> datetime:
        return self.time_range.start_time

    @property
    def end_time(self) -> datetime:
        return self.time_range.end_time

    @property
    def effective_hourly_rate(self) -> Decimal:
        """Stored rate, or total / duration for records written without one"""
        if self.hourly_rate is not None:
            return self.hourly_rate
        if not self.duration:
            return Decimal('0')
        return self.total_cost / self.duration

    def is_expired(self, now: datetime) -> bool:
        """A temporary hold past its expiry is treated as nonexistent"""
        return (
            self.status == BookingStatus.TEMPORARY
            and self.expires_at is not None
            and now > self.expires_at
        )

    def blocks_spot(self, now: datetime) -> bool:
        """Confirmed bookings and live holds occupy their spot"""
        if self.status == BookingStatus.CONFIRMED:
            return True
        return self.status == BookingStatus.TEMPORARY and not self.is_expired(now)

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    def has_started(self, now: datetime) -> bool:
        return now > self.start_time

    def _transition_to(self, target: BookingStatus, now: datetime) -> None:
        self.status.ensure_transition(target)
        self.status = target
        self.updated_at = now

    def confirm(self, payment_details: PaymentDetails, now: datetime) -> None:
        self._transition_to(BookingStatus.CONFIRMED, now)
        self.payment_details = payment_details
        self.expires_at = None

    def cancel(self, now: datetime) -> None:
        self._transition_to(BookingStatus.CANCELLED, now)

    def complete(
        self,
        actual_end_time: datetime,
        actual_duration: Decimal,
        additional_cost: Decimal,
        final_cost: Decimal
    ) -> None:
        self._transition_to(BookingStatus.COMPLETED, actual_end_time)
        self.actual_end_time = actual_end_time
        self.actual_duration = actual_duration
        self.additional_cost = additional_cost
        self.final_cost = final_cost

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        def _iso(value):
            return value.isoformat() if value else None

        def _str(value):
            return str(value) if value is not None else None

        return {
            "id": self.id,
            "user_id": self.user_id,
            "lot_id": self.lot_id,
            "spot_id": self.spot_id,
            "date": self.booking_date.isoformat(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "duration": _str(self.duration),
            "hourly_rate": _str(self.hourly_rate),
            "total_cost": _str(self.total_cost),
            "payment_details": self.payment_details.to_dict() if self.payment_details else None,
            "actual_end_time": _iso(self.actual_end_time),
            "actual_duration": _str(self.actual_duration),
            "additional_cost": _str(self.additional_cost),
            "final_cost": _str(self.final_cost),
            "updated_at": _iso(self.updated_at)
        }

    def __str__(self) -> str:
        return f"Booking {self.id} [{self.status.value}] spot {self.spot_id} @ {self.time_range}"


class User(Entity):
    """
    Entity: account record owned by the authentication collaborator.
    Only the bookings list is written by this package.
    """

    def __init__(
        self,
        name: str,
        email: str,
        role: UserRole = UserRole.USER,
        bookings: Optional[List[str]] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.email = email
        self.role = role
        self.bookings = list(bookings or [])

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def add_booking(self, booking_id: str) -> bool:
        """Append a booking id once; returns False when already present"""
        if booking_id in self.bookings:
            return False
        self.bookings.append(booking_id)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "bookings": list(self.bookings)
        }
