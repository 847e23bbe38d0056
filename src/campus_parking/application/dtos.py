# File: src/campus_parking/application/dtos.py
"""
Data Transfer Objects (DTOs) for the booking core

This module defines DTOs for data transfer between layers:
1. Input DTOs - payment details, lot create/update requests, booking queries
2. Output DTOs - lots, bookings, checkout results, dashboard and reports

DTO Principles:
- Validation at creation
- No business logic, only data
- Serialization support through pydantic (decimals serialize as strings)
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Dict, List, Optional, Any
import json

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..domain.models import (
    Booking, BookingStatus, ParkingLot, PaymentDetails, Spot, User, UserRole
)


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to a JSON-compatible dictionary"""
        return self.model_dump(mode="json", exclude_none=exclude_none, **kwargs)

    def to_json(self, **kwargs) -> str:
        """Convert DTO to JSON string"""
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> 'BaseDTO':
        """Create DTO from JSON string"""
        return cls(**json.loads(json_str))


# ============================================================================
# PAYMENT DTOs
# ============================================================================

class PaymentDetailsDTO(BaseDTO):
    """Payment record handed over by the payment collaborator"""
    model_config = ConfigDict(extra='allow')

    method: str = Field(min_length=1, description="Payment method")
    amount: Decimal = Field(ge=0, description="Amount paid")
    timestamp: Optional[datetime] = Field(default=None, description="Payment timestamp")
    reference: Optional[str] = Field(default=None, description="Provider reference")

    def to_domain(self) -> PaymentDetails:
        extra = dict(self.model_extra or {})
        return PaymentDetails(
            method=self.method,
            amount=self.amount,
            timestamp=self.timestamp,
            reference=self.reference,
            extra=extra
        )


# ============================================================================
# PARKING LOT DTOs
# ============================================================================

class SpotDTO(BaseDTO):
    id: str = Field(min_length=1)
    category: str = "Regular"
    accessibility: bool = False

    def to_domain(self) -> Spot:
        return Spot(id=self.id, category=self.category, accessibility=self.accessibility)


class ParkingLotCreateDTO(BaseDTO):
    """DTO for creating a parking lot"""
    name: str = Field(min_length=1, max_length=200, description="Parking lot name")
    location: str = Field(default="", description="Free text location")
    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)
    hourly_rate: Optional[Decimal] = Field(default=None, gt=0, description="Price per hour, system default when unset")
    total_spots: int = Field(ge=0, description="Number of spots to generate when no list is given")
    spots: Optional[List[SpotDTO]] = Field(default=None, description="Explicit spot list")
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Parking lot name cannot be blank")
        return v

    @model_validator(mode='after')
    def validate_spot_count(self) -> 'ParkingLotCreateDTO':
        """Explicit spot list must agree with the spot count"""
        if self.spots is not None and len(self.spots) != self.total_spots:
            raise ValueError(
                f"Spot list length ({len(self.spots)}) does not match total spots ({self.total_spots})"
            )
        return self


class ParkingLotUpdateDTO(BaseDTO):
    """DTO for updating a parking lot; unset fields keep their value"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    hourly_rate: Optional[Decimal] = Field(default=None, gt=0)
    total_spots: Optional[int] = Field(default=None, ge=0)
    spots: Optional[List[SpotDTO]] = None
    is_active: Optional[bool] = None


class ParkingLotDTO(BaseDTO):
    """Parking lot as shown to clients"""
    id: str
    name: str
    location: str
    latitude: float
    longitude: float
    hourly_rate: Decimal
    total_spots: int
    spots: List[SpotDTO]
    is_active: bool
    today_revenue: Optional[Decimal] = None

    @classmethod
    def from_domain(cls, lot: ParkingLot, today_revenue: Optional[Decimal] = None) -> 'ParkingLotDTO':
        return cls(
            id=lot.id,
            name=lot.name,
            location=lot.location,
            latitude=lot.latitude,
            longitude=lot.longitude,
            hourly_rate=lot.hourly_rate,
            total_spots=lot.total_spots,
            spots=[SpotDTO(**spot.to_dict()) for spot in lot.spots],
            is_active=lot.is_active,
            today_revenue=today_revenue
        )


# ============================================================================
# USER DTOs
# ============================================================================

class UserDTO(BaseDTO):
    id: str
    name: str
    email: str
    role: UserRole
    bookings: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, user: User) -> 'UserDTO':
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, bookings=user.bookings)


# ============================================================================
# BOOKING DTOs
# ============================================================================

class BookingQueryDTO(BaseDTO):
    """Filters for the admin booking list"""
    status: Optional[str] = Field(default=None, description="Booking status or 'all'")
    user_id: Optional[str] = None
    lot_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    include_user_details: bool = False

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "all":
            return None
        BookingStatus(v)
        return v

    @model_validator(mode='after')
    def validate_date_range(self) -> 'BookingQueryDTO':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self

    @property
    def booking_status(self) -> Optional[BookingStatus]:
        return BookingStatus(self.status) if self.status else None


class BookingDTO(BaseDTO):
    """Booking as shown to clients"""
    id: str
    user_id: str
    lot_id: str
    spot_id: str
    booking_date: date
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    duration: Decimal
    hourly_rate: Optional[Decimal] = None
    total_cost: Decimal
    payment_details: Optional[Dict[str, Any]] = None
    actual_end_time: Optional[datetime] = None
    actual_duration: Optional[Decimal] = None
    additional_cost: Optional[Decimal] = None
    final_cost: Optional[Decimal] = None

    # Optional enrichment
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    lot_name: Optional[str] = None

    @classmethod
    def from_domain(
        cls,
        booking: Booking,
        user: Optional[User] = None,
        lot: Optional[ParkingLot] = None
    ) -> 'BookingDTO':
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            lot_id=booking.lot_id,
            spot_id=booking.spot_id,
            booking_date=booking.booking_date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
            created_at=booking.created_at,
            expires_at=booking.expires_at,
            duration=booking.duration,
            hourly_rate=booking.hourly_rate,
            total_cost=booking.total_cost,
            payment_details=booking.payment_details.to_dict() if booking.payment_details else None,
            actual_end_time=booking.actual_end_time,
            actual_duration=booking.actual_duration,
            additional_cost=booking.additional_cost,
            final_cost=booking.final_cost,
            user_name=user.name if user else None,
            user_email=user.email if user else None,
            lot_name=lot.name if lot else None
        )


class CheckoutResultDTO(BaseDTO):
    """DTO for checkout result"""
    booking_id: str
    actual_end_time: datetime
    actual_duration_hours: Decimal
    overtime_hours: Decimal
    additional_cost: Decimal
    final_cost: Decimal
    checkout_status: str
    message: str


# ============================================================================
# DASHBOARD AND REPORT DTOs
# ============================================================================

class LotOccupancyDTO(BaseDTO):
    lot_id: str
    name: str
    occupied_spots: int
    total_spots: int
    occupancy_rate: int


class DailyCountDTO(BaseDTO):
    label: str
    count: int


class DashboardDTO(BaseDTO):
    """Admin dashboard numbers"""
    generated_at: datetime
    total_bookings: int = Field(description="Confirmed bookings")
    total_revenue: Decimal
    occupancy_rate: int = Field(ge=0, description="Overall occupancy today, percent")
    lot_occupancy: List[LotOccupancyDTO]
    weekly_bookings: List[DailyCountDTO]
    recent_bookings: List[BookingDTO]
    parking_lots: List[ParkingLotDTO]


class RevenueReportDTO(BaseDTO):
    kind: str = "revenue"
    start_date: date
    end_date: date
    total_revenue: Decimal
    booking_count: int
    revenue_by_lot: Dict[str, Decimal]
    revenue_by_date: Dict[str, Decimal]


class OccupancyReportDTO(BaseDTO):
    kind: str = "occupancy"
    start_date: date
    end_date: date
    average_occupancy_rate: int
    occupancy_by_lot: Dict[str, int]
    occupancy_by_date: Dict[str, int]


class UserUsageDTO(BaseDTO):
    user_id: str
    booking_count: int
    name: Optional[str] = None


class PeakHourDTO(BaseDTO):
    hour: int = Field(ge=0, le=23)
    booking_count: int


class UsageReportDTO(BaseDTO):
    kind: str = "usage"
    start_date: date
    end_date: date
    total_bookings: int
    bookings_by_status: Dict[str, int]
    top_users: List[UserUsageDTO]
    peak_hours: List[PeakHourDTO]
    average_duration_hours: Decimal
