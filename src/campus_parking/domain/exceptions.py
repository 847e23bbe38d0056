# File: src/campus_parking/domain/exceptions.py
"""
Typed errors raised by the booking core.

Every operation fails with exactly one of these kinds and leaves stored
state untouched when a precondition check fails. Callers can branch on the
exception class or on the stable ``code`` attribute.
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base exception for booking core errors"""

    code = "booking_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for error responses"""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details
        }


class InvalidTimeFormat(BookingError):
    """Clock string is not 24-hour HH:MM, or the date cannot be parsed"""
    code = "invalid_time_format"


class InvalidWindow(BookingError):
    """Time window is empty or inverted"""
    code = "invalid_window"


class InvalidRate(BookingError):
    """Hourly rate is zero or negative"""
    code = "invalid_rate"


class NotFound(BookingError):
    """Booking, lot, spot or user does not exist"""
    code = "not_found"


class Expired(BookingError):
    """Temporary hold is past its expiry"""
    code = "expired"


class Forbidden(BookingError):
    """Actor does not own the resource"""
    code = "forbidden"


class InvalidState(BookingError):
    """Operation is not permitted from the current state"""
    code = "invalid_state"


class SpotUnavailable(InvalidState):
    """Spot already has a blocking booking overlapping the window"""
    code = "spot_unavailable"


class AlreadyStarted(BookingError):
    """Cancellation attempted after the booking start"""
    code = "already_started"
