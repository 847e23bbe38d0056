# File: src/campus_parking/application/booking_service.py
"""
Booking Application Service

This module implements the reservation lifecycle used by the campus app:
1. Availability lookup for a lot, date and time window
2. Temporary holds that expire after a few minutes
3. Confirmation after external payment
4. Cancellation by the owner before the booking starts
5. Checkout and settlement against the actual departure time

Every booking write is a compare-and-swap on the stored status, so two
requests racing on the same booking cannot both succeed. Preconditions are
checked before anything is written; a rejected request leaves the store
untouched.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Union, Any
import json
import logging

from pydantic import ValidationError

from ..domain.availability import available_spots, blocking_bookings
from ..domain.exceptions import (
    BookingError, InvalidState, InvalidWindow, NotFound, Expired, Forbidden,
    AlreadyStarted, SpotUnavailable
)
from ..domain.models import Booking, BookingStatus, ParkingLot, PaymentDetails, Spot
from ..domain.pricing import HOLD_DURATION, compute_base_cost, normalize_interval
from ..domain.settlement import CheckoutStatus, settle
from ..infrastructure.locking import HoldGuard, LocalHoldGuard
from ..infrastructure.messaging import DomainEvent, EventBus, EventType
from ..infrastructure.repositories import BookingFilter, Repositories
from .dtos import CheckoutResultDTO, PaymentDetailsDTO


CHECKOUT_MESSAGES = {
    CheckoutStatus.EARLY: "Checked out early, charged for the time used",
    CheckoutStatus.ON_TIME: "Checked out on time",
    CheckoutStatus.LATE: "Checked out late, overtime charged at 1.5x the hourly rate",
}


class BookingService:
    """
    Application service for the booking lifecycle

    Collaborators are injected: the repositories, a clock returning the
    current instant, a hold guard and an event bus.
    """

    def __init__(
        self,
        repositories: Repositories,
        clock: Optional[Callable[[], datetime]] = None,
        hold_guard: Optional[HoldGuard] = None,
        event_bus: Optional[EventBus] = None,
        hold_minutes: int = 5,
        enforce_hold_uniqueness: bool = True
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.repositories = repositories
        self.clock = clock or datetime.now
        self.hold_guard = hold_guard or LocalHoldGuard()
        self.event_bus = event_bus or EventBus()

        # Service configuration
        self.config = {
            "hold_duration": timedelta(minutes=hold_minutes) if hold_minutes else HOLD_DURATION,
            "enforce_hold_uniqueness": enforce_hold_uniqueness,
        }

        self.logger.info("BookingService initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rejected(self, error: BookingError) -> BookingError:
        self.logger.warning(f"Request rejected ({error.code}): {error.message}")
        return error

    def _require_lot(self, lot_id: str) -> ParkingLot:
        lot = self.repositories.parking_lots.get(lot_id)
        if lot is None:
            raise self._rejected(NotFound(f"Parking lot {lot_id} not found", {"lot_id": lot_id}))
        return lot

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self.repositories.bookings.get(booking_id)
        if booking is None:
            raise self._rejected(NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id}))
        return booking

    def _payment_from(
        self,
        booking_id: str,
        payment_details: Union[PaymentDetails, PaymentDetailsDTO, Dict[str, Any]]
    ) -> PaymentDetails:
        if isinstance(payment_details, dict):
            try:
                payment_details = PaymentDetailsDTO(**payment_details)
            except ValidationError as e:
                raise self._rejected(InvalidState(
                    f"Invalid payment details for booking {booking_id}",
                    {"booking_id": booking_id, "errors": [error["msg"] for error in e.errors()]}
                )) from e
        if isinstance(payment_details, PaymentDetailsDTO):
            payment_details = payment_details.to_domain()
        return payment_details

    def _save_transition(self, booking: Booking, expected: BookingStatus) -> None:
        if not self.repositories.bookings.update(booking, expected_status=expected):
            raise self._rejected(InvalidState(
                f"Booking {booking.id} changed while it was being updated",
                {"booking_id": booking.id, "expected_status": expected.value}
            ))

    def _publish(self, event_type: EventType, booking: Booking, now: datetime, **data: Any) -> None:
        payload = {
            "user_id": booking.user_id,
            "lot_id": booking.lot_id,
            "spot_id": booking.spot_id,
            "status": booking.status.value,
        }
        payload.update(data)
        self.event_bus.publish(DomainEvent(
            event_type=event_type,
            aggregate_id=booking.id,
            data=payload,
            timestamp=now
        ))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_parking_lots(self, active_only: bool = True) -> List[ParkingLot]:
        return self.repositories.parking_lots.get_all(active_only=active_only)

    def get_parking_lot(self, lot_id: str) -> ParkingLot:
        return self._require_lot(lot_id)

    def get_available_spots(
        self,
        lot_id: str,
        booking_date: Union[date, str],
        start_clock: str,
        end_clock: str
    ) -> List[Spot]:
        """Spots of the lot that are free for the whole window"""
        start, end = normalize_interval(booking_date, start_clock, end_clock)
        if end <= start:
            raise self._rejected(InvalidWindow(
                "End time must be after start time",
                {"start_time": start_clock, "end_time": end_clock}
            ))

        lot = self._require_lot(lot_id)
        if not lot.is_active:
            self.logger.debug(f"Lot {lot_id} is inactive, no spots offered")
            return []

        bookings = self.repositories.bookings.find_by_lot_and_date(lot_id, start.date())
        return available_spots(lot, bookings, start, end, self.clock())

    def get_booking(self, booking_id: str) -> Booking:
        """Read a booking; an expired hold reads as missing"""
        booking = self._require_booking(booking_id)
        if booking.is_expired(self.clock()):
            raise self._rejected(NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id}))
        return booking

    def get_user_bookings(
        self,
        user_id: str,
        status: Union[str, BookingStatus, None] = "all"
    ) -> List[Booking]:
        """Bookings of a user, newest first, without expired holds"""
        if isinstance(status, str):
            status = None if status == "all" else BookingStatus(status)

        now = self.clock()
        bookings = self.repositories.bookings.find_by_user(user_id, status)
        return [b for b in bookings if not b.is_expired(now)]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_hold(
        self,
        user_id: str,
        lot_id: str,
        spot_id: str,
        booking_date: Union[date, str],
        start_clock: str,
        end_clock: str
    ) -> Booking:
        """
        Reserve a spot for a window as a temporary booking

        Steps:
        1. Parse and check the window
        2. Check lot, spot and lot status
        3. Price the window at the lot's hourly rate
        4. Check for overlapping blocking bookings and insert, under the hold guard
        """
        start, end = normalize_interval(booking_date, start_clock, end_clock)
        if end <= start:
            raise self._rejected(InvalidWindow(
                "End time must be after start time",
                {"start_time": start_clock, "end_time": end_clock}
            ))

        lot = self._require_lot(lot_id)
        if not lot.has_spot(spot_id):
            raise self._rejected(NotFound(
                f"Spot {spot_id} not found in lot {lot_id}",
                {"lot_id": lot_id, "spot_id": spot_id}
            ))
        if not lot.is_active:
            raise self._rejected(InvalidState(f"Parking lot {lot_id} is not active", {"lot_id": lot_id}))

        total_cost = compute_base_cost(lot.hourly_rate, start, end)

        now = self.clock()
        booking = Booking(
            user_id=user_id,
            lot_id=lot.id,
            spot_id=spot_id,
            booking_date=start.date(),
            start_time=start,
            end_time=end,
            hourly_rate=lot.hourly_rate,
            total_cost=total_cost,
            status=BookingStatus.TEMPORARY,
            created_at=now,
            expires_at=now + self.config["hold_duration"],
            updated_at=now
        )

        if self.config["enforce_hold_uniqueness"]:
            with self.hold_guard.hold((lot.id, spot_id, booking.booking_date)):
                existing = self.repositories.bookings.find_by_lot_and_date(lot.id, booking.booking_date)
                if blocking_bookings(existing, spot_id, start, end, now):
                    raise self._rejected(SpotUnavailable(
                        f"Spot {spot_id} is already booked for this time",
                        {"lot_id": lot.id, "spot_id": spot_id, "date": booking.booking_date.isoformat()}
                    ))
                self.repositories.bookings.add(booking)
        else:
            self.repositories.bookings.add(booking)

        self.logger.info(f"Hold {booking.id} created on spot {spot_id} in lot {lot.id} until {booking.expires_at}")
        self._publish(EventType.BOOKING_HELD, booking, now, expires_at=booking.expires_at.isoformat())
        return booking

    def confirm(
        self,
        booking_id: str,
        payment_details: Union[PaymentDetails, PaymentDetailsDTO, Dict[str, Any]]
    ) -> Booking:
        """Turn a live hold into a confirmed booking after payment"""
        booking = self._require_booking(booking_id)
        if booking.status != BookingStatus.TEMPORARY:
            raise self._rejected(InvalidState(
                f"Booking {booking_id} is {booking.status.value}, not temporary",
                {"booking_id": booking_id, "status": booking.status.value}
            ))

        now = self.clock()
        if booking.is_expired(now):
            raise self._rejected(Expired(
                f"Hold {booking_id} expired at {booking.expires_at.isoformat()}",
                {"booking_id": booking_id}
            ))

        payment_details = self._payment_from(booking_id, payment_details)
        booking.confirm(payment_details, now)
        self._save_transition(booking, BookingStatus.TEMPORARY)

        if not self.repositories.users.append_booking(booking.user_id, booking.id):
            self.logger.debug(f"Booking {booking.id} not added to user {booking.user_id} (missing user or already listed)")

        self.logger.info(f"Booking {booking.id} confirmed for user {booking.user_id}")
        self._publish(EventType.BOOKING_CONFIRMED, booking, now, amount=str(payment_details.amount))
        return booking

    def cancel(self, booking_id: str, requesting_user_id: str) -> Booking:
        """Cancel a confirmed booking that has not started yet"""
        booking = self._require_booking(booking_id)
        if not booking.is_owned_by(requesting_user_id):
            raise self._rejected(Forbidden(
                "Unauthorized to cancel this booking",
                {"booking_id": booking_id, "user_id": requesting_user_id}
            ))
        if booking.status != BookingStatus.CONFIRMED:
            raise self._rejected(InvalidState(
                f"Only confirmed bookings can be cancelled (status: {booking.status.value})",
                {"booking_id": booking_id, "status": booking.status.value}
            ))

        now = self.clock()
        if booking.has_started(now):
            raise self._rejected(AlreadyStarted(
                "Cannot cancel a booking that has already started",
                {"booking_id": booking_id, "start_time": booking.start_time.isoformat()}
            ))

        booking.cancel(now)
        self._save_transition(booking, BookingStatus.CONFIRMED)

        self.logger.info(f"Booking {booking.id} cancelled by {requesting_user_id}")
        self._publish(EventType.BOOKING_CANCELLED, booking, now)
        self._publish(EventType.SPOT_RELEASED, booking, now)
        return booking

    def checkout(self, booking_id: str, requesting_user_id: Optional[str] = None) -> CheckoutResultDTO:
        """
        Settle a confirmed booking at the current instant

        Early and on-time checkouts pay for the time used. Late checkouts pay
        the quoted total plus overtime.
        """
        booking = self._require_booking(booking_id)
        if requesting_user_id is not None and not booking.is_owned_by(requesting_user_id):
            raise self._rejected(Forbidden(
                "Unauthorized to check out this booking",
                {"booking_id": booking_id, "user_id": requesting_user_id}
            ))
        if booking.status != BookingStatus.CONFIRMED:
            raise self._rejected(InvalidState(
                f"Only confirmed bookings can be checked out (status: {booking.status.value})",
                {"booking_id": booking_id, "status": booking.status.value}
            ))

        now = self.clock()
        settlement = settle(booking, now)
        booking.complete(
            actual_end_time=now,
            actual_duration=settlement.actual_duration_hours,
            additional_cost=settlement.additional_cost,
            final_cost=settlement.final_cost
        )
        self._save_transition(booking, BookingStatus.CONFIRMED)

        self.logger.info(
            f"Booking {booking.id} checked out {settlement.checkout_status.value}, final cost {settlement.final_cost}"
        )
        self._publish(EventType.BOOKING_COMPLETED, booking, now, **settlement.to_dict())
        self._publish(EventType.SPOT_RELEASED, booking, now)

        return CheckoutResultDTO(
            booking_id=booking.id,
            actual_end_time=now,
            actual_duration_hours=settlement.actual_duration_hours,
            overtime_hours=settlement.overtime_hours,
            additional_cost=settlement.additional_cost,
            final_cost=settlement.final_cost,
            checkout_status=settlement.checkout_status.value,
            message=CHECKOUT_MESSAGES[settlement.checkout_status]
        )

    def sweep_expired_holds(self, now: Optional[datetime] = None) -> int:
        """Delete temporary bookings whose hold has expired; returns the count"""
        now = now or self.clock()
        removed = 0
        for booking in self.repositories.bookings.find(BookingFilter(status=BookingStatus.TEMPORARY)):
            if booking.is_expired(now) and self.repositories.bookings.delete(
                booking.id, expected_status=BookingStatus.TEMPORARY
            ):
                removed += 1

        if removed:
            self.logger.info(f"Removed {removed} expired hold(s)")
        return removed

    def generate_qr_code_data(self, booking_id: str, user_id: str) -> str:
        """JSON payload encoded into the QR code shown at the gate"""
        booking = self._require_booking(booking_id)
        if not booking.is_owned_by(user_id):
            raise self._rejected(Forbidden(
                "Unauthorized to access this booking",
                {"booking_id": booking_id, "user_id": user_id}
            ))
        return json.dumps({
            "bookingId": booking.id,
            "userId": user_id,
            "timestamp": self.clock().isoformat()
        })
