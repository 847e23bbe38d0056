# File: src/campus_parking/application/admin_service.py
"""
Admin Application Service

Operator-facing use cases:
1. Dashboard - confirmed booking count, revenue, today's occupancy,
   weekly trend, recent bookings and per-lot revenue for today
2. Lot management - add, update, deactivate and delete lots
3. Booking list with filters
4. User list and role changes
5. Revenue, occupancy and usage reports over a date range
"""

from dataclasses import asdict, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Union
import logging

from ..domain import reporting
from ..domain.exceptions import BookingError, InvalidState, NotFound
from ..domain.models import Booking, BookingStatus, ParkingLot, UserRole
from ..domain.pricing import parse_date
from ..infrastructure.factories import ParkingLotFactory
from ..infrastructure.repositories import BookingFilter, Repositories
from .dtos import (
    BookingDTO, BookingQueryDTO, DailyCountDTO, DashboardDTO, LotOccupancyDTO,
    OccupancyReportDTO, ParkingLotCreateDTO, ParkingLotDTO, ParkingLotUpdateDTO,
    PeakHourDTO, RevenueReportDTO, UsageReportDTO, UserDTO, UserUsageDTO
)


REPORT_KINDS = ("revenue", "occupancy", "usage")


class AdminService:
    """Application service for operators"""

    def __init__(
        self,
        repositories: Repositories,
        clock: Optional[Callable[[], datetime]] = None,
        recent_limit: int = 50,
        default_hourly_rate: Decimal = Decimal("2.5")
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.repositories = repositories
        self.clock = clock or datetime.now
        self.config = {
            "recent_limit": recent_limit,
            "default_hourly_rate": default_hourly_rate
        }

    def _rejected(self, error: BookingError) -> BookingError:
        self.logger.warning(f"Admin request rejected ({error.code}): {error.message}")
        return error

    def _require_lot(self, lot_id: str) -> ParkingLot:
        lot = self.repositories.parking_lots.get(lot_id)
        if lot is None:
            raise self._rejected(NotFound(f"Parking lot {lot_id} not found", {"lot_id": lot_id}))
        return lot

    def _find_live(self, criteria: BookingFilter, now: datetime) -> List[Booking]:
        """Bookings matching criteria, leaving out holds that expired before now"""
        bookings = self.repositories.bookings.find(criteria)
        live = [b for b in bookings if not b.is_expired(now)]
        if criteria.limit is not None and len(live) < len(bookings):
            # expired holds used up part of the limit
            everything = self.repositories.bookings.find(replace(criteria, limit=None))
            live = [b for b in everything if not b.is_expired(now)][:criteria.limit]
        return live

    # ============================================================================
    # DASHBOARD
    # ============================================================================

    def get_dashboard_data(self) -> DashboardDTO:
        now = self.clock()
        today = now.date()
        bookings = self.repositories.bookings
        lots = self.repositories.parking_lots.get_all()

        confirmed = bookings.find(BookingFilter(status=BookingStatus.CONFIRMED))
        confirmed_today = [b for b in confirmed if b.booking_date == today]
        week_start = datetime.combine(today - timedelta(days=reporting.TREND_DAYS - 1), time.min)
        created_this_week = self._find_live(BookingFilter(created_from=week_start), now)
        recent = self._find_live(BookingFilter(limit=self.config["recent_limit"]), now)

        occupancy = reporting.occupancy_by_lot(lots, confirmed_today)
        today_revenue = reporting.revenue_by_lot(confirmed_today)
        lots_by_id = {lot.id: lot for lot in lots}
        users = self.repositories.users.get_many(b.user_id for b in recent)

        dashboard = DashboardDTO(
            generated_at=now,
            total_bookings=len(confirmed),
            total_revenue=reporting.total_revenue(confirmed),
            occupancy_rate=reporting.overall_occupancy_rate(occupancy),
            lot_occupancy=[LotOccupancyDTO(**asdict(row)) for row in occupancy],
            weekly_bookings=[
                DailyCountDTO(label=label, count=count)
                for label, count in reporting.weekly_booking_trend(created_this_week, today)
            ],
            recent_bookings=[
                BookingDTO.from_domain(b, users.get(b.user_id), lots_by_id.get(b.lot_id))
                for b in recent
            ],
            parking_lots=[
                ParkingLotDTO.from_domain(lot, today_revenue.get(lot.id, Decimal('0')))
                for lot in lots
            ]
        )
        self.logger.info(
            f"Dashboard built: {dashboard.total_bookings} confirmed bookings, occupancy {dashboard.occupancy_rate}%"
        )
        return dashboard

    # ============================================================================
    # PARKING LOTS
    # ============================================================================

    def get_all_parking_lots(self) -> List[ParkingLot]:
        return self.repositories.parking_lots.get_all()

    def add_parking_lot(self, request: ParkingLotCreateDTO) -> ParkingLot:
        now = self.clock()
        spots = [spot.to_domain() for spot in request.spots] if request.spots is not None else None
        lot = ParkingLotFactory.create_lot(
            name=request.name,
            hourly_rate=request.hourly_rate or self.config["default_hourly_rate"],
            spot_count=request.total_spots,
            spots=spots,
            location=request.location,
            latitude=request.latitude,
            longitude=request.longitude,
            is_active=request.is_active,
            now=now
        )
        self.repositories.parking_lots.add(lot)
        self.logger.info(f"Parking lot {lot.id} ({lot.name}) added with {lot.total_spots} spots")
        return lot

    def update_parking_lot(self, lot_id: str, request: ParkingLotUpdateDTO) -> ParkingLot:
        """
        Apply the fields set on the request. Changing the spot count without
        an explicit spot list regenerates the standard layout.
        """
        lot = self._require_lot(lot_id)
        changes = request.model_dump(exclude_unset=True, exclude={"spots", "total_spots"})

        for field_name, value in changes.items():
            if value is not None:
                setattr(lot, field_name, value)

        if request.spots is not None:
            lot.replace_spots([spot.to_domain() for spot in request.spots])
        elif request.total_spots is not None and request.total_spots != lot.total_spots:
            lot.replace_spots(ParkingLotFactory.generate_spots(request.total_spots))

        # Re-run entity validation on the edited lot
        lot = ParkingLot(
            id=lot.id, name=lot.name, hourly_rate=lot.hourly_rate, location=lot.location,
            latitude=lot.latitude, longitude=lot.longitude, total_spots=lot.total_spots,
            spots=lot.spots, is_active=lot.is_active, created_at=lot.created_at,
            updated_at=self.clock()
        )
        if not self.repositories.parking_lots.update(lot):
            raise self._rejected(NotFound(f"Parking lot {lot_id} not found", {"lot_id": lot_id}))

        self.logger.info(f"Parking lot {lot_id} updated: {sorted(request.model_fields_set)}")
        return lot

    def deactivate_parking_lot(self, lot_id: str) -> ParkingLot:
        lot = self._require_lot(lot_id)
        lot.deactivate()
        lot.updated_at = self.clock()
        self.repositories.parking_lots.update(lot)
        self.logger.info(f"Parking lot {lot_id} deactivated")
        return lot

    def delete_parking_lot(self, lot_id: str) -> bool:
        """Hard delete; refused while confirmed bookings reference the lot"""
        self._require_lot(lot_id)
        if self.repositories.bookings.exists_for_lot(lot_id, BookingStatus.CONFIRMED):
            raise self._rejected(InvalidState(
                "Cannot delete parking lot with active bookings",
                {"lot_id": lot_id}
            ))

        deleted = self.repositories.parking_lots.delete(lot_id)
        self.logger.info(f"Parking lot {lot_id} deleted")
        return deleted

    # ============================================================================
    # BOOKINGS AND USERS
    # ============================================================================

    def get_bookings(self, query: Optional[BookingQueryDTO] = None) -> List[BookingDTO]:
        query = query or BookingQueryDTO()
        bookings = self._find_live(BookingFilter(
            status=query.booking_status,
            user_id=query.user_id,
            lot_id=query.lot_id,
            start_date=query.start_date,
            end_date=query.end_date,
            limit=query.limit
        ), self.clock())

        if not query.include_user_details:
            return [BookingDTO.from_domain(b) for b in bookings]

        users = self.repositories.users.get_many(b.user_id for b in bookings)
        lots = {lot.id: lot for lot in self.repositories.parking_lots.get_all()}
        return [BookingDTO.from_domain(b, users.get(b.user_id), lots.get(b.lot_id)) for b in bookings]

    def get_all_users(self) -> List[UserDTO]:
        return [UserDTO.from_domain(user) for user in self.repositories.users.get_all()]

    def update_user_role(self, user_id: str, role: Union[str, UserRole]) -> UserDTO:
        try:
            role = UserRole(role)
        except ValueError:
            raise ValueError(f"Invalid role: {role!r}, expected 'user' or 'admin'") from None

        user = self.repositories.users.get(user_id)
        if user is None:
            raise self._rejected(NotFound(f"User {user_id} not found", {"user_id": user_id}))

        user.role = role
        self.repositories.users.update(user)
        self.logger.info(f"User {user_id} role set to {role.value}")
        return UserDTO.from_domain(user)

    # ============================================================================
    # REPORTS
    # ============================================================================

    def generate_report(
        self,
        kind: str,
        start_date: Union[date, str],
        end_date: Union[date, str]
    ) -> Union[RevenueReportDTO, OccupancyReportDTO, UsageReportDTO]:
        if kind not in REPORT_KINDS:
            raise ValueError(f"Invalid report type: {kind!r}, expected one of {', '.join(REPORT_KINDS)}")

        start, end = parse_date(start_date), parse_date(end_date)
        if end < start:
            raise ValueError("Report end date must not be before its start date")

        bookings = self._find_live(BookingFilter(start_date=start, end_date=end), self.clock())
        self.logger.info(f"Generating {kind} report for {start} to {end} over {len(bookings)} booking(s)")

        if kind == "revenue":
            confirmed = [b for b in bookings if b.status == BookingStatus.CONFIRMED]
            return RevenueReportDTO(
                start_date=start,
                end_date=end,
                total_revenue=reporting.total_revenue(confirmed),
                booking_count=len(confirmed),
                revenue_by_lot=reporting.revenue_by_lot(confirmed),
                revenue_by_date=reporting.revenue_by_date(confirmed)
            )

        if kind == "occupancy":
            summary = reporting.occupancy_report(self.repositories.parking_lots.get_all(), bookings, start, end)
            return OccupancyReportDTO(
                start_date=start,
                end_date=end,
                average_occupancy_rate=summary.average_occupancy_rate,
                occupancy_by_lot=summary.by_lot,
                occupancy_by_date=summary.by_date
            )

        usage = reporting.usage_summary(bookings)
        users = self.repositories.users.get_many(user_id for user_id, _ in usage.top_users)
        return UsageReportDTO(
            start_date=start,
            end_date=end,
            total_bookings=usage.total_bookings,
            bookings_by_status=usage.bookings_by_status,
            top_users=[
                UserUsageDTO(
                    user_id=user_id,
                    booking_count=count,
                    name=users[user_id].name if user_id in users else None
                )
                for user_id, count in usage.top_users
            ],
            peak_hours=[PeakHourDTO(hour=hour, booking_count=count) for hour, count in usage.peak_hours],
            average_duration_hours=usage.average_duration_hours
        )
