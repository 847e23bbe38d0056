# File: src/campus_parking/domain/settlement.py
"""
Checkout / Settlement

Closes a confirmed booking against the actual departure instant:
1. On time - pay the quoted total
2. Early - pay actual duration times the hourly rate
3. Late - pay the quoted total plus overtime at 1.5 times the rate

The actual duration is rounded to two decimal places before it is priced.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Any

from .models import Booking
from .pricing import compute_overtime_cost, hours_between


DURATION_QUANTUM = Decimal('0.01')


class CheckoutStatus(Enum):
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"


@dataclass(frozen=True)
class Settlement:
    """Value Object: outcome of a checkout"""
    actual_duration_hours: Decimal
    additional_cost: Decimal
    final_cost: Decimal
    checkout_status: CheckoutStatus
    overtime_hours: Decimal = Decimal('0')

    @property
    def is_late(self) -> bool:
        return self.checkout_status == CheckoutStatus.LATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actual_duration_hours": str(self.actual_duration_hours),
            "additional_cost": str(self.additional_cost),
            "final_cost": str(self.final_cost),
            "overtime_hours": str(self.overtime_hours),
            "checkout_status": self.checkout_status.value
        }


def settle(booking: Booking, now: datetime) -> Settlement:
    """
    Compute what the booking owes when checked out at now.
    Does not change the booking.
    """
    # Checking out before the start bills nothing rather than a negative amount
    checkout_at = max(booking.start_time, min(now, booking.end_time))
    actual_duration = hours_between(booking.start_time, checkout_at).quantize(
        DURATION_QUANTUM, rounding=ROUND_HALF_UP
    )
    rate = booking.effective_hourly_rate

    if now > booking.end_time:
        overtime_hours = hours_between(booking.end_time, now)
        additional_cost = compute_overtime_cost(rate, overtime_hours)
        return Settlement(
            actual_duration_hours=actual_duration,
            additional_cost=additional_cost,
            final_cost=booking.total_cost + additional_cost,
            checkout_status=CheckoutStatus.LATE,
            overtime_hours=overtime_hours
        )

    if now == booking.end_time:
        return Settlement(
            actual_duration_hours=actual_duration,
            additional_cost=Decimal('0'),
            final_cost=booking.total_cost,
            checkout_status=CheckoutStatus.ON_TIME
        )

    return Settlement(
        actual_duration_hours=actual_duration,
        additional_cost=Decimal('0'),
        final_cost=actual_duration * rate,
        checkout_status=CheckoutStatus.EARLY
    )
