"""
arrears.py - Late fee model for missed installments

A period settled after its due timestamp is charged a flat penalty on the
installment plus penalty-rate interest, prorated by the hour, on the
installment and penalty together:

    late_penalty     = emi * penalty_bps / 10000
    base_debt        = emi + late_penalty
    overdue_rate     = interest_rate_bps * multiplier
    overdue_interest = base_debt * overdue_rate * hours_late / (10000 * hours_per_year)
    late_fee         = late_penalty + overdue_interest

Fees of different periods are computed independently: they add, they do not
compound on each other's base.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from .fixed_point import BPS_DENOMINATOR, bps_of, mul_div, with_decimal_context

HOUR = timedelta(hours=1)


@dataclass(frozen=True, slots=True)
class LateFee:
    """Breakdown of the late fee charged on one missed period."""
    hours_late: int
    late_penalty: Decimal
    base_debt: Decimal
    overdue_rate_bps: int
    overdue_interest: Decimal

    @property
    def total(self) -> Decimal:
        return self.late_penalty + self.overdue_interest


def hours_late(due: datetime, now: datetime) -> int:
    """Whole hours elapsed since due; 0 if not yet due."""
    if now <= due:
        return 0
    return (now - due) // HOUR


@with_decimal_context
def calculate_late_fee(
    emi: Decimal,
    interest_rate_bps: int,
    hours: int,
    penalty_bps: int = 500,
    rate_multiplier: int = 2,
    hours_per_year: int = 8760,
) -> LateFee:
    """
    Late fee for one missed period.

    Args:
        emi: The loan's fixed installment
        interest_rate_bps: The loan's annual rate
        hours: Whole hours the period is overdue (>= 0)

    Returns:
        LateFee with the flat penalty and the prorated overdue interest
    """
    if hours < 0:
        raise ValueError(f"hours late must be non-negative, got {hours}")
    late_penalty = bps_of(emi, penalty_bps)
    base_debt = emi + late_penalty
    overdue_rate = interest_rate_bps * rate_multiplier
    overdue_interest = mul_div(
        base_debt, overdue_rate * hours, BPS_DENOMINATOR * hours_per_year
    )
    return LateFee(
        hours_late=hours,
        late_penalty=late_penalty,
        base_debt=base_debt,
        overdue_rate_bps=overdue_rate,
        overdue_interest=overdue_interest,
    )
