"""
amortization.py - Equal-installment (EMI) calculator and schedule

Pure functions, no ledger access. All arithmetic goes through the
fixed-point helpers so the installment of a loan is reproducible to the
last of its 18 fractional digits.

Key Formulas:
    r = annual_rate_bps / 120000                  (monthly rate)
    emi = P * r * (1 + r)^n / ((1 + r)^n - 1)
    emi = P / n                                   (when r = 0)

    interest_k = outstanding_k * r
    principal_k = min(emi - interest_k, outstanding_k)
    principal_n = outstanding_n                   (final period clears the balance)
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from .config import DEFAULT_CONFIG, LendingConfig
from .core import InvalidAmount, InvalidDuration
from .fixed_point import ONE, ZERO, Numeric, div, mul, to_amount, with_decimal_context

# 12 months * 10000 bps
MONTHLY_RATE_DENOMINATOR = 120000


@dataclass(frozen=True, slots=True)
class Installment:
    """One row of an amortization table."""
    number: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


# ============================================================================
# VALIDATION
# ============================================================================

def validate_principal(principal: Numeric, config: LendingConfig = DEFAULT_CONFIG) -> Decimal:
    """
    Return principal as a fixed-point amount if it is inside the lending window.

    Raises:
        InvalidAmount: if principal < min_principal or principal > max_principal
    """
    try:
        amount = to_amount(principal)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e
    if amount < config.min_principal or amount > config.max_principal:
        raise InvalidAmount(
            f"Principal {amount} outside [{config.min_principal}, {config.max_principal}]"
        )
    return amount


def validate_duration(months: int, config: LendingConfig = DEFAULT_CONFIG) -> int:
    """
    Raises:
        InvalidDuration: if months is not an integer in [min_duration, max_duration]
    """
    if isinstance(months, bool) or not isinstance(months, int):
        raise InvalidDuration(f"Duration must be a whole number of periods, got {months!r}")
    if months < config.min_duration or months > config.max_duration:
        raise InvalidDuration(
            f"Duration {months} outside [{config.min_duration}, {config.max_duration}]"
        )
    return months


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def monthly_rate(annual_rate_bps: int) -> Decimal:
    """Periodic rate as a fraction: 1200 bps -> 0.01."""
    return div(Decimal(annual_rate_bps), MONTHLY_RATE_DENOMINATOR)


@with_decimal_context
def compound_factor(rate: Decimal, periods: int) -> Decimal:
    """(1 + rate)^periods, quantized after every multiplication."""
    base = ONE + rate
    factor = ONE
    for _ in range(periods):
        factor = mul(factor, base)
    return factor


@with_decimal_context
def calculate_emi(
    principal: Numeric,
    annual_rate_bps: int,
    months: int,
    config: LendingConfig = DEFAULT_CONFIG,
) -> Decimal:
    """
    Calculate the fixed periodic installment of a loan.

    Args:
        principal: Amount borrowed, inside the configured window
        annual_rate_bps: Annual interest rate in basis points
        months: Number of installments, inside the configured window

    Returns:
        The installment, rounded toward zero at 18 fractional digits

    Raises:
        InvalidAmount: principal outside [min_principal, max_principal]
        InvalidDuration: months outside [min_duration, max_duration]

    Example:
        >>> calculate_emi(Decimal("10000"), 1200, 12)
        Decimal('888.487886783417...')
    """
    amount = validate_principal(principal, config)
    months = validate_duration(months, config)

    rate = monthly_rate(annual_rate_bps)
    factor = compound_factor(rate, months)
    # rate so small that (1 + r)^n does not move at 18 digits
    if rate == 0 or factor == ONE:
        return div(amount, months)
    return div(mul(mul(amount, rate), factor), factor - ONE)


@with_decimal_context
def split_installment(
    outstanding: Decimal,
    emi: Decimal,
    annual_rate_bps: int,
    is_final: bool,
) -> Tuple[Decimal, Decimal]:
    """
    Split one installment into (principal, interest).

    Interest accrues on the outstanding principal at the monthly rate. The
    principal part is what remains of the installment, never more than the
    outstanding balance. The final installment retires whatever principal is
    left, so rounding never strands a residue.
    """
    interest = mul(outstanding, monthly_rate(annual_rate_bps))
    if is_final:
        principal = outstanding
    else:
        principal = min(max(emi - interest, ZERO), outstanding)
    interest = max(emi - principal, ZERO)
    return principal, interest


@with_decimal_context
def amortization_schedule(
    principal: Numeric,
    annual_rate_bps: int,
    months: int,
    emi: Optional[Decimal] = None,
    config: LendingConfig = DEFAULT_CONFIG,
) -> List[Installment]:
    """
    Build the full amortization table of a loan.

    emi may be passed to reproduce the table of an existing loan; otherwise it
    is computed. The principal column sums exactly to the principal.
    """
    amount = validate_principal(principal, config)
    if emi is None:
        emi = calculate_emi(amount, annual_rate_bps, months, config)

    rows = []
    balance = amount
    for number in range(1, months + 1):
        part_principal, part_interest = split_installment(
            balance, emi, annual_rate_bps, is_final=(number == months)
        )
        balance = balance - part_principal
        rows.append(Installment(
            number=number,
            payment=part_principal + part_interest,
            principal=part_principal,
            interest=part_interest,
            balance=balance,
        ))
        if balance == 0:
            break
    return rows
