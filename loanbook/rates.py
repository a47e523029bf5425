"""
rates.py - Tiered annual interest rate model

The annual rate of a loan is a non-decreasing step function of its principal,
fixed once at confirmation (or direct creation) and never re-priced.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from .core import ConfigurationError
from .fixed_point import Numeric, to_amount


@dataclass(frozen=True, slots=True)
class RateTier:
    """
    One step of the rate table.

    up_to is an inclusive principal ceiling; None marks the open-ended top tier.
    """
    rate_bps: int
    up_to: Optional[Decimal] = None

    def __post_init__(self):
        if self.up_to is not None and not isinstance(self.up_to, Decimal):
            object.__setattr__(self, 'up_to', to_amount(self.up_to))
        if self.rate_bps < 0:
            raise ConfigurationError(f"Tier rate must be non-negative, got {self.rate_bps}")


DEFAULT_RATE_TIERS: Tuple[RateTier, ...] = (
    RateTier(600, Decimal("1000")),
    RateTier(900, Decimal("5000")),
    RateTier(1200, Decimal("10000")),
    RateTier(1800, Decimal("50000")),
    RateTier(2250, None),
)


def validate_rate_tiers(tiers: Sequence[RateTier]) -> Tuple[RateTier, ...]:
    """
    Check that a tier table is usable and return it as a tuple.

    The ceilings must be strictly increasing, the rates non-decreasing, and
    the last tier open-ended so that every principal is priced.

    Raises:
        ConfigurationError: if any of the above does not hold
    """
    tiers = tuple(tiers)
    if not tiers:
        raise ConfigurationError("Rate table cannot be empty")
    if tiers[-1].up_to is not None:
        raise ConfigurationError("Last rate tier must be open-ended (up_to=None)")
    for lower, upper in zip(tiers, tiers[1:]):
        if lower.up_to is None:
            raise ConfigurationError("Only the last rate tier may be open-ended")
        if upper.up_to is not None and upper.up_to <= lower.up_to:
            raise ConfigurationError(
                f"Rate tier ceilings must increase: {lower.up_to} then {upper.up_to}"
            )
        if upper.rate_bps < lower.rate_bps:
            raise ConfigurationError(
                f"Rate tiers must be non-decreasing: {lower.rate_bps} then {upper.rate_bps}"
            )
    return tiers


def interest_rate_for(amount: Numeric, tiers: Sequence[RateTier] = DEFAULT_RATE_TIERS) -> int:
    """
    Return the annual interest rate, in basis points, for a principal.

    Example:
        >>> interest_rate_for(Decimal("10000"))
        1200
        >>> interest_rate_for(Decimal("10000.000000000000000001"))
        1800
    """
    amount = to_amount(amount)
    for tier in tiers:
        if tier.up_to is None or amount <= tier.up_to:
            return tier.rate_bps
    # validate_rate_tiers guarantees an open-ended tier
    raise ConfigurationError("Rate table has no tier for this principal")
