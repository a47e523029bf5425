"""Configuration management for loanbook."""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple

from .core import ConfigurationError
from .fixed_point import BPS_DENOMINATOR, to_amount
from .rates import DEFAULT_RATE_TIERS, RateTier, validate_rate_tiers


ENV_PREFIX = "LOANBOOK_"


@dataclass(frozen=True, slots=True)
class LendingConfig:
    """
    Protocol parameters of a loan book.

    Amounts are in whole units of the settlement asset; fees and penalties are
    integer basis points.
    """
    min_principal: Decimal = Decimal("100")
    max_principal: Decimal = Decimal("100000")
    min_duration: int = 1
    max_duration: int = 36
    period_length: timedelta = timedelta(days=30)
    origination_fee_bps: int = 50
    matching_fee_bps: int = 10
    insurance_fee_bps: int = 200
    late_penalty_bps: int = 500
    overdue_rate_multiplier: int = 2
    hours_per_year: int = 8760
    max_catch_up_periods: int = 36
    rate_tiers: Tuple[RateTier, ...] = field(default=DEFAULT_RATE_TIERS)
    escrow_wallet: str = "loanbook"
    log_level: str = "INFO"

    def __post_init__(self):
        object.__setattr__(self, 'min_principal', to_amount(self.min_principal))
        object.__setattr__(self, 'max_principal', to_amount(self.max_principal))
        object.__setattr__(self, 'rate_tiers', validate_rate_tiers(self.rate_tiers))

        if self.min_principal <= 0:
            raise ConfigurationError(f"min_principal must be positive, got {self.min_principal}")
        if self.max_principal < self.min_principal:
            raise ConfigurationError(
                f"max_principal ({self.max_principal}) below min_principal ({self.min_principal})"
            )
        if self.min_duration < 1 or self.max_duration < self.min_duration:
            raise ConfigurationError(
                f"Invalid duration window [{self.min_duration}, {self.max_duration}]"
            )
        if self.period_length <= timedelta(0):
            raise ConfigurationError("period_length must be positive")
        for name in ('origination_fee_bps', 'matching_fee_bps', 'insurance_fee_bps',
                     'late_penalty_bps'):
            value = getattr(self, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise ConfigurationError(f"{name} must be in [0, {BPS_DENOMINATOR}], got {value}")
        if self.overdue_rate_multiplier < 0:
            raise ConfigurationError("overdue_rate_multiplier must be non-negative")
        if self.hours_per_year <= 0:
            raise ConfigurationError("hours_per_year must be positive")
        if self.max_catch_up_periods < 1:
            raise ConfigurationError("max_catch_up_periods must be at least 1")
        if not self.escrow_wallet or not self.escrow_wallet.strip():
            raise ConfigurationError("escrow_wallet cannot be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LendingConfig":
        """Create config from LOANBOOK_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        def read(name: str, convert):
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                return None
            try:
                return convert(raw)
            except (ValueError, InvalidOperation) as e:
                raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from e

        decimals = {"MIN_PRINCIPAL": "min_principal", "MAX_PRINCIPAL": "max_principal"}
        integers = {
            "MIN_DURATION": "min_duration",
            "MAX_DURATION": "max_duration",
            "ORIGINATION_FEE_BPS": "origination_fee_bps",
            "MATCHING_FEE_BPS": "matching_fee_bps",
            "INSURANCE_FEE_BPS": "insurance_fee_bps",
            "LATE_PENALTY_BPS": "late_penalty_bps",
            "OVERDUE_RATE_MULTIPLIER": "overdue_rate_multiplier",
            "MAX_CATCH_UP_PERIODS": "max_catch_up_periods",
        }
        for env_name, attr in decimals.items():
            value = read(env_name, Decimal)
            if value is not None:
                kwargs[attr] = value
        for env_name, attr in integers.items():
            value = read(env_name, int)
            if value is not None:
                kwargs[attr] = value

        period_days = read("PERIOD_DAYS", int)
        if period_days is not None:
            kwargs["period_length"] = timedelta(days=period_days)
        escrow = read("ESCROW_WALLET", str)
        if escrow is not None:
            kwargs["escrow_wallet"] = escrow
        log_level = read("LOG_LEVEL", str)
        if log_level is not None:
            kwargs["log_level"] = log_level.upper()

        return cls(**kwargs)


DEFAULT_CONFIG = LendingConfig()
