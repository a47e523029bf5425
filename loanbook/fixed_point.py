"""
fixed_point.py - 18-digit fixed-point arithmetic for settlement amounts

Every monetary value in loanbook is a Decimal quantized to 18 fractional
digits, matching the precision of the settlement asset. Arithmetic helpers in
this module quantize after every multiplication and division using ROUND_DOWN,
which is floor for the non-negative amounts the engine works with. The result
is bit-for-bit reproducible: no binary floating point is ever involved.

    amount = to_amount("10000")          # Decimal('10000.000000000000000000')
    fee = bps_of(amount, 50)             # 0.5% -> Decimal('50.000000000000000000')
    raw = to_units(fee)                  # 50 * 10**18
"""

from __future__ import annotations
from decimal import Context, Decimal, ROUND_DOWN, localcontext
from functools import wraps
from typing import ContextManager, Union


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal contexts are thread-local: setting getcontext().prec at import time
# only affects the importing thread. Every helper here uses _CONTEXT
# explicitly, and stateful code runs its own arithmetic inside
# decimal_context(), so results are the same on every thread.
#
# prec=50 leaves ample headroom for the widest intermediate product the
# engine forms (principal * rate * hours) and for balances far above 10**10.
#
_CONTEXT = Context(prec=50, rounding=ROUND_DOWN)


def decimal_context() -> ContextManager[Context]:
    """Run the enclosed Decimal arithmetic with the lending context on this thread."""
    return localcontext(_CONTEXT)


def with_decimal_context(func):
    """Decorator: run func inside decimal_context()."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        with localcontext(_CONTEXT):
            return func(*args, **kwargs)

    return wrapper


# ============================================================================
# CONSTANTS
# ============================================================================

# Fractional digits of the settlement asset.
SCALE = 18

# Smallest representable amount (one unit in the last place).
QUANTUM = Decimal(1).scaleb(-SCALE)

ZERO = Decimal(0).quantize(QUANTUM, context=_CONTEXT)
ONE = Decimal(1).quantize(QUANTUM, context=_CONTEXT)

# Basis points per whole (1 bps = 0.01%).
BPS_DENOMINATOR = 10000

Numeric = Union[Decimal, int, str]


# ============================================================================
# CONVERSION
# ============================================================================

def to_amount(value: Numeric) -> Decimal:
    """
    Convert a value to an 18-digit fixed-point amount.

    Accepts Decimal, int or str. Floats are converted through str() so that
    0.1 becomes Decimal("0.1") rather than its binary expansion.

    Raises:
        ValueError: if the value is NaN or infinite
    """
    if isinstance(value, bool):
        raise ValueError(f"amount must be numeric, got {value!r}")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"amount must be finite, got {value}")
    return value.quantize(QUANTUM, rounding=ROUND_DOWN, context=_CONTEXT)


def to_units(amount: Decimal) -> int:
    """Return the raw integer representation (amount * 10**18)."""
    return int(to_amount(amount).scaleb(SCALE, context=_CONTEXT))


def from_units(units: int) -> Decimal:
    """Inverse of to_units()."""
    return Decimal(units).scaleb(-SCALE, context=_CONTEXT).quantize(QUANTUM, context=_CONTEXT)


# ============================================================================
# ARITHMETIC
# ============================================================================

def quantize(value: Decimal) -> Decimal:
    """Round toward zero at 18 fractional digits."""
    return value.quantize(QUANTUM, rounding=ROUND_DOWN, context=_CONTEXT)


def mul(a: Decimal, b: Numeric) -> Decimal:
    """Fixed-point product, rounded toward zero."""
    return quantize(_CONTEXT.multiply(Decimal(a), Decimal(b)))


def div(a: Decimal, b: Numeric) -> Decimal:
    """
    Fixed-point quotient, rounded toward zero.

    Raises:
        ZeroDivisionError: if b is zero
    """
    b = Decimal(b)
    if b == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    return quantize(_CONTEXT.divide(Decimal(a), b))


def mul_div(a: Decimal, b: Numeric, c: Numeric) -> Decimal:
    """
    Compute a * b / c with a single rounding step.

    The product is formed at full lending-context precision before dividing, which is
    what integer "mulDiv" does on the raw representation.
    """
    c = Decimal(c)
    if c == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    return quantize(_CONTEXT.divide(_CONTEXT.multiply(Decimal(a), Decimal(b)), c))


def bps_of(amount: Decimal, rate_bps: int) -> Decimal:
    """Return rate_bps basis points of amount, rounded toward zero."""
    return mul_div(amount, rate_bps, BPS_DENOMINATOR)
