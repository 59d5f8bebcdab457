"""
fixed_point.py - Integer Fixed-Point Arithmetic

All prices, ratios, rates and the accrual index in the lending ledger are
unsigned integers scaled by WAD (10**18). Amounts are plain integers in the
smallest unit of their asset.

Every division names its rounding direction explicitly:
    Rounding.DOWN - truncate toward zero (the default everywhere debt is computed)
    Rounding.UP   - round away from zero

Results are checked against the unsigned 256-bit range so that values stay
representable by any fixed-width backend the ledger is mirrored into.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum
from typing import Union


# ============================================================================
# CONSTANTS
# ============================================================================

# 1.0 in fixed-point.
WAD = 10 ** 18

# Number of decimal places represented by WAD.
WAD_DECIMALS = 18

# Largest representable value.
MAX_UINT256 = 2 ** 256 - 1


class ArithmeticOverflow(ArithmeticError):
    """Raised when a fixed-point result falls outside [0, MAX_UINT256]."""
    pass


class Rounding(Enum):
    """Rounding direction for fixed-point division."""
    DOWN = "down"
    UP = "up"


# Values accepted when converting human-readable inputs to WAD.
Numeric = Union[int, str, Decimal]


# ============================================================================
# CHECKS
# ============================================================================

def _check(value: int) -> int:
    """Return value if it lies in the unsigned 256-bit range."""
    if value < 0:
        raise ArithmeticOverflow(f"Unsigned underflow: {value}")
    if value > MAX_UINT256:
        raise ArithmeticOverflow(f"Unsigned overflow: {value}")
    return value


def _require_int(*values: int) -> None:
    for value in values:
        # bool is an int subclass but never a meaningful amount
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"Fixed-point operand must be int, got {type(value).__name__}")


# ============================================================================
# ARITHMETIC
# ============================================================================

def checked_add(a: int, b: int) -> int:
    """a + b, raising ArithmeticOverflow outside the unsigned range."""
    _require_int(a, b)
    return _check(a + b)


def checked_sub(a: int, b: int) -> int:
    """a - b, raising ArithmeticOverflow if the result would be negative."""
    _require_int(a, b)
    return _check(a - b)


def mul_div(a: int, b: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Compute a * b / denominator with full intermediate precision.

    The intermediate product is exact (Python ints are unbounded); only the
    final result is range-checked.

    Args:
        a: First factor (non-negative)
        b: Second factor (non-negative)
        denominator: Divisor (strictly positive)
        rounding: Rounding direction for the division

    Returns:
        The rounded quotient.

    Raises:
        ZeroDivisionError: If denominator is zero.
        ArithmeticOverflow: If an operand is negative or the result exceeds MAX_UINT256.
    """
    _require_int(a, b, denominator)
    _check(a)
    _check(b)
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    _check(denominator)

    quotient, remainder = divmod(a * b, denominator)
    if rounding is Rounding.UP and remainder:
        quotient += 1
    return _check(quotient)


def wad_mul(a: int, b: int, rounding: Rounding = Rounding.DOWN) -> int:
    """Multiply two WAD values: a * b / WAD."""
    return mul_div(a, b, WAD, rounding)


def wad_div(a: int, b: int, rounding: Rounding = Rounding.DOWN) -> int:
    """Divide two WAD values: a * WAD / b."""
    return mul_div(a, WAD, b, rounding)


# ============================================================================
# CONVERSION
# ============================================================================

def to_wad(value: Numeric) -> int:
    """
    Convert a human-readable number to WAD, rounding down.

    Accepts int, str or Decimal. Floats are rejected because their binary
    representation would leak into the fixed-point value.

    Example:
        to_wad("1.5") == 1_500_000_000_000_000_000
    """
    if isinstance(value, float):
        raise TypeError("Use Decimal or str instead of float for fixed-point values")
    if isinstance(value, bool):
        raise TypeError("bool is not a fixed-point value")
    if isinstance(value, int):
        return _check(value * WAD)
    decimal_value = value if isinstance(value, Decimal) else Decimal(str(value))
    if not decimal_value.is_finite():
        raise ValueError(f"Fixed-point value must be finite, got {decimal_value}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = (decimal_value * WAD).to_integral_value(rounding=ROUND_DOWN)
    return _check(int(scaled))


def from_wad(value: int) -> Decimal:
    """Convert a WAD integer to an exact Decimal for display and reporting."""
    _require_int(value)
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(value).scaleb(-WAD_DECIMALS)
