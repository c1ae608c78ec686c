"""
fixed_point.py - Integer fixed-point helpers

Python integers are unbounded, so a product never overflows; the helpers
still keep the multiply-then-divide ordering explicit so no precision is lost
to an early division. All values are non-negative integers scaled by WAD
unless stated otherwise.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN
import math

from .core import WAD_DECIMALS


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator), computed on the full-width product."""
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError("mul_div operands must be non-negative")
    return (a * b) // denominator


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator)."""
    if denominator == 0:
        raise ZeroDivisionError("mul_div_up denominator is zero")
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError("mul_div_up operands must be non-negative")
    return -((-(a * b)) // denominator)


def sqrt(x: int) -> int:
    """floor(sqrt(x)) for a non-negative integer."""
    return math.isqrt(x)


def to_wad(value: Decimal) -> int:
    """Convert a Decimal amount to a WAD-scaled integer, truncating dust."""
    if value < 0:
        raise ValueError(f"Cannot convert negative value to WAD: {value}")
    return int(value.scaleb(WAD_DECIMALS).to_integral_value(rounding=ROUND_DOWN))


def from_wad(value: int) -> Decimal:
    """Convert a WAD-scaled integer back to a Decimal amount."""
    return Decimal(value).scaleb(-WAD_DECIMALS)


def rescale(value: int, from_decimals: int, to_decimals: int = WAD_DECIMALS) -> int:
    """
    Move an integer between decimal scales.

    Scaling down truncates toward zero.
    """
    if from_decimals == to_decimals:
        return value
    if from_decimals < to_decimals:
        return value * 10 ** (to_decimals - from_decimals)
    return value // 10 ** (from_decimals - to_decimals)
