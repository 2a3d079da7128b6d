"""
Money rounding helpers.

All monetary rounding in the engine is ROUND_HALF_UP (midpoints away from
zero) to cents.  Intermediate rates (hourly, daily) keep four places.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round4(value: Decimal) -> Decimal:
    """Round to four places, half-up."""
    return Decimal(value).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def non_negative(value: Decimal) -> Decimal:
    """Floor at zero."""
    return value if value > ZERO else ZERO


def to_decimal(value: object) -> Decimal:
    """Convert config/ORM values to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))
