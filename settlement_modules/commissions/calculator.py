"""
Commission Calculator (``settlement_modules.commissions.calculator``).

Pure per-line commission math::

    profit = (unit_price - cost_price_snapshot) * quantity - discount
    amount = round2(profit * percent / 100)

Profit at or below zero never produces a negative commission: the amount
is floored at zero and the line is flagged for review.  Lines whose
percent is zero or negative produce no commission at all (``None``).
"""

from __future__ import annotations

from decimal import Decimal

from settlement_kernel.domain.money import ZERO, round2
from settlement_modules.commissions.models import (
    NON_POSITIVE_PROFIT,
    CommissionableLine,
    CommissionCalculation,
)

_HUNDRED = Decimal("100")


def line_profit(line: CommissionableLine) -> Decimal:
    """Unrounded profit of one line."""
    return (line.unit_price - line.cost_price) * line.quantity - line.discount


def calculate_line_commission(line: CommissionableLine) -> CommissionCalculation | None:
    """Commission for one line, or None when the line earns no commission."""
    if line.commission_percent <= ZERO:
        return None

    profit = line_profit(line)
    if profit <= ZERO:
        return CommissionCalculation(
            profit_amount=round2(profit),
            commission_percent=line.commission_percent,
            commission_amount=round2(ZERO),
            needs_review=True,
            review_reason=NON_POSITIVE_PROFIT,
        )

    return CommissionCalculation(
        profit_amount=round2(profit),
        commission_percent=line.commission_percent,
        commission_amount=round2(profit * line.commission_percent / _HUNDRED),
    )
