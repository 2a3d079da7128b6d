"""
Vendor Performance Domain Models (``settlement_modules.performance.models``).

Responsibility
--------------
Frozen value objects for monthly sales goals and the denormalized
per-salesperson performance rollup.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; all amounts are ``Decimal``.
* ``SalesGoalInput.validation_errors`` rejects negative targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.money import ZERO


@dataclass(frozen=True)
class SalesGoalInput:
    """Targets for one salesperson and month."""
    target_sales_amount: Decimal
    target_profit_amount: Decimal = ZERO
    target_sales_count: int = 0
    bonus_commission_percent: Decimal = ZERO
    notes: str | None = None

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if self.target_sales_amount < 0:
            errors.append("target_sales_amount must be non-negative")
        if self.target_profit_amount < 0:
            errors.append("target_profit_amount must be non-negative")
        if self.target_sales_count < 0:
            errors.append("target_sales_count must be non-negative")
        if self.bonus_commission_percent < 0:
            errors.append("bonus_commission_percent must be non-negative")
        return errors


@dataclass(frozen=True)
class SalesGoal:
    id: UUID
    user_id: UUID
    year: int
    month: int
    target_sales_amount: Decimal
    target_profit_amount: Decimal
    target_sales_count: int
    bonus_commission_percent: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class VendorPerformance:
    """Monthly performance rollup for one salesperson."""
    id: UUID
    user_id: UUID
    year: int
    month: int
    total_sales_count: int
    total_sales_amount: Decimal
    total_profit_amount: Decimal
    total_commission_earned: Decimal
    total_commission_paid: Decimal
    total_commission_pending: Decimal
    bonus_commission_earned: Decimal
    last_calculated_at: datetime
    sales_goal_target: Decimal | None = None
    sales_goal_achievement_percent: Decimal | None = None
    sales_goal_achieved: bool = False
