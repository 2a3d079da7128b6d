"""
Commission Domain Models (``settlement_modules.commissions.models``).

Responsibility
--------------
Frozen value objects for sales and service-order commissions: the input
line, the pure calculation outcome, the persisted commission and the
per-salesperson monthly summary.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; all amounts are ``Decimal``.
* ``profit_amount``, ``commission_percent`` and ``commission_amount`` are
  fixed when the commission is created and never recomputed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_kernel.domain.money import ZERO


class CommissionStatus(Enum):
    """Commission lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class CommissionKind(Enum):
    """What a commission was earned on."""
    SALE = "sale"
    SERVICE_ORDER = "service_order"


NON_POSITIVE_PROFIT = "non_positive_profit"


@dataclass(frozen=True)
class CommissionableLine:
    """The figures of one line item needed to compute its commission."""
    unit_price: Decimal
    cost_price: Decimal  # snapshot taken when the sale was recorded
    quantity: Decimal
    commission_percent: Decimal
    discount: Decimal = ZERO


@dataclass(frozen=True)
class CommissionCalculation:
    """Outcome of ``calculate_line_commission``."""
    profit_amount: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    needs_review: bool = False
    review_reason: str | None = None


@dataclass(frozen=True)
class Commission:
    """A commission on one sale line or service order item."""
    id: UUID
    kind: CommissionKind
    source_id: UUID
    line_item_id: UUID
    user_id: UUID
    profit_amount: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    status: CommissionStatus
    earned_on: date
    product_id: UUID | None = None
    paid_date: date | None = None
    payroll_result_id: UUID | None = None
    needs_review: bool = False
    review_reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class CommissionSummary:
    """Monthly commission totals of one salesperson."""
    user_id: UUID
    year: int
    month: int
    total_earned: Decimal
    total_paid: Decimal
    total_pending: Decimal
    commission_count: int
