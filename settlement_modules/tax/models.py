"""
Tax Bracket Domain Models (``settlement_modules.tax.models``).

Responsibility
--------------
Frozen value objects for statutory progressive bracket tables: the
contribution types, a single bracket row and the resolved ``BracketSet``
(one effective window of one tax type).

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Amounts and rates are ``Decimal``.
* A ``BracketSet`` holds brackets of a single tax type and a single window,
  ordered by ``(range_start, sort_order)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TaxType(Enum):
    """Contribution types resolved through bracket tables."""
    SOCIAL_CONTRIBUTION = "social_contribution"
    INCOME_WITHHOLDING = "income_withholding"


@dataclass(frozen=True)
class TaxBracket:
    """One progressive bracket: marginal rate plus a precomputed deduction."""
    tax_type: TaxType
    range_start: Decimal
    range_end: Decimal | None  # None = unbounded top bracket
    rate: Decimal  # fraction, e.g. 0.075
    deduction: Decimal
    effective_from: date
    effective_to: date | None = None  # exclusive; None = still in force
    is_active: bool = True
    sort_order: int = 0
    id: UUID | None = None

    def is_effective_on(self, as_of: date) -> bool:
        return (
            self.is_active
            and self.effective_from <= as_of
            and (self.effective_to is None or as_of < self.effective_to)
        )


@dataclass(frozen=True)
class BracketSet:
    """The brackets of one tax type in force for one window."""
    tax_type: TaxType
    effective_from: date
    effective_to: date | None
    brackets: tuple[TaxBracket, ...]

    @property
    def lowest_start(self) -> Decimal:
        return self.brackets[0].range_start

    @property
    def top(self) -> TaxBracket:
        return self.brackets[-1]
