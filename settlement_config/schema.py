"""
Configuration Schema (``settlement_config.schema``).

Responsibility
--------------
Frozen dataclass definitions for every configuration artifact the engine
reads: payroll constants, commission policy, statutory bracket tables and
the assembled ``EngineSettings``.

Architecture position
---------------------
**Config layer** -- pure data definitions, ZERO I/O.  Produced by
``settlement_config.loader`` and consumed by module services.

Invariants enforced
-------------------
* All dataclasses are ``frozen=True``.
* Monetary amounts and rates are ``Decimal``.
* ``__post_init__`` rejects out-of-range values with ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

VALID_NON_POSITIVE_PROFIT_POLICIES = {"floor_and_flag", "skip"}


@dataclass(frozen=True)
class PayrollSettings:
    """Constants of the monthly payroll calculation."""

    monthly_workload_hours: Decimal = Decimal("220")
    days_per_month: Decimal = Decimal("30")
    overtime_multiplier: Decimal = Decimal("1.5")
    dependent_deduction: Decimal = Decimal("189.59")
    employer_social_rate: Decimal = Decimal("0.20")
    fgts_rate: Decimal = Decimal("0.08")
    slip_directory: str = "var"

    def __post_init__(self):
        if self.monthly_workload_hours <= 0:
            raise ValueError("monthly_workload_hours must be positive")
        if self.days_per_month <= 0:
            raise ValueError("days_per_month must be positive")
        if self.overtime_multiplier < 1:
            raise ValueError("overtime_multiplier cannot be below 1")
        if self.dependent_deduction < 0:
            raise ValueError("dependent_deduction cannot be negative")
        for name in ("employer_social_rate", "fgts_rate"):
            rate = getattr(self, name)
            if not (Decimal("0") <= rate < Decimal("1")):
                raise ValueError(f"{name} must be in [0, 1), got {rate}")


@dataclass(frozen=True)
class CommissionSettings:
    """Commission policy knobs."""

    non_positive_profit: str = "floor_and_flag"

    def __post_init__(self):
        if self.non_positive_profit not in VALID_NON_POSITIVE_PROFIT_POLICIES:
            raise ValueError(
                f"non_positive_profit must be one of "
                f"{sorted(VALID_NON_POSITIVE_PROFIT_POLICIES)}, "
                f"got '{self.non_positive_profit}'"
            )


@dataclass(frozen=True)
class TaxBracketDef:
    """One row of a statutory bracket table."""

    range_start: Decimal
    range_end: Decimal | None
    rate: Decimal
    deduction: Decimal
    sort_order: int


@dataclass(frozen=True)
class TaxTableDef:
    """A bracket window for one tax type."""

    tax_type: str
    effective_from: date
    brackets: tuple[TaxBracketDef, ...]
    effective_to: date | None = None


@dataclass(frozen=True)
class EngineSettings:
    """Everything loaded from one configuration document."""

    config_id: str
    version: int
    database_url: str
    payroll: PayrollSettings = field(default_factory=PayrollSettings)
    commission: CommissionSettings = field(default_factory=CommissionSettings)
    tax_tables: tuple[TaxTableDef, ...] = ()
    checksum: str = ""
