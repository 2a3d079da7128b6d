"""
Payroll Domain Models (``settlement_modules.payroll.models``).

Responsibility
--------------
Frozen value objects for the monthly payroll: period status, standing
employee compensation, attendance entries, the per-employee calculation
outcome with its component lines, and the read models returned by the
service and selector.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; all amounts are ``Decimal``.
* ``EmployeeSnapshot`` is copied onto each result so later employee edits
  never alter a calculated result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_kernel.domain.money import ZERO


class PayrollPeriodStatus(Enum):
    """Payroll period lifecycle states."""
    DRAFT = "draft"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


class ComponentType(Enum):
    """Kind of payroll line."""
    EARNING = "earning"
    DEDUCTION = "deduction"
    CONTRIBUTION = "contribution"


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee identity fields as they were at calculation time."""
    employee_id: UUID
    name: str
    tax_id: str | None = None
    department: str | None = None
    position: str | None = None
    bank_name: str | None = None
    bank_agency: str | None = None
    bank_account: str | None = None
    dependents: int = 0


@dataclass(frozen=True)
class EmployeeCompensation:
    """Standing compensation record from the employee directory."""
    employee_id: UUID
    name: str
    base_salary: Decimal
    dependents: int = 0
    non_taxable_earnings: Decimal = ZERO
    tax_id: str | None = None
    department: str | None = None
    position: str | None = None
    bank_name: str | None = None
    bank_agency: str | None = None
    bank_account: str | None = None
    user_id: UUID | None = None
    is_active: bool = True
    id: UUID | None = None

    def snapshot(self) -> EmployeeSnapshot:
        return EmployeeSnapshot(
            employee_id=self.employee_id,
            name=self.name,
            tax_id=self.tax_id,
            department=self.department,
            position=self.position,
            bank_name=self.bank_name,
            bank_agency=self.bank_agency,
            bank_account=self.bank_account,
            dependents=self.dependents,
        )


@dataclass(frozen=True)
class PayrollEntryInput:
    """Attendance adjustments for one employee in one period."""
    employee_id: UUID
    absence_days: Decimal = ZERO
    justified_absence_days: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    lateness_hours: Decimal = ZERO
    bonus_amount: Decimal = ZERO
    notes: str | None = None

    def validation_errors(self, max_days: int) -> list[str]:
        errors = []
        for name in (
            "absence_days",
            "justified_absence_days",
            "overtime_hours",
            "lateness_hours",
            "bonus_amount",
        ):
            if getattr(self, name) < ZERO:
                errors.append(f"{name} cannot be negative")
        if self.justified_absence_days > self.absence_days:
            errors.append("justified_absence_days exceeds absence_days")
        if self.absence_days > max_days:
            errors.append(f"absence_days exceeds the {max_days} days of the month")
        return errors


@dataclass(frozen=True)
class PayrollEntry:
    """A stored attendance entry."""
    id: UUID
    period_id: UUID
    employee_id: UUID
    absence_days: Decimal
    justified_absence_days: Decimal
    overtime_hours: Decimal
    lateness_hours: Decimal
    bonus_amount: Decimal
    notes: str | None = None

    def as_input(self) -> PayrollEntryInput:
        return PayrollEntryInput(
            employee_id=self.employee_id,
            absence_days=self.absence_days,
            justified_absence_days=self.justified_absence_days,
            overtime_hours=self.overtime_hours,
            lateness_hours=self.lateness_hours,
            bonus_amount=self.bonus_amount,
            notes=self.notes,
        )


@dataclass(frozen=True)
class ComponentLine:
    """One line of a payslip."""
    sequence: int
    code: str
    description: str
    component_type: ComponentType
    amount: Decimal
    quantity: Decimal | None = None
    base_amount: Decimal | None = None
    rate: Decimal | None = None
    impacts_fgts: bool = False
    is_taxable: bool = False


@dataclass(frozen=True)
class EmployeePayroll:
    """Outcome of ``PayrollCalculator.calculate`` for one employee."""
    snapshot: EmployeeSnapshot
    base_salary: Decimal
    hourly_rate: Decimal
    daily_rate: Decimal
    overtime_hours: Decimal
    overtime_amount: Decimal
    bonus_amount: Decimal
    unjustified_absence_days: Decimal
    absence_amount: Decimal
    lateness_hours: Decimal
    lateness_amount: Decimal
    gross_salary: Decimal
    taxable_base: Decimal
    social_contribution: Decimal
    withholding_base: Decimal
    income_withholding: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    total_contributions: Decimal
    net_salary: Decimal
    additional_employer_cost: Decimal
    employer_cost: Decimal
    components: tuple[ComponentLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PayrollResultInfo:
    """A stored payroll result with its component lines."""
    id: UUID
    period_id: UUID
    employee_id: UUID
    snapshot: EmployeeSnapshot
    base_salary: Decimal
    gross_salary: Decimal
    taxable_base: Decimal
    social_contribution: Decimal
    income_withholding: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    total_contributions: Decimal
    net_salary: Decimal
    additional_employer_cost: Decimal
    employer_cost: Decimal
    calculation_date: datetime
    payment_date: date | None = None
    payroll_entry_id: UUID | None = None
    components: tuple[ComponentLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PayrollPeriodInfo:
    """Period status, version and totals."""
    id: UUID
    year: int
    month: int
    status: PayrollPeriodStatus
    version: int
    employee_count: int = 0
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_contributions: Decimal = ZERO
    total_social_contribution: Decimal = ZERO
    total_income_withholding: Decimal = ZERO
    total_net: Decimal = ZERO
    total_employer_cost: Decimal = ZERO
    calculated_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    paid_at: datetime | None = None
    paid_by_id: UUID | None = None
    payment_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PayslipInfo:
    """Metadata of a rendered payslip document."""
    id: UUID
    payroll_result_id: UUID
    file_path: str
    file_hash: str
    file_size: int
    content_type: str
    generated_at: datetime
    generated_by_id: UUID
    notes: str | None = None
