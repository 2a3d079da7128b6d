"""
Payroll ORM Persistence Models (``settlement_modules.payroll.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the payroll DTOs defined in
    ``settlement_modules.payroll.models``: standing employee compensation,
    periods, attendance entries, results, component lines and payslip
    metadata.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - One period per (tenant, year, month) (``uq_payroll_period_month``).
    - One entry and one result per (period, employee).
    - One component per (result, sequence).
    - ``PayrollPeriodModel.version`` is SQLAlchemy's ``version_id_col``:
      a flush against a stale row raises ``StaleDataError``.
    - Results and components are immutable once written (listeners in
      ``settlement_kernel.db.immutability``); only ``payment_date`` and
      audit metadata may change on a result.

Audit relevance:
    Results carry the employee snapshot, every intermediate amount and the
    calculation date, so a paid payroll can be re-read exactly as it was
    approved.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TenantScopedMixin, TrackedBase

# Fields of a result that may change after insert
PAYROLL_RESULT_MUTABLE_FIELDS = frozenset({"payment_date"})


# ---------------------------------------------------------------------------
# EmployeeCompensationModel
# ---------------------------------------------------------------------------

class EmployeeCompensationModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for ``EmployeeCompensation``.

    Contract:
        The narrow slice of the HR record that payroll reads.  Updated in
        place; results keep their own snapshot.
    """

    __tablename__ = "payroll_employee_compensations"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    dependents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    non_taxable_earnings: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_agency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String(30), nullable=True)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", name="uq_payroll_employee_compensation"),
        Index("idx_payroll_compensation_active", "tenant_id", "is_active"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import EmployeeCompensation
        return EmployeeCompensation(
            id=self.id,
            employee_id=self.employee_id,
            name=self.name,
            base_salary=self.base_salary,
            dependents=self.dependents,
            non_taxable_earnings=self.non_taxable_earnings,
            tax_id=self.tax_id,
            department=self.department,
            position=self.position,
            bank_name=self.bank_name,
            bank_agency=self.bank_agency,
            bank_account=self.bank_account,
            user_id=self.user_id,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id) -> "EmployeeCompensationModel":
        return cls(
            employee_id=dto.employee_id,
            name=dto.name,
            base_salary=dto.base_salary,
            dependents=dto.dependents,
            non_taxable_earnings=dto.non_taxable_earnings,
            tax_id=dto.tax_id,
            department=dto.department,
            position=dto.position,
            bank_name=dto.bank_name,
            bank_agency=dto.bank_agency,
            bank_account=dto.bank_account,
            user_id=dto.user_id,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# PayrollPeriodModel
# ---------------------------------------------------------------------------

class PayrollPeriodModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for a monthly payroll period.

    Contract:
        ``status`` changes only through ``PAYROLL_PERIOD_WORKFLOW``.  While
        ``calculating``, ``calculation_run_id`` identifies the claim and
        ``status_before_calculation`` the state to restore on failure.
    """

    __tablename__ = "payroll_periods"

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    calculation_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status_before_calculation: Mapped[str | None] = mapped_column(String(50), nullable=True)
    calculation_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    calculated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_contributions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_social_contribution: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_income_withholding: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_employer_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    results: Mapped[list["PayrollResultModel"]] = relationship(
        back_populates="period",
        order_by="PayrollResultModel.employee_name",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "year", "month", name="uq_payroll_period_month"),
        Index("idx_payroll_period_status", "tenant_id", "status"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import PayrollPeriodInfo, PayrollPeriodStatus
        return PayrollPeriodInfo(
            id=self.id,
            year=self.year,
            month=self.month,
            status=PayrollPeriodStatus(self.status),
            version=self.version,
            employee_count=self.employee_count,
            total_gross=self.total_gross,
            total_deductions=self.total_deductions,
            total_contributions=self.total_contributions,
            total_social_contribution=self.total_social_contribution,
            total_income_withholding=self.total_income_withholding,
            total_net=self.total_net,
            total_employer_cost=self.total_employer_cost,
            calculated_at=self.calculated_at,
            approved_at=self.approved_at,
            approved_by_id=self.approved_by_id,
            paid_at=self.paid_at,
            paid_by_id=self.paid_by_id,
            payment_date=self.payment_date,
            notes=self.notes,
        )


# ---------------------------------------------------------------------------
# PayrollEntryModel
# ---------------------------------------------------------------------------

class PayrollEntryModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``PayrollEntry``.  Editable only while the period is draft."""

    __tablename__ = "payroll_entries"

    period_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_periods.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    absence_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    justified_absence_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    lateness_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    bonus_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="uq_payroll_entry_employee"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import PayrollEntry
        return PayrollEntry(
            id=self.id,
            period_id=self.period_id,
            employee_id=self.employee_id,
            absence_days=self.absence_days,
            justified_absence_days=self.justified_absence_days,
            overtime_hours=self.overtime_hours,
            lateness_hours=self.lateness_hours,
            bonus_amount=self.bonus_amount,
            notes=self.notes,
        )


# ---------------------------------------------------------------------------
# PayrollResultModel
# ---------------------------------------------------------------------------

class PayrollResultModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for one employee's calculated payroll.

    Guarantees:
        - Frozen after insert except ``payment_date``.
        - Deleted only by a recalculation of its period.
    """

    __tablename__ = "payroll_results"

    period_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_periods.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    # None when the employee was paid without an attendance entry
    payroll_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_entries.id"), nullable=True,
    )

    # Employee snapshot
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    employee_tax_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_agency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String(30), nullable=True)
    dependents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    daily_rate: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_hours: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_amount: Mapped[Decimal] = mapped_column(nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(nullable=False)
    absence_days: Mapped[Decimal] = mapped_column(nullable=False)
    absence_amount: Mapped[Decimal] = mapped_column(nullable=False)
    lateness_hours: Mapped[Decimal] = mapped_column(nullable=False)
    lateness_amount: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_base: Mapped[Decimal] = mapped_column(nullable=False)
    social_contribution: Mapped[Decimal] = mapped_column(nullable=False)
    withholding_base: Mapped[Decimal] = mapped_column(nullable=False)
    income_withholding: Mapped[Decimal] = mapped_column(nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_contributions: Mapped[Decimal] = mapped_column(nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(nullable=False)
    additional_employer_cost: Mapped[Decimal] = mapped_column(nullable=False)
    employer_cost: Mapped[Decimal] = mapped_column(nullable=False)

    calculation_date: Mapped[datetime] = mapped_column(nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    period: Mapped["PayrollPeriodModel"] = relationship(back_populates="results")
    components: Mapped[list["PayrollComponentModel"]] = relationship(
        back_populates="result",
        cascade="all, delete-orphan",
        order_by="PayrollComponentModel.sequence",
    )

    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="uq_payroll_result_employee"),
        Index("idx_payroll_result_tenant_employee", "tenant_id", "employee_id"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import EmployeeSnapshot, PayrollResultInfo
        return PayrollResultInfo(
            id=self.id,
            period_id=self.period_id,
            employee_id=self.employee_id,
            payroll_entry_id=self.payroll_entry_id,
            snapshot=EmployeeSnapshot(
                employee_id=self.employee_id,
                name=self.employee_name,
                tax_id=self.employee_tax_id,
                department=self.department,
                position=self.position,
                bank_name=self.bank_name,
                bank_agency=self.bank_agency,
                bank_account=self.bank_account,
                dependents=self.dependents,
            ),
            base_salary=self.base_salary,
            gross_salary=self.gross_salary,
            taxable_base=self.taxable_base,
            social_contribution=self.social_contribution,
            income_withholding=self.income_withholding,
            total_earnings=self.total_earnings,
            total_deductions=self.total_deductions,
            total_contributions=self.total_contributions,
            net_salary=self.net_salary,
            additional_employer_cost=self.additional_employer_cost,
            employer_cost=self.employer_cost,
            calculation_date=self.calculation_date,
            payment_date=self.payment_date,
            components=tuple(c.to_dto() for c in self.components),
        )

    @classmethod
    def from_calculation(
        cls, outcome, period_id, calculation_date, created_by_id, payroll_entry_id=None,
    ):
        """Build a result row and its components from an ``EmployeePayroll``."""
        snap = outcome.snapshot
        row = cls(
            period_id=period_id,
            employee_id=snap.employee_id,
            payroll_entry_id=payroll_entry_id,
            employee_name=snap.name,
            employee_tax_id=snap.tax_id,
            department=snap.department,
            position=snap.position,
            bank_name=snap.bank_name,
            bank_agency=snap.bank_agency,
            bank_account=snap.bank_account,
            dependents=snap.dependents,
            base_salary=outcome.base_salary,
            hourly_rate=outcome.hourly_rate,
            daily_rate=outcome.daily_rate,
            overtime_hours=outcome.overtime_hours,
            overtime_amount=outcome.overtime_amount,
            bonus_amount=outcome.bonus_amount,
            absence_days=outcome.unjustified_absence_days,
            absence_amount=outcome.absence_amount,
            lateness_hours=outcome.lateness_hours,
            lateness_amount=outcome.lateness_amount,
            gross_salary=outcome.gross_salary,
            taxable_base=outcome.taxable_base,
            social_contribution=outcome.social_contribution,
            withholding_base=outcome.withholding_base,
            income_withholding=outcome.income_withholding,
            total_earnings=outcome.total_earnings,
            total_deductions=outcome.total_deductions,
            total_contributions=outcome.total_contributions,
            net_salary=outcome.net_salary,
            additional_employer_cost=outcome.additional_employer_cost,
            employer_cost=outcome.employer_cost,
            calculation_date=calculation_date,
            created_by_id=created_by_id,
        )
        row.components = [
            PayrollComponentModel.from_dto(line, created_by_id) for line in outcome.components
        ]
        return row


# ---------------------------------------------------------------------------
# PayrollComponentModel
# ---------------------------------------------------------------------------

class PayrollComponentModel(TenantScopedMixin, TrackedBase):
    """ORM model for one payslip line.  Never updated; deleted only with its result."""

    __tablename__ = "payroll_components"

    payroll_result_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_results.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    base_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    impacts_fgts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    result: Mapped["PayrollResultModel"] = relationship(back_populates="components")

    __table_args__ = (
        UniqueConstraint("payroll_result_id", "sequence", name="uq_payroll_component_sequence"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import ComponentLine, ComponentType
        return ComponentLine(
            sequence=self.sequence,
            code=self.code,
            description=self.description,
            component_type=ComponentType(self.component_type),
            amount=self.amount,
            quantity=self.quantity,
            base_amount=self.base_amount,
            rate=self.rate,
            impacts_fgts=self.impacts_fgts,
            is_taxable=self.is_taxable,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id) -> "PayrollComponentModel":
        return cls(
            sequence=dto.sequence,
            code=dto.code,
            description=dto.description,
            component_type=dto.component_type.value,
            quantity=dto.quantity,
            base_amount=dto.base_amount,
            rate=dto.rate,
            amount=dto.amount,
            impacts_fgts=dto.impacts_fgts,
            is_taxable=dto.is_taxable,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# PayrollSlipModel
# ---------------------------------------------------------------------------

class PayrollSlipModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for payslip document metadata.

    Contract:
        One slip per result (``uq_payroll_slip_result``); regenerating a
        slip overwrites the row.  While a slip exists its result cannot be
        replaced by a recalculation.
    """

    __tablename__ = "payroll_slips"

    payroll_result_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_results.id"), nullable=False,
    )
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    file_size: Mapped[int] = mapped_column(nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(nullable=False)
    generated_by_id: Mapped[UUID] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_result_id", name="uq_payroll_slip_result"),
    )

    def to_dto(self):
        from settlement_modules.payroll.models import PayslipInfo
        return PayslipInfo(
            id=self.id,
            payroll_result_id=self.payroll_result_id,
            file_path=self.file_path,
            file_hash=self.file_hash,
            file_size=self.file_size,
            content_type=self.content_type,
            generated_at=self.generated_at,
            generated_by_id=self.generated_by_id,
            notes=self.notes,
        )
