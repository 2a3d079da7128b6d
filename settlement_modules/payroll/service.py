"""
Payroll Service (``settlement_modules.payroll.service``).

Responsibility
--------------
Owns the monthly payroll period lifecycle: period creation, attendance
entries, calculation and recalculation, approval and payment.

Architecture position
---------------------
**Modules layer**.  Arithmetic lives in the pure ``PayrollCalculator``;
bracket selection in ``settlement_modules.tax``; employee data comes
through the ``EmployeeDirectory`` protocol.  This service sequences
them, persists the outcome and owns every transaction boundary.

Calculation protocol
--------------------
A calculation is two transactions:

1. **Claim** -- lock the period row (``SELECT ... FOR UPDATE``), check the
   optional ``expected_version``, the state, downstream links, bracket
   availability and employee eligibility, then commit the period as
   ``calculating`` with a fresh ``calculation_run_id``.  A concurrent
   request sees the committed claim and fails with
   ``CalculationInProgressError``; selectors hide the period's results
   while the claim stands.
2. **Compute** -- delete the old results, insert one result per employee,
   recompute totals and move to ``calculated`` in a single commit.  On any
   failure or cancellation the transaction is rolled back (old results
   untouched), the claim is released in a new transaction and the error
   is re-raised.

Invariants enforced
-------------------
* Recalculating a period with N eligible employees leaves exactly N
  results, and the period totals equal the sums of their fields.
* Results of an approved or paid period are never replaced.
* Results referenced by a commission or a payslip are never replaced.
* ``paid_at`` / ``paid_by_id`` are written once; paying twice is a no-op.

Failure modes
-------------
* ``InvalidStateTransitionError`` -- action not allowed from current status.
* ``CalculationInProgressError`` / ``ConcurrentModificationError`` /
  ``DownstreamLinkError`` -- retryable conflicts.
* ``MissingTaxBracketsError`` / ``AmbiguousTaxBracketsError`` -- bracket
  tables missing or overlapping for the reference date.
* ``InvalidPayrollEntryError`` / ``NoEligibleEmployeesError`` -- rejected
  before any computation starts.
* ``CalculationCancelledError`` -- caller cancelled; prior results intact.

Audit relevance
---------------
Claim, completion, restore, approval and payment are each logged with
the period id, run id and actor.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_config.schema import PayrollSettings
from settlement_kernel.domain.cancellation import CancellationToken
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.money import ZERO, round2
from settlement_kernel.domain.months import days_in_month, month_start, validate_year_month
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope, stamp_tenant
from settlement_kernel.domain.workflow import resolve_transition
from settlement_kernel.exceptions import (
    CalculationCancelledError,
    CalculationInProgressError,
    ConcurrentModificationError,
    DownstreamLinkError,
    EmployeeNotFoundError,
    InvalidPayrollEntryError,
    InvalidStateTransitionError,
    NoEligibleEmployeesError,
    PayrollPeriodNotFoundError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.commissions.helpers import count_payroll_links, settle_attached_commissions
from settlement_modules.payroll.calculator import PayrollCalculator
from settlement_modules.payroll.directory import EmployeeDirectory, SqlEmployeeDirectory
from settlement_modules.payroll.models import (
    EmployeeCompensation,
    PayrollEntry,
    PayrollEntryInput,
    PayrollPeriodInfo,
    PayrollPeriodStatus,
)
from settlement_modules.payroll.orm import (
    PayrollEntryModel,
    PayrollPeriodModel,
    PayrollResultModel,
    PayrollSlipModel,
)
from settlement_modules.payroll.workflows import (
    NO_PRIOR_RESULTS,
    PAYROLL_PERIOD_WORKFLOW,
    PRIOR_RESULTS_EXIST,
)
from settlement_modules.tax.models import BracketSet, TaxType
from settlement_modules.tax.service import TaxBracketService

logger = get_logger("modules.payroll.service")

# Employee, attendance input and the id of the stored entry it came from
PlanItem = tuple[EmployeeCompensation, PayrollEntryInput, UUID | None]

_ENTRY_EDITABLE = PayrollPeriodStatus.DRAFT.value


class PayrollService(BaseService):
    """
    Payroll period lifecycle for one tenant at a time.

    Contract
    --------
    * Every public method takes a ``TenantScope`` first and returns a
      frozen DTO or raises a typed ``SettlementError``.
    * Every public write method commits on success and rolls back on
      failure; a rejected command leaves the period in its prior state.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: PayrollSettings | None = None,
        directory: EmployeeDirectory | None = None,
    ):
        super().__init__(session, clock)
        self._settings = settings or PayrollSettings()
        self._calculator = PayrollCalculator(self._settings)
        self._directory = directory or SqlEmployeeDirectory(session, self._clock)
        self._tax = TaxBracketService(session, self._clock)

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def create_period(
        self,
        scope: TenantScope,
        year: int,
        month: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PayrollPeriodInfo:
        """Create the period for ``year``/``month`` or return the existing one."""
        require_scope(scope)
        try:
            validate_year_month(year, month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        existing = self._find_period(scope, year, month)
        if existing is not None:
            return existing.to_dto()

        try:
            with transaction_boundary(
                self.session, logger, "payroll_period_create", year=year, month=month,
            ):
                period = stamp_tenant(scope, PayrollPeriodModel(
                    year=year,
                    month=month,
                    reference_date=month_start(year, month),
                    status=PAYROLL_PERIOD_WORKFLOW.initial_state,
                    notes=notes,
                    created_by_id=actor_id,
                ))
                self.session.add(period)
                self.session.flush()
                logger.info(
                    "payroll_period_created",
                    extra={"period_id": str(period.id), "year": year, "month": month},
                )
        except IntegrityError:
            # Lost a creation race; the winner's row is the period
            existing = self._find_period(scope, year, month)
            if existing is None:
                raise
            return existing.to_dto()
        return period.to_dto()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def upsert_entry(
        self,
        scope: TenantScope,
        period_id: UUID,
        entry: PayrollEntryInput,
        actor_id: UUID,
    ) -> PayrollEntry:
        """Create or replace one employee's attendance entry (draft only)."""
        with transaction_boundary(
            self.session, logger, "payroll_entry_upsert",
            period_id=period_id, employee_id=entry.employee_id,
        ):
            period = self._lock_period(scope, period_id)
            self._require_draft(period, "edit_entries")
            self._validate_entry(scope, period, entry)

            row = self.session.scalar(
                select(PayrollEntryModel).where(
                    PayrollEntryModel.period_id == period.id,
                    PayrollEntryModel.employee_id == entry.employee_id,
                )
            )
            if row is None:
                row = stamp_tenant(scope, PayrollEntryModel(
                    period_id=period.id,
                    employee_id=entry.employee_id,
                    created_by_id=actor_id,
                ))
                self.session.add(row)
            else:
                row.updated_by_id = actor_id
            row.absence_days = entry.absence_days
            row.justified_absence_days = entry.justified_absence_days
            row.overtime_hours = entry.overtime_hours
            row.lateness_hours = entry.lateness_hours
            row.bonus_amount = entry.bonus_amount
            row.notes = entry.notes
            self.session.flush()
            logger.info(
                "payroll_entry_saved",
                extra={"period_id": str(period.id), "employee_id": str(entry.employee_id)},
            )
        return row.to_dto()

    def remove_entry(
        self,
        scope: TenantScope,
        period_id: UUID,
        employee_id: UUID,
        actor_id: UUID,
    ) -> bool:
        """Delete an entry (draft only).  Returns False when there was none."""
        with transaction_boundary(
            self.session, logger, "payroll_entry_remove",
            period_id=period_id, employee_id=employee_id,
        ):
            period = self._lock_period(scope, period_id)
            self._require_draft(period, "edit_entries")
            row = self.session.scalar(
                select(PayrollEntryModel).where(
                    PayrollEntryModel.period_id == period.id,
                    PayrollEntryModel.employee_id == employee_id,
                )
            )
            if row is None:
                return False
            self.session.delete(row)
            self.session.flush()
            logger.info(
                "payroll_entry_removed",
                extra={
                    "period_id": str(period.id),
                    "employee_id": str(employee_id),
                    "actor_id": str(actor_id),
                },
            )
        return True

    def list_entries(self, scope: TenantScope, period_id: UUID) -> list[PayrollEntry]:
        period = self._get_period(scope, period_id)
        rows = self.session.scalars(
            select(PayrollEntryModel)
            .where(PayrollEntryModel.period_id == period.id)
            .order_by(PayrollEntryModel.created_at, PayrollEntryModel.employee_id)
        )
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate(
        self,
        scope: TenantScope,
        period_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PayrollPeriodInfo:
        """Calculate (or recalculate) every eligible employee of the period."""
        with LogContext.bind(tenant_id=scope.tenant_id, actor_id=actor_id, period_id=period_id):
            run_id, plan, social, withholding = self._claim(
                scope, period_id, actor_id, expected_version,
            )
            try:
                return self._compute(
                    scope, period_id, run_id, plan, social, withholding, actor_id, cancel_token,
                )
            except Exception:
                self._release_claim(scope, period_id, run_id, actor_id)
                raise

    def abort_calculation(
        self, scope: TenantScope, period_id: UUID, actor_id: UUID,
    ) -> PayrollPeriodInfo:
        """Release a claim left behind by a crashed calculation."""
        with transaction_boundary(
            self.session, logger, "payroll_calculation_abort", period_id=period_id,
        ):
            period = self._lock_period(scope, period_id)
            stale_run = period.calculation_run_id
            self._unclaim(period, actor_id)
            self.session.flush()
            logger.warning(
                "payroll_calculation_aborted",
                extra={
                    "period_id": str(period.id),
                    "run_id": str(stale_run) if stale_run else None,
                    "status": period.status,
                },
            )
        return period.to_dto()

    def _claim(
        self,
        scope: TenantScope,
        period_id: UUID,
        actor_id: UUID,
        expected_version: int | None,
    ) -> tuple[UUID, list[PlanItem], BracketSet, BracketSet]:
        with transaction_boundary(
            self.session, logger, "payroll_calculation_claim", period_id=period_id,
        ):
            period = self._lock_period(scope, period_id)
            if expected_version is not None and period.version != expected_version:
                raise ConcurrentModificationError(
                    "PayrollPeriod", str(period.id), expected_version, period.version,
                )
            if period.status == PayrollPeriodStatus.CALCULATING.value:
                raise CalculationInProgressError(
                    str(period.id),
                    str(period.calculation_run_id) if period.calculation_run_id else None,
                )
            next_status = resolve_transition(
                PAYROLL_PERIOD_WORKFLOW, period.status, "calculate", entity_id=period.id,
            )

            self._check_downstream_links(period)
            social = self._tax.load_bracket_set(TaxType.SOCIAL_CONTRIBUTION, period.reference_date)
            withholding = self._tax.load_bracket_set(
                TaxType.INCOME_WITHHOLDING, period.reference_date,
            )
            plan = self._plan(scope, period)
            if not plan:
                raise NoEligibleEmployeesError(str(period.id))

            run_id = uuid4()
            period.status_before_calculation = period.status
            period.status = next_status
            period.calculation_run_id = run_id
            period.calculation_started_at = self._clock.now()
            period.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "payroll_calculation_claimed",
                extra={
                    "period_id": str(period.id),
                    "run_id": str(run_id),
                    "previous_status": period.status_before_calculation,
                    "employee_count": len(plan),
                    "bracket_date": period.reference_date.isoformat(),
                },
            )
        return run_id, plan, social, withholding

    def _compute(
        self,
        scope: TenantScope,
        period_id: UUID,
        run_id: UUID,
        plan: Sequence[PlanItem],
        social: BracketSet,
        withholding: BracketSet,
        actor_id: UUID,
        cancel_token: CancellationToken | None,
    ) -> PayrollPeriodInfo:
        with transaction_boundary(
            self.session, logger, "payroll_calculation", period_id=period_id, run_id=run_id,
        ):
            period = self._lock_period(scope, period_id)
            if period.calculation_run_id != run_id:
                raise CalculationInProgressError(
                    str(period.id),
                    str(period.calculation_run_id) if period.calculation_run_id else None,
                )

            old_results = self._result_rows(period.id)
            for row in old_results:
                self.session.delete(row)
            # Deletes must reach the database before the re-inserts
            self.session.flush()

            now = self._clock.now()
            new_results = []
            for processed, (compensation, entry, entry_id) in enumerate(plan):
                self._check_cancelled(cancel_token, period.id, processed, len(plan))
                outcome = self._calculator.calculate(compensation, entry, social, withholding)
                row = stamp_tenant(scope, PayrollResultModel.from_calculation(
                    outcome, period.id, now, actor_id, payroll_entry_id=entry_id,
                ))
                for component in row.components:
                    stamp_tenant(scope, component)
                self.session.add(row)
                new_results.append(row)
            self._check_cancelled(cancel_token, period.id, len(plan), len(plan))

            period.employee_count = len(new_results)
            period.total_gross = round2(sum((r.gross_salary for r in new_results), ZERO))
            period.total_deductions = round2(sum((r.total_deductions for r in new_results), ZERO))
            period.total_contributions = round2(
                sum((r.total_contributions for r in new_results), ZERO)
            )
            period.total_social_contribution = round2(
                sum((r.social_contribution for r in new_results), ZERO)
            )
            period.total_income_withholding = round2(
                sum((r.income_withholding for r in new_results), ZERO)
            )
            period.total_net = round2(sum((r.net_salary for r in new_results), ZERO))
            period.total_employer_cost = round2(
                sum((r.employer_cost for r in new_results), ZERO)
            )
            period.status = resolve_transition(
                PAYROLL_PERIOD_WORKFLOW, period.status, "complete_calculation",
                entity_id=period.id,
            )
            period.calculation_run_id = None
            period.status_before_calculation = None
            period.calculated_at = now
            period.calculated_by_id = actor_id
            period.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "payroll_calculated",
                extra={
                    "period_id": str(period.id),
                    "run_id": str(run_id),
                    "replaced": len(old_results),
                    "employee_count": period.employee_count,
                    "total_gross": str(period.total_gross),
                    "total_net": str(period.total_net),
                },
            )
        return period.to_dto()

    def _release_claim(
        self, scope: TenantScope, period_id: UUID, run_id: UUID, actor_id: UUID,
    ) -> None:
        """Restore the pre-claim status after a failed or cancelled run."""
        try:
            with transaction_boundary(
                self.session, logger, "payroll_calculation_restore",
                period_id=period_id, run_id=run_id,
            ):
                period = self._lock_period(scope, period_id)
                if period.calculation_run_id != run_id:
                    return
                self._unclaim(period, actor_id)
                self.session.flush()
                logger.warning(
                    "payroll_calculation_restored",
                    extra={
                        "period_id": str(period.id),
                        "run_id": str(run_id),
                        "status": period.status,
                    },
                )
        except Exception:
            # The original failure is re-raised by the caller; the stuck
            # claim can still be released with abort_calculation().
            logger.exception(
                "payroll_calculation_restore_failed",
                extra={"period_id": str(period_id), "run_id": str(run_id)},
            )

    def _unclaim(self, period: PayrollPeriodModel, actor_id: UUID) -> None:
        guard = PRIOR_RESULTS_EXIST if self._result_rows(period.id) else NO_PRIOR_RESULTS
        period.status = resolve_transition(
            PAYROLL_PERIOD_WORKFLOW, period.status, "abort_calculation",
            [guard.name], entity_id=period.id,
        )
        period.calculation_run_id = None
        period.status_before_calculation = None
        period.updated_by_id = actor_id

    @staticmethod
    def _check_cancelled(
        token: CancellationToken | None, period_id: UUID, processed: int, total: int,
    ) -> None:
        if token is not None and token.cancelled:
            logger.warning(
                "payroll_calculation_cancelled",
                extra={"period_id": str(period_id), "processed": processed, "total": total},
            )
            raise CalculationCancelledError(str(period_id), processed, total)

    # ------------------------------------------------------------------
    # Approval and payment
    # ------------------------------------------------------------------

    def approve(
        self,
        scope: TenantScope,
        period_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PayrollPeriodInfo:
        """Freeze the calculated results for payment."""
        with transaction_boundary(
            self.session, logger, "payroll_approve", period_id=period_id,
        ):
            period = self._lock_period(scope, period_id)
            period.status = resolve_transition(
                PAYROLL_PERIOD_WORKFLOW, period.status, "approve", entity_id=period.id,
            )
            period.approved_at = self._clock.now()
            period.approved_by_id = actor_id
            period.updated_by_id = actor_id
            if notes:
                period.notes = notes
            self.session.flush()
            logger.info(
                "payroll_approved",
                extra={"period_id": str(period.id), "approved_by": str(actor_id)},
            )
        return period.to_dto()

    def mark_paid(
        self,
        scope: TenantScope,
        period_id: UUID,
        actor_id: UUID,
        payment_date: date,
        notes: str | None = None,
    ) -> PayrollPeriodInfo:
        """Record payment; a second call on a paid period changes nothing."""
        with transaction_boundary(
            self.session, logger, "payroll_pay", period_id=period_id,
        ):
            period = self._lock_period(scope, period_id)
            was_paid = period.status == PayrollPeriodStatus.PAID.value
            period.status = resolve_transition(
                PAYROLL_PERIOD_WORKFLOW, period.status, "pay", entity_id=period.id,
            )
            if was_paid:
                logger.info("payroll_already_paid", extra={"period_id": str(period.id)})
                return period.to_dto()

            if period.paid_at is None:
                period.paid_at = self._clock.now()
                period.paid_by_id = actor_id
            period.payment_date = payment_date
            period.updated_by_id = actor_id
            if notes:
                period.notes = notes

            results = self._result_rows(period.id)
            stamped = 0
            for row in results:
                if row.payment_date is None:
                    row.payment_date = payment_date
                    row.updated_by_id = actor_id
                    stamped += 1
            settled = settle_attached_commissions(
                self.session, scope, [r.id for r in results], payment_date, actor_id,
            )
            self.session.flush()
            logger.info(
                "payroll_paid",
                extra={
                    "period_id": str(period.id),
                    "payment_date": payment_date.isoformat(),
                    "results_dated": stamped,
                    "commissions_paid": settled,
                },
            )
        return period.to_dto()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _plan(
        self, scope: TenantScope, period: PayrollPeriodModel,
    ) -> list[PlanItem]:
        """Eligible employees with their entries, in employee-name order."""
        entry_rows = {
            row.employee_id: row
            for row in self.session.scalars(
                select(PayrollEntryModel).where(PayrollEntryModel.period_id == period.id)
            )
        }
        entries = {employee_id: row.to_dto().as_input() for employee_id, row in entry_rows.items()}
        compensations = {c.employee_id: c for c in self._directory.list_active(scope)}
        for employee_id in entries:
            if employee_id not in compensations:
                try:
                    compensations[employee_id] = self._directory.get(scope, employee_id)
                except EmployeeNotFoundError as exc:
                    raise InvalidPayrollEntryError(
                        str(employee_id), ["unknown employee"],
                    ) from exc

        max_days = days_in_month(period.year, period.month)
        plan = []
        for compensation in sorted(
            compensations.values(), key=lambda c: (c.name, str(c.employee_id)),
        ):
            entry = entries.get(
                compensation.employee_id,
                PayrollEntryInput(employee_id=compensation.employee_id),
            )
            errors = entry.validation_errors(max_days)
            if errors:
                raise InvalidPayrollEntryError(str(compensation.employee_id), errors)
            entry_row = entry_rows.get(compensation.employee_id)
            plan.append((compensation, entry, entry_row.id if entry_row is not None else None))
        return plan

    def _validate_entry(
        self, scope: TenantScope, period: PayrollPeriodModel, entry: PayrollEntryInput,
    ) -> None:
        errors = entry.validation_errors(days_in_month(period.year, period.month))
        try:
            self._directory.get(scope, entry.employee_id)
        except EmployeeNotFoundError:
            errors.append("unknown employee")
        if errors:
            raise InvalidPayrollEntryError(str(entry.employee_id), errors)

    def _check_downstream_links(self, period: PayrollPeriodModel) -> None:
        result_ids = [row.id for row in self._result_rows(period.id)]
        if not result_ids:
            return
        commission_links = count_payroll_links(self.session, result_ids)
        slip_links = self.session.scalar(
            select(func.count()).select_from(PayrollSlipModel).where(
                PayrollSlipModel.payroll_result_id.in_(result_ids)
            )
        ) or 0
        if commission_links or slip_links:
            raise DownstreamLinkError(str(period.id), commission_links, slip_links)

    def _result_rows(self, period_id: UUID) -> list[PayrollResultModel]:
        return list(self.session.scalars(
            select(PayrollResultModel).where(PayrollResultModel.period_id == period_id)
        ))

    @staticmethod
    def _require_draft(period: PayrollPeriodModel, action: str) -> None:
        if period.status != _ENTRY_EDITABLE:
            raise InvalidStateTransitionError(
                "PayrollPeriod", str(period.id), period.status, action,
            )

    def _find_period(self, scope: TenantScope, year: int, month: int) -> PayrollPeriodModel | None:
        return self.session.scalar(
            select(PayrollPeriodModel).where(
                PayrollPeriodModel.tenant_id == scope.tenant_id,
                PayrollPeriodModel.year == year,
                PayrollPeriodModel.month == month,
            )
        )

    def _get_period(self, scope: TenantScope, period_id: UUID) -> PayrollPeriodModel:
        require_scope(scope)
        period = self.session.get(PayrollPeriodModel, period_id)
        if period is None:
            raise PayrollPeriodNotFoundError(str(period_id))
        return ensure_tenant(scope, period, "PayrollPeriod")

    def _lock_period(self, scope: TenantScope, period_id: UUID) -> PayrollPeriodModel:
        """Load the period with a row lock, refreshing any cached state."""
        require_scope(scope)
        period = self.session.scalar(
            select(PayrollPeriodModel)
            .where(PayrollPeriodModel.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if period is None:
            raise PayrollPeriodNotFoundError(str(period_id))
        return ensure_tenant(scope, period, "PayrollPeriod")
