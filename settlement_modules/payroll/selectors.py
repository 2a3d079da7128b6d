"""
Payroll Selector (``settlement_modules.payroll.selectors``).

Read-only queries over periods, results, components and payslips.

Results, components and payslips of a period that is ``calculating`` are
hidden: the selector raises ``CalculationInProgressError`` instead of
returning a result set that a running calculation is about to replace.
Period metadata (status, version, totals) stays readable so callers can
see that a calculation is under way.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope
from settlement_kernel.exceptions import (
    CalculationInProgressError,
    PayrollPeriodNotFoundError,
    PayrollResultNotFoundError,
)
from settlement_kernel.selectors.base import BaseSelector
from settlement_modules.payroll.models import (
    ComponentLine,
    PayrollPeriodInfo,
    PayrollPeriodStatus,
    PayrollResultInfo,
    PayslipInfo,
)
from settlement_modules.payroll.orm import (
    PayrollComponentModel,
    PayrollPeriodModel,
    PayrollResultModel,
    PayrollSlipModel,
)


class PayrollSelector(BaseSelector):
    """Tenant-scoped reads of payroll data."""

    def get_period(self, scope: TenantScope, period_id: UUID) -> PayrollPeriodInfo:
        return self._period(scope, period_id).to_dto()

    def get_period_for_month(
        self, scope: TenantScope, year: int, month: int,
    ) -> PayrollPeriodInfo | None:
        require_scope(scope)
        row = self.session.scalar(
            select(PayrollPeriodModel).where(
                PayrollPeriodModel.tenant_id == scope.tenant_id,
                PayrollPeriodModel.year == year,
                PayrollPeriodModel.month == month,
            )
        )
        return row.to_dto() if row is not None else None

    def list_periods(self, scope: TenantScope, year: int | None = None) -> list[PayrollPeriodInfo]:
        require_scope(scope)
        stmt = select(PayrollPeriodModel).where(PayrollPeriodModel.tenant_id == scope.tenant_id)
        if year is not None:
            stmt = stmt.where(PayrollPeriodModel.year == year)
        stmt = stmt.order_by(PayrollPeriodModel.year.desc(), PayrollPeriodModel.month.desc())
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def results_for_period(self, scope: TenantScope, period_id: UUID) -> list[PayrollResultInfo]:
        period = self._readable_period(scope, period_id)
        rows = self.session.scalars(
            select(PayrollResultModel)
            .where(PayrollResultModel.period_id == period.id)
            .order_by(PayrollResultModel.employee_name, PayrollResultModel.employee_id)
        )
        return [row.to_dto() for row in rows]

    def results_for_employee(
        self, scope: TenantScope, employee_id: UUID,
    ) -> list[PayrollResultInfo]:
        """Results of one employee across every settled (non-calculating) period."""
        require_scope(scope)
        rows = self.session.scalars(
            select(PayrollResultModel)
            .join(PayrollPeriodModel, PayrollResultModel.period_id == PayrollPeriodModel.id)
            .where(
                PayrollResultModel.tenant_id == scope.tenant_id,
                PayrollResultModel.employee_id == employee_id,
                PayrollPeriodModel.status != PayrollPeriodStatus.CALCULATING.value,
            )
            .order_by(PayrollPeriodModel.year.desc(), PayrollPeriodModel.month.desc())
        )
        return [row.to_dto() for row in rows]

    def get_result(self, scope: TenantScope, result_id: UUID) -> PayrollResultInfo:
        return self._result(scope, result_id).to_dto()

    def components_for_result(self, scope: TenantScope, result_id: UUID) -> list[ComponentLine]:
        result = self._result(scope, result_id)
        rows = self.session.scalars(
            select(PayrollComponentModel)
            .where(PayrollComponentModel.payroll_result_id == result.id)
            .order_by(PayrollComponentModel.sequence)
        )
        return [row.to_dto() for row in rows]

    def slip_for_result(self, scope: TenantScope, result_id: UUID) -> PayslipInfo | None:
        result = self._result(scope, result_id)
        row = self.session.scalar(
            select(PayrollSlipModel).where(PayrollSlipModel.payroll_result_id == result.id)
        )
        return row.to_dto() if row is not None else None

    # ------------------------------------------------------------------

    def _period(self, scope: TenantScope, period_id: UUID) -> PayrollPeriodModel:
        require_scope(scope)
        row = self.session.get(PayrollPeriodModel, period_id)
        if row is None:
            raise PayrollPeriodNotFoundError(str(period_id))
        return ensure_tenant(scope, row, "PayrollPeriod")

    def _readable_period(self, scope: TenantScope, period_id: UUID) -> PayrollPeriodModel:
        period = self._period(scope, period_id)
        if period.status == PayrollPeriodStatus.CALCULATING.value:
            raise CalculationInProgressError(
                str(period.id),
                str(period.calculation_run_id) if period.calculation_run_id else None,
            )
        return period

    def _result(self, scope: TenantScope, result_id: UUID) -> PayrollResultModel:
        require_scope(scope)
        row = self.session.get(PayrollResultModel, result_id)
        if row is None:
            raise PayrollResultNotFoundError(str(result_id))
        ensure_tenant(scope, row, "PayrollResult")
        self._readable_period(scope, row.period_id)
        return row
