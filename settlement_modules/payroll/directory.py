"""
Employee Directory (``settlement_modules.payroll.directory``).

Responsibility
--------------
The narrow interface through which payroll reads employee identity and
standing compensation, plus a SQL-backed implementation over
``payroll_employee_compensations``.

Architecture position
---------------------
**Modules layer**.  ``PayrollService`` depends on the ``EmployeeDirectory``
protocol only; a deployment with its own HR system can supply another
implementation.

Failure modes
-------------
* ``EmployeeNotFoundError`` -- unknown employee within the tenant.
* ``ValidationError`` -- negative salary, dependents or exempt earnings.
* ``TenantViolationError`` -- employee row belongs to another tenant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.money import ZERO
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope, stamp_tenant
from settlement_kernel.exceptions import EmployeeNotFoundError, ValidationError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.payroll.models import EmployeeCompensation
from settlement_modules.payroll.orm import EmployeeCompensationModel

logger = get_logger("modules.payroll.directory")

_UPDATABLE_FIELDS = frozenset({
    "name",
    "base_salary",
    "dependents",
    "non_taxable_earnings",
    "tax_id",
    "department",
    "position",
    "bank_name",
    "bank_agency",
    "bank_account",
    "user_id",
    "is_active",
})


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Read access to employees eligible for payroll."""

    def list_active(self, scope: TenantScope) -> Sequence[EmployeeCompensation]:
        """Active compensation records of the tenant, ordered by name."""
        ...

    def get(self, scope: TenantScope, employee_id: UUID) -> EmployeeCompensation:
        """One employee's compensation; raises ``EmployeeNotFoundError``."""
        ...


def _validate(compensation: EmployeeCompensation) -> None:
    errors = []
    if compensation.base_salary < ZERO:
        errors.append("base_salary cannot be negative")
    if compensation.dependents < 0:
        errors.append("dependents cannot be negative")
    if compensation.non_taxable_earnings < ZERO:
        errors.append("non_taxable_earnings cannot be negative")
    if not compensation.name:
        errors.append("name is required")
    if errors:
        raise ValidationError(
            f"Invalid compensation for employee {compensation.employee_id}: "
            + "; ".join(errors)
        )


class SqlEmployeeDirectory(BaseService):
    """``EmployeeDirectory`` backed by ``EmployeeCompensationModel``."""

    def register_employee(
        self,
        scope: TenantScope,
        compensation: EmployeeCompensation,
        actor_id: UUID,
    ) -> EmployeeCompensation:
        require_scope(scope)
        _validate(compensation)
        with transaction_boundary(
            self.session, logger, "employee_register", entity_id=compensation.employee_id,
        ):
            row = stamp_tenant(scope, EmployeeCompensationModel.from_dto(compensation, actor_id))
            self.session.add(row)
            self.session.flush()
            logger.info(
                "employee_registered",
                extra={"employee_id": str(compensation.employee_id)},
            )
        return row.to_dto()

    def update_compensation(
        self,
        scope: TenantScope,
        employee_id: UUID,
        actor_id: UUID,
        **changes: Any,
    ) -> EmployeeCompensation:
        """Update standing fields.  Already calculated results keep their snapshot."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update fields: {', '.join(sorted(unknown))}")
        with transaction_boundary(
            self.session, logger, "employee_update", entity_id=employee_id,
        ):
            row = self._load(scope, employee_id)
            _validate(replace(row.to_dto(), **changes))
            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "employee_compensation_updated",
                extra={"employee_id": str(employee_id), "fields": sorted(changes)},
            )
        return row.to_dto()

    def list_active(self, scope: TenantScope) -> list[EmployeeCompensation]:
        require_scope(scope)
        rows = self.session.scalars(
            select(EmployeeCompensationModel)
            .where(
                EmployeeCompensationModel.tenant_id == scope.tenant_id,
                EmployeeCompensationModel.is_active.is_(True),
            )
            .order_by(EmployeeCompensationModel.name, EmployeeCompensationModel.employee_id)
        )
        return [row.to_dto() for row in rows]

    def get(self, scope: TenantScope, employee_id: UUID) -> EmployeeCompensation:
        return self._load(scope, employee_id).to_dto()

    def _load(self, scope: TenantScope, employee_id: UUID) -> EmployeeCompensationModel:
        require_scope(scope)
        rows = self.session.scalars(
            select(EmployeeCompensationModel).where(
                EmployeeCompensationModel.employee_id == employee_id,
            )
        ).all()
        if not rows:
            raise EmployeeNotFoundError(str(employee_id))
        for row in rows:
            if row.tenant_id == scope.tenant_id:
                return row
        # employee_id is only unique per tenant
        return ensure_tenant(scope, rows[0], "Employee")
