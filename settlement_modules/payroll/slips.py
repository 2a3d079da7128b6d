"""
Payslip Service (``settlement_modules.payroll.slips``).

Responsibility
--------------
Renders one employee's payroll result as an ``.xlsx`` payslip with
``openpyxl``, stores the bytes through a ``SlipStorage`` and records the
document metadata (path, SHA-256, size, content type, who/when).

Architecture position
---------------------
**Modules layer**.  Reads results written by ``PayrollService``; the
document bytes live outside the database, only their metadata inside.

Invariants enforced
-------------------
* Payslips exist only for periods that have been calculated (never for
  ``draft``; ``calculating`` is refused as in progress).
* One slip per result; regenerating overwrites the file and the row.
* A slip is a downstream link: while it exists, the period cannot be
  recalculated.  ``discard_slips`` removes the slips of a ``calculated``
  period.

Failure modes
-------------
* ``InvalidStateTransitionError`` -- draft period, or discarding slips of
  an approved/paid period.
* ``CalculationInProgressError`` -- period is being calculated.
* ``OSError`` -- storage failures propagate after rollback.
"""

from __future__ import annotations

import hashlib
from io import BytesIO
from pathlib import Path
from uuid import UUID

import openpyxl
from openpyxl.styles import Border, Font, Side
from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.schema import PayrollSettings
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope, stamp_tenant
from settlement_kernel.exceptions import (
    CalculationInProgressError,
    InvalidStateTransitionError,
    PayrollPeriodNotFoundError,
    PayrollResultNotFoundError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.payroll.models import PayrollPeriodStatus, PayslipInfo
from settlement_modules.payroll.orm import (
    PayrollPeriodModel,
    PayrollResultModel,
    PayrollSlipModel,
)

logger = get_logger("modules.payroll.slips")

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MONEY_FORMAT = "#,##0.00"


def slip_path(tenant_id: UUID, employee_id: UUID, year: int, month: int) -> str:
    """Storage key of a payslip, relative to the storage root.

    Employee ids are only unique within a tenant, so the tenant is the
    first path segment.
    """
    return (
        f"tenant-{tenant_id}/payroll-slips/period-{year:04d}-{month:02d}/"
        f"payslip-{employee_id}-{year}-{month}.xlsx"
    )


class SlipStorage:
    """Local-directory document storage for payslips."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def save(self, relative_path: str, content: bytes) -> str:
        target = self.root / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return relative_path

    def read(self, relative_path: str) -> bytes:
        return (self.root / relative_path).read_bytes()

    def delete(self, relative_path: str) -> None:
        (self.root / relative_path).unlink(missing_ok=True)


def render_payslip(result: PayrollResultModel, period: PayrollPeriodModel) -> bytes:
    """Build the payslip workbook and return its bytes."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Payslip"

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 32
    ws.column_dimensions["C"].width = 14
    ws.column_dimensions["D"].width = 16
    ws.column_dimensions["E"].width = 16

    bold = Font(bold=True)
    thin = Side(style="thin")
    boxed = Border(left=thin, right=thin, top=thin, bottom=thin)

    ws["A1"] = "PAYSLIP"
    ws["A1"].font = Font(bold=True, size=12)
    ws["C1"] = "Period"
    ws["D1"] = f"{period.year:04d}-{period.month:02d}"

    header = [
        ("Employee", result.employee_name),
        ("Tax id", result.employee_tax_id or ""),
        ("Department", result.department or ""),
        ("Position", result.position or ""),
        ("Bank", result.bank_name or ""),
        ("Agency / account", f"{result.bank_agency or ''} / {result.bank_account or ''}"),
        ("Dependents", result.dependents),
        ("Payment date", result.payment_date.isoformat() if result.payment_date else ""),
    ]
    row = 3
    for label, value in header:
        ws[f"A{row}"] = label
        ws[f"A{row}"].font = bold
        ws[f"B{row}"] = value
        row += 1

    row += 1
    for col, title in zip("ABCDE", ("Code", "Description", "Quantity", "Earnings", "Deductions")):
        cell = ws[f"{col}{row}"]
        cell.value = title
        cell.font = bold
        cell.border = boxed
    row += 1

    for component in result.components:
        ws[f"A{row}"] = component.code
        ws[f"B{row}"] = component.description
        if component.quantity is not None:
            ws[f"C{row}"] = component.quantity
        target = "D" if component.component_type == "earning" else "E"
        ws[f"{target}{row}"] = component.amount
        ws[f"{target}{row}"].number_format = MONEY_FORMAT
        row += 1

    row += 1
    totals = [
        ("Total earnings", result.total_earnings),
        ("Total deductions", result.total_deductions),
        ("Social contribution", result.total_contributions),
        ("Gross salary", result.gross_salary),
        ("Net salary", result.net_salary),
    ]
    for label, amount in totals:
        ws[f"B{row}"] = label
        ws[f"B{row}"].font = bold
        ws[f"E{row}"] = amount
        ws[f"E{row}"].number_format = MONEY_FORMAT
        row += 1

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class PayslipService(BaseService):
    """
    Generates and discards payslip documents.

    Contract
    --------
    * ``generate`` writes the file before committing the metadata row; on a
      failed commit the file is left for the next generation to overwrite.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        storage: SlipStorage | None = None,
        settings: PayrollSettings | None = None,
    ):
        super().__init__(session, clock)
        self._storage = storage or SlipStorage((settings or PayrollSettings()).slip_directory)

    def generate(
        self,
        scope: TenantScope,
        result_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PayslipInfo:
        with transaction_boundary(
            self.session, logger, "payslip_generate", entity_id=result_id,
        ):
            require_scope(scope)
            result = self.session.get(PayrollResultModel, result_id)
            if result is None:
                raise PayrollResultNotFoundError(str(result_id))
            ensure_tenant(scope, result, "PayrollResult")
            period = result.period
            if period.status == PayrollPeriodStatus.CALCULATING.value:
                raise CalculationInProgressError(str(period.id))
            if period.status == PayrollPeriodStatus.DRAFT.value:
                raise InvalidStateTransitionError(
                    "PayrollPeriod", str(period.id), period.status, "generate_payslip",
                )

            content = render_payslip(result, period)
            path = self._storage.save(
                slip_path(result.tenant_id, result.employee_id, period.year, period.month), content,
            )

            slip = self.session.scalar(
                select(PayrollSlipModel).where(PayrollSlipModel.payroll_result_id == result.id)
            )
            if slip is None:
                slip = stamp_tenant(scope, PayrollSlipModel(
                    payroll_result_id=result.id,
                    created_by_id=actor_id,
                ))
                self.session.add(slip)
            else:
                slip.updated_by_id = actor_id
            slip.file_path = path
            slip.file_hash = hashlib.sha256(content).hexdigest()
            slip.file_size = len(content)
            slip.content_type = XLSX_CONTENT_TYPE
            slip.generated_at = self._clock.now()
            slip.generated_by_id = actor_id
            slip.notes = notes
            self.session.flush()
            logger.info(
                "payslip_generated",
                extra={
                    "payroll_result_id": str(result.id),
                    "period_id": str(period.id),
                    "file_path": path,
                    "file_size": slip.file_size,
                },
            )
        return slip.to_dto()

    def discard_slips(self, scope: TenantScope, period_id: UUID, actor_id: UUID) -> int:
        """Remove the slips of a calculated period so it can be recalculated."""
        with transaction_boundary(
            self.session, logger, "payslip_discard", period_id=period_id,
        ):
            require_scope(scope)
            period = self.session.get(PayrollPeriodModel, period_id)
            if period is None:
                raise PayrollPeriodNotFoundError(str(period_id))
            ensure_tenant(scope, period, "PayrollPeriod")
            if period.status != PayrollPeriodStatus.CALCULATED.value:
                raise InvalidStateTransitionError(
                    "PayrollPeriod", str(period.id), period.status, "discard_payslips",
                )
            slips = self.session.scalars(
                select(PayrollSlipModel)
                .join(PayrollResultModel, PayrollSlipModel.payroll_result_id == PayrollResultModel.id)
                .where(PayrollResultModel.period_id == period.id)
            ).all()
            paths = [slip.file_path for slip in slips]
            for slip in slips:
                self.session.delete(slip)
            self.session.flush()
            logger.info(
                "payslips_discarded",
                extra={
                    "period_id": str(period.id),
                    "count": len(slips),
                    "actor_id": str(actor_id),
                },
            )
        for path in paths:
            self._storage.delete(path)
        return len(paths)
