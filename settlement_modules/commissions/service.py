"""
Commission Service (``settlement_modules.commissions.service``).

Responsibility
--------------
Creates commissions from finalized sales and completed service orders,
drives them through ``COMMISSION_WORKFLOW`` and settles them through
payroll results.

Architecture position
---------------------
**Modules layer**.  The per-line math is the pure
``calculate_line_commission``, applied by the flush-only
``create_commissions`` helper that the sales ledger also calls; this
service owns the transaction boundary around it.

Invariants enforced
-------------------
* One commission per line item; existing rows are returned unchanged and
  their amounts are never recomputed.
* The amount comes from the cost-price snapshot on the line item, never
  from the live catalog.
* No commission is ever negative.  Non-positive profit is floored to zero
  and flagged ``non_positive_profit`` (or skipped, per configuration).
* Attachment to payroll requires an approved commission and an approved
  or paid payroll period.

Failure modes
-------------
* ``InvalidStateTransitionError`` -- source not finalized/completed,
  disallowed status change, attach/release against the wrong period state.
* ``CommissionNotFoundError`` / ``SaleNotFoundError`` /
  ``ServiceOrderNotFoundError`` / ``PayrollResultNotFoundError``.
* ``TenantViolationError`` -- id belongs to another tenant.

Audit relevance
---------------
``commission_created``, ``commission_approved``, ``commission_paid`` and
``commission_cancelled`` log events trace every payout decision.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.schema import CommissionSettings
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.money import ZERO, round2
from settlement_kernel.domain.months import month_window
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope
from settlement_kernel.domain.workflow import resolve_transition
from settlement_kernel.exceptions import (
    CommissionNotFoundError,
    InvalidStateTransitionError,
    PayrollResultNotFoundError,
    SaleNotFoundError,
    ServiceOrderNotFoundError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.commissions.helpers import (
    cancel_open_commissions,
    create_commissions,
    pay_commission,
    sale_lines,
    service_order_lines,
)
from settlement_modules.commissions.models import (
    Commission,
    CommissionKind,
    CommissionStatus,
    CommissionSummary,
)
from settlement_modules.commissions.orm import COMMISSION_MODELS, model_for
from settlement_modules.commissions.workflows import COMMISSION_WORKFLOW
from settlement_modules.payroll.orm import PayrollPeriodModel, PayrollResultModel
from settlement_modules.sales.models import COMMISSIONABLE_ORDER_STATUSES, SaleStatus
from settlement_modules.sales.orm import SaleModel, ServiceOrderModel

logger = get_logger("modules.commissions.service")

_SETTLEABLE_PERIOD_STATUSES = ("approved", "paid")


class CommissionService(BaseService):
    """
    Creates, approves, cancels and settles commissions.

    Contract
    --------
    * Every public method takes a ``TenantScope`` first.
    * Write methods commit on success and roll back on failure.
    * Methods acting on a single commission take a ``kind``
      (``CommissionKind.SALE`` by default) naming its table.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: CommissionSettings | None = None,
    ):
        super().__init__(session, clock)
        self._settings = settings or CommissionSettings()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def calculate_for_sale(
        self, scope: TenantScope, sale_id: UUID, actor_id: UUID,
    ) -> list[Commission]:
        """One commission per line of a finalized sale.

        Finalizing a sale already creates its commissions; this returns them
        and fills in any line still missing one.
        """
        with transaction_boundary(self.session, logger, "commission_calculate", entity_id=sale_id):
            require_scope(scope)
            sale = self.session.get(SaleModel, sale_id)
            if sale is None:
                raise SaleNotFoundError(str(sale_id))
            ensure_tenant(scope, sale, "Sale")
            if sale.status != SaleStatus.FINALIZED.value:
                raise InvalidStateTransitionError(
                    "Sale", str(sale_id), sale.status, "calculate_commission",
                )
            rows = create_commissions(
                self.session, scope, CommissionKind.SALE, sale.id, sale.user_id,
                sale.sale_date.date(), sale_lines(sale), actor_id,
                self._settings.non_positive_profit,
            )
        return [row.to_dto() for row in rows]

    def calculate_for_service_order(
        self, scope: TenantScope, order_id: UUID, actor_id: UUID,
    ) -> list[Commission]:
        """One commission per item of a completed service order."""
        with transaction_boundary(
            self.session, logger, "commission_calculate", entity_id=order_id,
        ):
            require_scope(scope)
            order = self.session.get(ServiceOrderModel, order_id)
            if order is None:
                raise ServiceOrderNotFoundError(str(order_id))
            ensure_tenant(scope, order, "ServiceOrder")
            if order.status not in COMMISSIONABLE_ORDER_STATUSES:
                raise InvalidStateTransitionError(
                    "ServiceOrder", str(order_id), order.status, "calculate_commission",
                )
            rows = create_commissions(
                self.session, scope, CommissionKind.SERVICE_ORDER, order.id, order.user_id,
                (order.completed_at or order.opened_at).date(), service_order_lines(order),
                actor_id, self._settings.non_positive_profit,
            )
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def approve(
        self,
        scope: TenantScope,
        commission_id: UUID,
        actor_id: UUID,
        kind: CommissionKind = CommissionKind.SALE,
    ) -> Commission:
        with transaction_boundary(
            self.session, logger, "commission_approve", entity_id=commission_id,
        ):
            row = self._load(scope, commission_id, kind)
            row.status = resolve_transition(
                COMMISSION_WORKFLOW, row.status, "approve", entity_id=commission_id,
            )
            row.updated_by_id = actor_id
            self.session.flush()
            logger.info("commission_approved", extra={"commission_id": str(commission_id)})
        return row.to_dto()

    def cancel(
        self,
        scope: TenantScope,
        commission_id: UUID,
        actor_id: UUID,
        kind: CommissionKind = CommissionKind.SALE,
        notes: str | None = None,
    ) -> Commission:
        """Cancel one commission.  Paid commissions cannot be cancelled."""
        with transaction_boundary(
            self.session, logger, "commission_cancel", entity_id=commission_id,
        ):
            row = self._load(scope, commission_id, kind)
            row.status = resolve_transition(
                COMMISSION_WORKFLOW, row.status, "cancel", entity_id=commission_id,
            )
            if notes:
                row.notes = notes
            row.updated_by_id = actor_id
            self.session.flush()
            logger.info("commission_cancelled", extra={"commission_id": str(commission_id)})
        return row.to_dto()

    def cancel_for_sale(self, scope: TenantScope, sale_id: UUID, actor_id: UUID) -> int:
        with transaction_boundary(self.session, logger, "commission_cancel", entity_id=sale_id):
            cancelled = cancel_open_commissions(
                self.session, scope, CommissionKind.SALE, sale_id, actor_id,
            )
            logger.info(
                "commissions_cancelled_for_source",
                extra={"source_id": str(sale_id), "cancelled": cancelled},
            )
        return cancelled

    def cancel_for_service_order(
        self, scope: TenantScope, order_id: UUID, actor_id: UUID,
    ) -> int:
        with transaction_boundary(self.session, logger, "commission_cancel", entity_id=order_id):
            cancelled = cancel_open_commissions(
                self.session, scope, CommissionKind.SERVICE_ORDER, order_id, actor_id,
            )
            logger.info(
                "commissions_cancelled_for_source",
                extra={"source_id": str(order_id), "cancelled": cancelled},
            )
        return cancelled

    # ------------------------------------------------------------------
    # Settlement through payroll
    # ------------------------------------------------------------------

    def attach_to_payroll(
        self,
        scope: TenantScope,
        commission_ids: Sequence[UUID],
        payroll_result_id: UUID,
        actor_id: UUID,
        kind: CommissionKind = CommissionKind.SALE,
    ) -> list[Commission]:
        """Link approved commissions to a payroll result.

        Against a paid period the commissions are paid immediately, dated
        with the period's payment date.  Against an approved period they
        stay approved until the period is marked paid.
        """
        with transaction_boundary(
            self.session, logger, "commission_attach", entity_id=payroll_result_id,
        ):
            result, period = self._load_result(scope, payroll_result_id)
            if period.status not in _SETTLEABLE_PERIOD_STATUSES:
                raise InvalidStateTransitionError(
                    "PayrollPeriod", str(period.id), period.status, "attach_commissions",
                )
            rows = [self._load(scope, cid, kind) for cid in commission_ids]
            for row in rows:
                if row.status != CommissionStatus.APPROVED.value:
                    raise InvalidStateTransitionError(
                        "Commission", str(row.id), row.status, "attach_to_payroll",
                    )
                if row.payroll_result_id not in (None, result.id):
                    raise InvalidStateTransitionError(
                        "Commission", str(row.id), "attached", "attach_to_payroll",
                    )
                row.payroll_result_id = result.id
                row.updated_by_id = actor_id
                if period.status == "paid":
                    pay_commission(row, period.payment_date or self._clock.today(), actor_id)
            self.session.flush()
            logger.info(
                "commissions_attached",
                extra={
                    "payroll_result_id": str(result.id),
                    "period_status": period.status,
                    "count": len(rows),
                },
            )
        return [row.to_dto() for row in rows]

    def release_from_payroll(
        self,
        scope: TenantScope,
        commission_ids: Sequence[UUID],
        actor_id: UUID,
        kind: CommissionKind = CommissionKind.SALE,
    ) -> list[Commission]:
        """Detach commissions from a payroll result whose period is not paid."""
        with transaction_boundary(self.session, logger, "commission_release"):
            rows = [self._load(scope, cid, kind) for cid in commission_ids]
            for row in rows:
                if row.payroll_result_id is None:
                    continue
                _, period = self._load_result(scope, row.payroll_result_id)
                if period.status == "paid" or row.status == CommissionStatus.PAID.value:
                    raise InvalidStateTransitionError(
                        "Commission", str(row.id), row.status, "release_from_payroll",
                    )
                row.payroll_result_id = None
                row.updated_by_id = actor_id
            self.session.flush()
            logger.info("commissions_released", extra={"count": len(rows)})
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(
        self,
        scope: TenantScope,
        commission_id: UUID,
        kind: CommissionKind = CommissionKind.SALE,
    ) -> Commission:
        return self._load(scope, commission_id, kind).to_dto()

    def query(
        self,
        scope: TenantScope,
        status: CommissionStatus | None = None,
        user_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        kind: CommissionKind = CommissionKind.SALE,
    ) -> list[Commission]:
        """Commissions of one kind; ``date_to`` is inclusive."""
        require_scope(scope)
        model = model_for(kind)
        stmt = select(model).where(model.tenant_id == scope.tenant_id)
        if status is not None:
            stmt = stmt.where(model.status == status.value)
        if user_id is not None:
            stmt = stmt.where(model.user_id == user_id)
        if date_from is not None:
            stmt = stmt.where(model.earned_on >= date_from)
        if date_to is not None:
            stmt = stmt.where(model.earned_on <= date_to)
        stmt = stmt.order_by(model.earned_on, model.created_at)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def summary_for_user(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> CommissionSummary:
        """Non-cancelled commissions of both kinds earned in the month."""
        require_scope(scope)
        start, end = month_window(year, month)
        earned = paid = pending = ZERO
        count = 0
        for model in COMMISSION_MODELS:
            rows = self.session.scalars(
                select(model).where(
                    model.tenant_id == scope.tenant_id,
                    model.user_id == user_id,
                    model.earned_on >= start,
                    model.earned_on < end,
                    model.status != CommissionStatus.CANCELLED.value,
                )
            )
            for row in rows:
                amount = Decimal(row.commission_amount)
                earned += amount
                count += 1
                if row.status == CommissionStatus.PAID.value:
                    paid += amount
                else:
                    pending += amount
        return CommissionSummary(
            user_id=user_id,
            year=year,
            month=month,
            total_earned=round2(earned),
            total_paid=round2(paid),
            total_pending=round2(pending),
            commission_count=count,
        )

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def _load(self, scope: TenantScope, commission_id: UUID, kind: CommissionKind):
        require_scope(scope)
        row = self.session.get(model_for(kind), commission_id)
        if row is None:
            raise CommissionNotFoundError(str(commission_id))
        return ensure_tenant(scope, row, "Commission")

    def _load_result(
        self, scope: TenantScope, result_id: UUID,
    ) -> tuple[PayrollResultModel, PayrollPeriodModel]:
        result = self.session.get(PayrollResultModel, result_id)
        if result is None:
            raise PayrollResultNotFoundError(str(result_id))
        ensure_tenant(scope, result, "PayrollResult")
        # Locked and refreshed so a concurrent approve or mark_paid is seen.
        period = self.session.scalar(
            select(PayrollPeriodModel)
            .where(PayrollPeriodModel.id == result.period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result, period
