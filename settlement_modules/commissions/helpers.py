"""
Commission link helpers (``settlement_modules.commissions.helpers``).

Flush-only functions that other modules call inside their own
transaction: the sales ledger creates commissions when a sale is
finalized or a service order completed and cancels them when the source
is cancelled; the payroll service counts commissions referencing its
results and pays the ones attached to a period being marked paid.  None
of them commits.

Architecture: Modules layer.  Imports only the commission calculator,
models, ORM and workflow so that payroll and sales can depend on it
without a cycle.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_kernel.domain.tenancy import TenantScope, require_scope, stamp_tenant
from settlement_kernel.domain.workflow import resolve_transition
from settlement_kernel.logging_config import get_logger
from settlement_modules.commissions.calculator import calculate_line_commission
from settlement_modules.commissions.models import (
    CommissionableLine,
    CommissionKind,
    CommissionStatus,
)
from settlement_modules.commissions.orm import COMMISSION_MODELS, model_for
from settlement_modules.commissions.workflows import COMMISSION_WORKFLOW

logger = get_logger("modules.commissions.helpers")

OPEN_STATUSES = (CommissionStatus.PENDING.value, CommissionStatus.APPROVED.value)

# (line item id, product id, commissionable figures)
SourceLine = tuple[UUID, UUID | None, CommissionableLine]


def sale_lines(sale) -> list[SourceLine]:
    """Commissionable lines of a sale, from its cost and percent snapshots."""
    return [
        (
            item.id,
            item.product_id,
            CommissionableLine(
                unit_price=item.unit_price,
                cost_price=item.cost_price,
                quantity=item.quantity,
                commission_percent=item.commission_percent,
                discount=item.discount,
            ),
        )
        for item in sale.items
    ]


def service_order_lines(order) -> list[SourceLine]:
    return [
        (
            item.id,
            None,
            CommissionableLine(
                unit_price=item.price,
                cost_price=item.cost_price,
                quantity=item.quantity,
                commission_percent=item.commission_percent,
                discount=item.discount,
            ),
        )
        for item in order.items
    ]


def create_commissions(
    session: Session,
    scope: TenantScope,
    kind: CommissionKind,
    source_id: UUID,
    user_id: UUID,
    earned_on: date,
    lines: Iterable[SourceLine],
    actor_id: UUID,
    non_positive_profit: str = "floor_and_flag",
) -> list:
    """Create the missing commissions of one source and return all of them.

    Lines that already carry a commission keep it unchanged.  Lines with a
    non-positive percent earn nothing; non-positive profit is floored and
    flagged, or skipped when ``non_positive_profit`` is ``"skip"``.
    """
    require_scope(scope)
    model = model_for(kind)
    existing = {
        row.line_item_id: row
        for row in session.scalars(
            select(model).where(
                model.tenant_id == scope.tenant_id,
                model.source_id == source_id,
            )
        )
    }
    rows = []
    created = 0
    for line_item_id, product_id, line in lines:
        if line_item_id in existing:
            rows.append(existing[line_item_id])
            continue
        outcome = calculate_line_commission(line)
        if outcome is None:
            continue
        if outcome.needs_review and non_positive_profit == "skip":
            logger.info(
                "commission_skipped_non_positive_profit",
                extra={"line_item_id": str(line_item_id), "profit": str(outcome.profit_amount)},
            )
            continue
        row = stamp_tenant(scope, model(
            source_id=source_id,
            line_item_id=line_item_id,
            product_id=product_id,
            user_id=user_id,
            profit_amount=outcome.profit_amount,
            commission_percent=outcome.commission_percent,
            commission_amount=outcome.commission_amount,
            status=COMMISSION_WORKFLOW.initial_state,
            earned_on=earned_on,
            needs_review=outcome.needs_review,
            review_reason=outcome.review_reason,
            created_by_id=actor_id,
        ))
        session.add(row)
        rows.append(row)
        created += 1
        if outcome.needs_review:
            logger.warning(
                "commission_flagged_for_review",
                extra={
                    "line_item_id": str(line_item_id),
                    "reason": outcome.review_reason,
                    "profit": str(outcome.profit_amount),
                },
            )
    session.flush()
    logger.info(
        "commission_created",
        extra={
            "kind": kind.value,
            "source_id": str(source_id),
            "created_count": created,
            "existing_count": len(rows) - created,
        },
    )
    return rows


def cancel_open_commissions(
    session: Session,
    scope: TenantScope,
    kind: CommissionKind,
    source_id: UUID,
    actor_id: UUID,
) -> int:
    """Cancel every pending/approved commission of one source.

    Paid commissions are left alone and logged.  Returns the number of
    commissions cancelled.
    """
    require_scope(scope)
    model = model_for(kind)
    rows = session.scalars(
        select(model).where(
            model.tenant_id == scope.tenant_id,
            model.source_id == source_id,
        )
    ).all()
    cancelled = 0
    for row in rows:
        if row.status == CommissionStatus.PAID.value:
            logger.warning(
                "commission_cancel_skipped_paid",
                extra={"commission_id": str(row.id), "source_id": str(source_id)},
            )
            continue
        if row.status not in OPEN_STATUSES:
            continue
        row.status = resolve_transition(
            COMMISSION_WORKFLOW, row.status, "cancel", entity_id=row.id,
        )
        row.updated_by_id = actor_id
        cancelled += 1
    session.flush()
    return cancelled


def count_payroll_links(session: Session, result_ids: Sequence[UUID]) -> int:
    """Commissions (both kinds) referencing any of ``result_ids``."""
    if not result_ids:
        return 0
    total = 0
    for model in COMMISSION_MODELS:
        total += session.scalar(
            select(func.count()).select_from(model).where(
                model.payroll_result_id.in_(list(result_ids))
            )
        ) or 0
    return total


def settle_attached_commissions(
    session: Session,
    scope: TenantScope,
    result_ids: Sequence[UUID],
    paid_date: date,
    actor_id: UUID,
) -> int:
    """Mark approved commissions attached to ``result_ids`` as paid."""
    if not result_ids:
        return 0
    settled = 0
    for model in COMMISSION_MODELS:
        rows = session.scalars(
            select(model).where(
                model.tenant_id == scope.tenant_id,
                model.payroll_result_id.in_(list(result_ids)),
                model.status == CommissionStatus.APPROVED.value,
            )
        ).all()
        for row in rows:
            pay_commission(row, paid_date, actor_id)
            settled += 1
    session.flush()
    return settled


def pay_commission(row, paid_date: date, actor_id: UUID) -> None:
    row.status = resolve_transition(COMMISSION_WORKFLOW, row.status, "pay", entity_id=row.id)
    row.paid_date = paid_date
    row.updated_by_id = actor_id
    logger.info(
        "commission_paid",
        extra={
            "commission_id": str(row.id),
            "payroll_result_id": str(row.payroll_result_id),
            "paid_date": paid_date.isoformat(),
        },
    )

