"""
Vendor Performance Services (``settlement_modules.performance.service``).

Responsibility
--------------
``SalesGoalService`` maintains monthly targets per salesperson.
``VendorPerformanceService`` derives the monthly rollup from finalized
sales, commissions of both kinds and the matching goal.

Architecture position
---------------------
**Modules layer**.  Reads the sales ledger and commission tables; writes
only ``sales_goals`` and ``vendor_performance``.

Invariants enforced
-------------------
* At most one goal per (tenant, user, year, month).
* The rollup is fully recomputed: every metric column is overwritten, so
  repeated runs over unchanged data produce the same row.
* Cancelled commissions and non-finalized sales never count.
* The month window is half-open ``[first day, first day of next month)``.

Failure modes
-------------
* ``DuplicateSalesGoalError`` -- a goal already exists for the month.
* ``SalesGoalNotFoundError`` -- unknown goal id.
* ``ValidationError`` -- negative targets, bad month, non-positive limit.
"""

from __future__ import annotations

from datetime import UTC, datetime, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from settlement_kernel.domain.money import ZERO, round2
from settlement_kernel.domain.months import month_window, validate_year_month
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope, stamp_tenant
from settlement_kernel.exceptions import (
    DuplicateSalesGoalError,
    SalesGoalNotFoundError,
    ValidationError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.commissions.calculator import line_profit
from settlement_modules.commissions.models import CommissionableLine, CommissionStatus
from settlement_modules.commissions.orm import COMMISSION_MODELS
from settlement_modules.performance.models import SalesGoal, SalesGoalInput, VendorPerformance
from settlement_modules.performance.orm import SalesGoalModel, VendorPerformanceModel
from settlement_modules.sales.models import SaleStatus
from settlement_modules.sales.orm import SaleModel

logger = get_logger("modules.performance.service")

_HUNDRED = Decimal("100")


def _checked_month(year: int, month: int) -> None:
    try:
        validate_year_month(year, month)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _checked_goal(goal: SalesGoalInput) -> None:
    errors = goal.validation_errors()
    if errors:
        raise ValidationError("; ".join(errors))


class SalesGoalService(BaseService):
    """CRUD for monthly sales goals."""

    def create_goal(
        self,
        scope: TenantScope,
        user_id: UUID,
        year: int,
        month: int,
        goal: SalesGoalInput,
        actor_id: UUID,
    ) -> SalesGoal:
        require_scope(scope)
        _checked_month(year, month)
        _checked_goal(goal)
        try:
            with transaction_boundary(
                self.session, logger, "sales_goal_create", entity_id=user_id,
            ):
                if self._find(scope, user_id, year, month) is not None:
                    raise DuplicateSalesGoalError(str(user_id), year, month)
                row = stamp_tenant(scope, SalesGoalModel(
                    user_id=user_id,
                    year=year,
                    month=month,
                    target_sales_amount=goal.target_sales_amount,
                    target_profit_amount=goal.target_profit_amount,
                    target_sales_count=goal.target_sales_count,
                    bonus_commission_percent=goal.bonus_commission_percent,
                    notes=goal.notes,
                    created_by_id=actor_id,
                ))
                self.session.add(row)
                self.session.flush()
                logger.info(
                    "sales_goal_created",
                    extra={"goal_id": str(row.id), "user_id": str(user_id),
                           "year": year, "month": month},
                )
        except IntegrityError as exc:
            raise DuplicateSalesGoalError(str(user_id), year, month) from exc
        return row.to_dto()

    def update_goal(
        self, scope: TenantScope, goal_id: UUID, goal: SalesGoalInput, actor_id: UUID,
    ) -> SalesGoal:
        _checked_goal(goal)
        with transaction_boundary(self.session, logger, "sales_goal_update", entity_id=goal_id):
            row = self._load(scope, goal_id)
            row.target_sales_amount = goal.target_sales_amount
            row.target_profit_amount = goal.target_profit_amount
            row.target_sales_count = goal.target_sales_count
            row.bonus_commission_percent = goal.bonus_commission_percent
            row.notes = goal.notes
            row.updated_by_id = actor_id
            self.session.flush()
            logger.info("sales_goal_updated", extra={"goal_id": str(row.id)})
        return row.to_dto()

    def delete_goal(self, scope: TenantScope, goal_id: UUID, actor_id: UUID) -> None:
        with transaction_boundary(self.session, logger, "sales_goal_delete", entity_id=goal_id):
            row = self._load(scope, goal_id)
            self.session.delete(row)
            self.session.flush()
            logger.info(
                "sales_goal_deleted",
                extra={"goal_id": str(goal_id), "actor_id": str(actor_id)},
            )

    def get_goal(self, scope: TenantScope, goal_id: UUID) -> SalesGoal:
        return self._load(scope, goal_id).to_dto()

    def goal_for(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> SalesGoal | None:
        require_scope(scope)
        row = self._find(scope, user_id, year, month)
        return row.to_dto() if row is not None else None

    def list_goals(
        self,
        scope: TenantScope,
        year: int | None = None,
        month: int | None = None,
        user_id: UUID | None = None,
    ) -> list[SalesGoal]:
        require_scope(scope)
        stmt = select(SalesGoalModel).where(SalesGoalModel.tenant_id == scope.tenant_id)
        if year is not None:
            stmt = stmt.where(SalesGoalModel.year == year)
        if month is not None:
            stmt = stmt.where(SalesGoalModel.month == month)
        if user_id is not None:
            stmt = stmt.where(SalesGoalModel.user_id == user_id)
        stmt = stmt.order_by(
            SalesGoalModel.year.desc(), SalesGoalModel.month.desc(), SalesGoalModel.user_id,
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def _find(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> SalesGoalModel | None:
        return self.session.scalar(
            select(SalesGoalModel).where(
                SalesGoalModel.tenant_id == scope.tenant_id,
                SalesGoalModel.user_id == user_id,
                SalesGoalModel.year == year,
                SalesGoalModel.month == month,
            )
        )

    def _load(self, scope: TenantScope, goal_id: UUID) -> SalesGoalModel:
        require_scope(scope)
        row = self.session.get(SalesGoalModel, goal_id)
        if row is None:
            raise SalesGoalNotFoundError(str(goal_id))
        return ensure_tenant(scope, row, "SalesGoal")


class VendorPerformanceService(BaseService):
    """
    Recomputes and ranks monthly vendor performance.

    ``total_commission_pending`` counts pending and approved commissions;
    ``total_commission_paid`` counts paid ones.  The bonus is only earned
    when the sales goal is achieved.
    """

    def recompute(
        self, scope: TenantScope, user_id: UUID, year: int, month: int, actor_id: UUID,
    ) -> VendorPerformance:
        require_scope(scope)
        _checked_month(year, month)
        with transaction_boundary(
            self.session, logger, "vendor_performance_recompute", entity_id=user_id,
        ):
            row = self._recompute(scope, user_id, year, month, actor_id)
        return row.to_dto()

    def recompute_period(
        self, scope: TenantScope, year: int, month: int, actor_id: UUID,
    ) -> list[VendorPerformance]:
        """Recompute every salesperson with finalized sales or a goal in the month."""
        require_scope(scope)
        _checked_month(year, month)
        with transaction_boundary(
            self.session, logger, "vendor_performance_recompute_period",
            year=year, month=month,
        ):
            start, end = self._datetime_window(year, month)
            sellers = set(self.session.scalars(
                select(SaleModel.user_id).where(
                    SaleModel.tenant_id == scope.tenant_id,
                    SaleModel.status == SaleStatus.FINALIZED.value,
                    SaleModel.sale_date >= start,
                    SaleModel.sale_date < end,
                )
            ))
            sellers.update(self.session.scalars(
                select(SalesGoalModel.user_id).where(
                    SalesGoalModel.tenant_id == scope.tenant_id,
                    SalesGoalModel.year == year,
                    SalesGoalModel.month == month,
                )
            ))
            rows = [
                self._recompute(scope, user_id, year, month, actor_id)
                for user_id in sorted(sellers, key=str)
            ]
            logger.info(
                "vendor_performance_period_recomputed",
                extra={"year": year, "month": month, "vendor_count": len(rows)},
            )
        return [row.to_dto() for row in rows]

    def get(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> VendorPerformance | None:
        require_scope(scope)
        row = self._find(scope, user_id, year, month)
        return row.to_dto() if row is not None else None

    def top_performers(
        self, scope: TenantScope, year: int, month: int, limit: int = 10,
    ) -> list[VendorPerformance]:
        """Stored rollups for the month, highest sales amount first."""
        require_scope(scope)
        if limit <= 0:
            raise ValidationError(f"limit must be positive, got {limit}")
        rows = self.session.scalars(
            select(VendorPerformanceModel)
            .where(
                VendorPerformanceModel.tenant_id == scope.tenant_id,
                VendorPerformanceModel.year == year,
                VendorPerformanceModel.month == month,
            )
            .order_by(
                VendorPerformanceModel.total_sales_amount.desc(),
                VendorPerformanceModel.total_commission_earned.desc(),
            )
            .limit(limit)
        )
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------

    def _recompute(
        self, scope: TenantScope, user_id: UUID, year: int, month: int, actor_id: UUID,
    ) -> VendorPerformanceModel:
        sales_count, sales_amount, profit = self._sales_totals(scope, user_id, year, month)
        earned, paid, pending = self._commission_totals(scope, user_id, year, month)

        goal = self.session.scalar(
            select(SalesGoalModel).where(
                SalesGoalModel.tenant_id == scope.tenant_id,
                SalesGoalModel.user_id == user_id,
                SalesGoalModel.year == year,
                SalesGoalModel.month == month,
            )
        )
        target = achievement = None
        achieved = False
        bonus = ZERO
        if goal is not None:
            target = Decimal(goal.target_sales_amount)
            if target > 0:
                achievement = round2(sales_amount / target * _HUNDRED)
                achieved = achievement >= _HUNDRED
            if achieved:
                bonus = round2(earned * Decimal(goal.bonus_commission_percent) / _HUNDRED)

        row = self._find(scope, user_id, year, month)
        if row is None:
            row = stamp_tenant(scope, VendorPerformanceModel(
                user_id=user_id, year=year, month=month, created_by_id=actor_id,
            ))
            self.session.add(row)
        else:
            row.updated_by_id = actor_id
        row.total_sales_count = sales_count
        row.total_sales_amount = sales_amount
        row.total_profit_amount = profit
        row.total_commission_earned = earned
        row.total_commission_paid = paid
        row.total_commission_pending = pending
        row.bonus_commission_earned = bonus
        row.sales_goal_target = target
        row.sales_goal_achievement_percent = achievement
        row.sales_goal_achieved = achieved
        row.last_calculated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "vendor_performance_recomputed",
            extra={
                "user_id": str(user_id),
                "year": year,
                "month": month,
                "total_sales_amount": str(sales_amount),
                "total_commission_earned": str(earned),
                "sales_goal_achieved": achieved,
            },
        )
        return row

    def _sales_totals(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> tuple[int, Decimal, Decimal]:
        start, end = self._datetime_window(year, month)
        sales = self.session.scalars(
            select(SaleModel).where(
                SaleModel.tenant_id == scope.tenant_id,
                SaleModel.user_id == user_id,
                SaleModel.status == SaleStatus.FINALIZED.value,
                SaleModel.sale_date >= start,
                SaleModel.sale_date < end,
            )
        ).all()
        amount = profit = ZERO
        for sale in sales:
            amount += Decimal(sale.net_amount)
            for item in sale.items:
                profit += line_profit(CommissionableLine(
                    unit_price=item.unit_price,
                    cost_price=item.cost_price,
                    quantity=item.quantity,
                    commission_percent=item.commission_percent,
                    discount=item.discount,
                ))
        return len(sales), round2(amount), round2(profit)

    def _commission_totals(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> tuple[Decimal, Decimal, Decimal]:
        start, end = month_window(year, month)
        earned = paid = pending = ZERO
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
                if row.status == CommissionStatus.PAID.value:
                    paid += amount
                else:
                    pending += amount
        return round2(earned), round2(paid), round2(pending)

    def _find(
        self, scope: TenantScope, user_id: UUID, year: int, month: int,
    ) -> VendorPerformanceModel | None:
        return self.session.scalar(
            select(VendorPerformanceModel).where(
                VendorPerformanceModel.tenant_id == scope.tenant_id,
                VendorPerformanceModel.user_id == user_id,
                VendorPerformanceModel.year == year,
                VendorPerformanceModel.month == month,
            )
        )

    @staticmethod
    def _datetime_window(year: int, month: int) -> tuple[datetime, datetime]:
        start, end = month_window(year, month)
        return (
            datetime.combine(start, time.min, tzinfo=UTC),
            datetime.combine(end, time.min, tzinfo=UTC),
        )
