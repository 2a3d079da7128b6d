"""
Vendor Performance ORM Persistence Models (``settlement_modules.performance.orm``).

Responsibility:
    SQLAlchemy models for monthly sales goals and the performance rollup.

Invariants enforced:
    - One goal and one rollup row per (tenant, user, year, month).
    - Rollup rows are derived data; ``VendorPerformanceService.recompute``
      overwrites every metric column on each run.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TenantScopedMixin, TrackedBase


class SalesGoalModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``SalesGoal``."""

    __tablename__ = "sales_goals"

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    target_sales_amount: Mapped[Decimal] = mapped_column(nullable=False)
    target_profit_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    target_sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_commission_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "year", "month", name="uq_sales_goal_user_month"),
        Index("idx_sales_goal_tenant_month", "tenant_id", "year", "month"),
    )

    def to_dto(self):
        from settlement_modules.performance.models import SalesGoal
        return SalesGoal(
            id=self.id,
            user_id=self.user_id,
            year=self.year,
            month=self.month,
            target_sales_amount=self.target_sales_amount,
            target_profit_amount=self.target_profit_amount,
            target_sales_count=self.target_sales_count,
            bonus_commission_percent=self.bonus_commission_percent,
            notes=self.notes,
        )


class VendorPerformanceModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``VendorPerformance``."""

    __tablename__ = "vendor_performance"

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    total_sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_profit_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_commission_earned: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_commission_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_commission_pending: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    bonus_commission_earned: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    sales_goal_target: Mapped[Decimal | None] = mapped_column(nullable=True)
    sales_goal_achievement_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    sales_goal_achieved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "user_id", "year", "month", name="uq_vendor_performance_user_month",
        ),
        Index("idx_vendor_performance_tenant_month", "tenant_id", "year", "month"),
    )

    def to_dto(self):
        from settlement_modules.performance.models import VendorPerformance
        return VendorPerformance(
            id=self.id,
            user_id=self.user_id,
            year=self.year,
            month=self.month,
            total_sales_count=self.total_sales_count,
            total_sales_amount=self.total_sales_amount,
            total_profit_amount=self.total_profit_amount,
            total_commission_earned=self.total_commission_earned,
            total_commission_paid=self.total_commission_paid,
            total_commission_pending=self.total_commission_pending,
            bonus_commission_earned=self.bonus_commission_earned,
            last_calculated_at=self.last_calculated_at,
            sales_goal_target=self.sales_goal_target,
            sales_goal_achievement_percent=self.sales_goal_achievement_percent,
            sales_goal_achieved=self.sales_goal_achieved,
        )
