"""
Commission ORM Persistence Models (``settlement_modules.commissions.orm``).

Responsibility:
    Persists sale commissions (``commissions``) and service order
    commissions (``service_order_commissions``).  Both tables share one
    shape; ``CommissionColumnsMixin`` holds the common columns and each
    concrete class declares its own foreign keys.

Invariants enforced:
    - One commission per line item (``uq_*_line_item``).
    - ``profit_amount``, ``commission_percent``, ``commission_amount`` and
      the source/line references are frozen after insert (ORM listener in
      ``settlement_kernel.db.immutability``).
    - Enum fields stored as String(50) containing the enum .value string.
"""

from datetime import date
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TenantScopedMixin, TrackedBase

COMMISSION_FROZEN_FIELDS = frozenset({
    "source_id",
    "line_item_id",
    "product_id",
    "user_id",
    "profit_amount",
    "commission_percent",
    "commission_amount",
    "earned_on",
})


class CommissionColumnsMixin(TenantScopedMixin):
    """Columns shared by sale and service order commissions."""

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    profit_amount: Mapped[Decimal] = mapped_column(nullable=False)
    commission_percent: Mapped[Decimal] = mapped_column(nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    earned_on: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    KIND: ClassVar[str] = ""

    def to_dto(self):
        from settlement_modules.commissions.models import (
            Commission,
            CommissionKind,
            CommissionStatus,
        )
        return Commission(
            id=self.id,
            kind=CommissionKind(self.KIND),
            source_id=self.source_id,
            line_item_id=self.line_item_id,
            user_id=self.user_id,
            profit_amount=self.profit_amount,
            commission_percent=self.commission_percent,
            commission_amount=self.commission_amount,
            status=CommissionStatus(self.status),
            earned_on=self.earned_on,
            product_id=self.product_id,
            paid_date=self.paid_date,
            payroll_result_id=self.payroll_result_id,
            needs_review=self.needs_review,
            review_reason=self.review_reason,
            notes=self.notes,
        )


class CommissionModel(CommissionColumnsMixin, TrackedBase):
    """ORM model for a commission earned on a sale line."""

    __tablename__ = "commissions"

    KIND = "sale"

    source_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    line_item_id: Mapped[UUID] = mapped_column(ForeignKey("sale_items.id"), nullable=False)
    product_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("catalog_products.id"), nullable=True,
    )
    payroll_result_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_results.id"), nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("line_item_id", name="uq_commission_line_item"),
        Index("idx_commission_tenant_user_earned", "tenant_id", "user_id", "earned_on"),
        Index("idx_commission_tenant_status", "tenant_id", "status"),
        Index("idx_commission_payroll_result", "payroll_result_id"),
    )


class ServiceOrderCommissionModel(CommissionColumnsMixin, TrackedBase):
    """ORM model for a commission earned on a service order item."""

    __tablename__ = "service_order_commissions"

    KIND = "service_order"

    source_id: Mapped[UUID] = mapped_column(ForeignKey("service_orders.id"), nullable=False)
    line_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("service_order_items.id"), nullable=False,
    )
    # Service items are not catalog products
    product_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payroll_result_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_results.id"), nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("line_item_id", name="uq_service_order_commission_line_item"),
        Index(
            "idx_so_commission_tenant_user_earned", "tenant_id", "user_id", "earned_on",
        ),
        Index("idx_so_commission_payroll_result", "payroll_result_id"),
    )


COMMISSION_MODELS = (CommissionModel, ServiceOrderCommissionModel)


def model_for(kind) -> type[CommissionColumnsMixin]:
    """ORM class storing commissions of ``kind`` (a ``CommissionKind``)."""
    return CommissionModel if kind.value == "sale" else ServiceOrderCommissionModel
