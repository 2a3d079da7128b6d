"""
Sales Ledger ORM Persistence Models (``settlement_modules.sales.orm``).

Responsibility:
    SQLAlchemy models for catalog products, sales, sale items, service
    orders and service order items.  Each ORM class mirrors a DTO in
    ``settlement_modules.sales.models`` and provides ``to_dto()``.

Invariants enforced:
    - Every table is tenant-scoped (``TenantScopedMixin``).
    - ``cost_price`` and ``commission_percent`` on line items are snapshots;
      they are written once when the sale is recorded.
    - Enum fields stored as String(50) containing the enum .value string.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TenantScopedMixin, TrackedBase


class ProductModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``Product`` (catalog mirror)."""

    __tablename__ = "catalog_products"

    sku: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(nullable=False)
    commission_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_catalog_product_sku"),
    )

    def to_dto(self):
        from settlement_modules.sales.models import Product
        return Product(
            id=self.id,
            sku=self.sku,
            name=self.name,
            cost_price=self.cost_price,
            sale_price=self.sale_price,
            commission_percent=self.commission_percent,
            is_active=self.is_active,
        )


class SaleModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``Sale``."""

    __tablename__ = "sales"

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sale_date: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="open")
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["SaleItemModel"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItemModel.line_number",
    )

    __table_args__ = (
        Index("idx_sale_tenant_user_date", "tenant_id", "user_id", "sale_date"),
        Index("idx_sale_tenant_status", "tenant_id", "status"),
    )

    def to_dto(self):
        from settlement_modules.sales.models import Sale, SaleStatus
        return Sale(
            id=self.id,
            user_id=self.user_id,
            sale_date=self.sale_date,
            status=SaleStatus(self.status),
            gross_amount=self.gross_amount,
            discount_amount=self.discount_amount,
            net_amount=self.net_amount,
            customer_name=self.customer_name,
            finalized_at=self.finalized_at,
            items=tuple(item.to_dto() for item in self.items),
        )


class SaleItemModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``SaleItem``."""

    __tablename__ = "sale_items"

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    product_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("catalog_products.id"), nullable=True,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    commission_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    sale: Mapped["SaleModel"] = relationship(back_populates="items")

    __table_args__ = (
        Index("idx_sale_item_sale", "sale_id"),
    )

    def to_dto(self):
        from settlement_modules.sales.models import SaleItem
        return SaleItem(
            id=self.id,
            sale_id=self.sale_id,
            product_id=self.product_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            cost_price=self.cost_price,
            discount=self.discount,
            commission_percent=self.commission_percent,
        )


class ServiceOrderModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``ServiceOrder``."""

    __tablename__ = "service_orders"

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="open")
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["ServiceOrderItemModel"]] = relationship(
        back_populates="service_order",
        cascade="all, delete-orphan",
        order_by="ServiceOrderItemModel.line_number",
    )

    __table_args__ = (
        Index("idx_service_order_tenant_user", "tenant_id", "user_id"),
    )

    def to_dto(self):
        from settlement_modules.sales.models import ServiceOrder, ServiceOrderStatus
        return ServiceOrder(
            id=self.id,
            user_id=self.user_id,
            opened_at=self.opened_at,
            status=ServiceOrderStatus(self.status),
            total_amount=self.total_amount,
            customer_name=self.customer_name,
            completed_at=self.completed_at,
            delivered_at=self.delivered_at,
            items=tuple(item.to_dto() for item in self.items),
        )


class ServiceOrderItemModel(TenantScopedMixin, TrackedBase):
    """ORM model for ``ServiceOrderItem``."""

    __tablename__ = "service_order_items"

    service_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("service_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    commission_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    service_order: Mapped["ServiceOrderModel"] = relationship(back_populates="items")

    def to_dto(self):
        from settlement_modules.sales.models import ServiceOrderItem
        return ServiceOrderItem(
            id=self.id,
            service_order_id=self.service_order_id,
            description=self.description,
            quantity=self.quantity,
            price=self.price,
            cost_price=self.cost_price,
            discount=self.discount,
            commission_percent=self.commission_percent,
        )
