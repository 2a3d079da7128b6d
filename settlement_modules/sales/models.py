"""
Sales Ledger Domain Models (``settlement_modules.sales.models``).

Responsibility
--------------
Frozen value objects for the slice of the sales collaborator the
settlement engine consumes: catalog products, sales with line items and
service orders with items.  Line items carry the cost-price and
commission-percent snapshots taken when the sale was recorded.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; all amounts are ``Decimal``.
* Line item snapshots are copied from the product at sale time and never
  re-read from the catalog afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_kernel.domain.money import ZERO


class SaleStatus(Enum):
    """Sale lifecycle states."""
    OPEN = "open"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


class ServiceOrderStatus(Enum):
    """Service order lifecycle states."""
    OPEN = "open"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# A delivered order was completed first, so it earns commission too.
COMMISSIONABLE_ORDER_STATUSES = frozenset({
    ServiceOrderStatus.COMPLETED.value,
    ServiceOrderStatus.DELIVERED.value,
})


@dataclass(frozen=True)
class Product:
    """Catalog product as seen by the settlement engine."""
    id: UUID
    sku: str
    name: str
    cost_price: Decimal
    sale_price: Decimal
    commission_percent: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class SaleLineInput:
    """One line of a sale being recorded."""
    product_id: UUID
    quantity: Decimal
    unit_price: Decimal | None = None  # None = product sale price
    discount: Decimal = ZERO


@dataclass(frozen=True)
class ServiceItemInput:
    """One item of a service order being recorded."""
    description: str
    quantity: Decimal
    price: Decimal
    cost_price: Decimal = ZERO
    commission_percent: Decimal = ZERO
    discount: Decimal = ZERO


@dataclass(frozen=True)
class SaleItem:
    """Sale line item with its cost and commission snapshots."""
    id: UUID
    sale_id: UUID
    product_id: UUID | None
    description: str
    quantity: Decimal
    unit_price: Decimal
    cost_price: Decimal
    discount: Decimal
    commission_percent: Decimal


@dataclass(frozen=True)
class Sale:
    """A sale attributed to one salesperson."""
    id: UUID
    user_id: UUID
    sale_date: datetime
    status: SaleStatus
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    customer_name: str | None = None
    finalized_at: datetime | None = None
    items: tuple[SaleItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ServiceOrderItem:
    """Service order item with its cost and commission snapshots."""
    id: UUID
    service_order_id: UUID
    description: str
    quantity: Decimal
    price: Decimal
    cost_price: Decimal
    discount: Decimal
    commission_percent: Decimal


@dataclass(frozen=True)
class ServiceOrder:
    """A service order attributed to one technician/salesperson."""
    id: UUID
    user_id: UUID
    opened_at: datetime
    status: ServiceOrderStatus
    total_amount: Decimal
    customer_name: str | None = None
    completed_at: datetime | None = None
    delivered_at: datetime | None = None
    items: tuple[ServiceOrderItem, ...] = field(default_factory=tuple)
