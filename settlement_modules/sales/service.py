"""
Sales Ledger Service (``settlement_modules.sales.service``).

Responsibility
--------------
Records the sales and service orders that commissions and vendor
performance are computed from, and takes the cost-price and
commission-percent snapshots at the moment a sale is recorded.

Architecture position
---------------------
**Modules layer**.  A narrow mirror of the sales collaborator: only the
fields the settlement engine needs are kept.

Invariants enforced
-------------------
* Every row is stamped with the caller's tenant; rows loaded by id are
  checked with ``ensure_tenant``.
* A line item's ``cost_price`` / ``commission_percent`` come from the
  product at record time; later catalog changes never touch them.
* Finalizing a sale or completing a service order creates one commission
  per line in the same transaction.
* Cancelling a sale or service order cancels its open commissions in the
  same transaction.

Failure modes
-------------
* ``ValidationError`` -- non-positive quantity, negative price/discount,
  commission percent outside [0, 100], empty sale.
* ``InvalidStateTransitionError`` -- finalizing a cancelled sale, etc.
  Delivered orders are final and cannot be cancelled.
* ``TenantViolationError`` -- id belongs to another tenant.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_config.schema import CommissionSettings
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.money import ZERO, round2
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope, stamp_tenant
from settlement_kernel.exceptions import (
    InvalidStateTransitionError,
    ProductNotFoundError,
    SaleNotFoundError,
    ServiceOrderNotFoundError,
    ValidationError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.sales.models import (
    Product,
    Sale,
    SaleLineInput,
    SaleStatus,
    ServiceItemInput,
    ServiceOrder,
    ServiceOrderStatus,
)
from settlement_modules.sales.orm import (
    ProductModel,
    SaleItemModel,
    SaleModel,
    ServiceOrderItemModel,
    ServiceOrderModel,
)

logger = get_logger("modules.sales.service")

_HUNDRED = Decimal("100")


def _check_percent(value: Decimal, label: str) -> None:
    if not (ZERO <= value <= _HUNDRED):
        raise ValidationError(f"{label} commission percent {value} outside [0, 100]")


class SalesLedgerService(BaseService):
    """
    Records products, sales and service orders for one tenant at a time.

    Contract
    --------
    * Every public method takes a ``TenantScope`` first.
    * Write methods commit on success and roll back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: CommissionSettings | None = None,
    ):
        super().__init__(session, clock)
        self._commission_settings = settings or CommissionSettings()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register_product(
        self,
        scope: TenantScope,
        sku: str,
        name: str,
        cost_price: Decimal,
        sale_price: Decimal,
        commission_percent: Decimal,
        actor_id: UUID,
    ) -> Product:
        require_scope(scope)
        if cost_price < ZERO or sale_price < ZERO:
            raise ValidationError(f"product {sku} prices cannot be negative")
        _check_percent(commission_percent, f"product {sku}")

        with transaction_boundary(self.session, logger, "product_register", sku=sku):
            product = stamp_tenant(scope, ProductModel(
                sku=sku,
                name=name,
                cost_price=cost_price,
                sale_price=sale_price,
                commission_percent=commission_percent,
                created_by_id=actor_id,
            ))
            self.session.add(product)
            self.session.flush()
        return product.to_dto()

    def update_product_cost(
        self,
        scope: TenantScope,
        product_id: UUID,
        cost_price: Decimal,
        actor_id: UUID,
    ) -> Product:
        """Change the live catalog cost; recorded line items keep their snapshot."""
        if cost_price < ZERO:
            raise ValidationError("cost_price cannot be negative")
        with transaction_boundary(
            self.session, logger, "product_cost_update", entity_id=product_id,
        ):
            product = self._product(scope, product_id)
            previous = product.cost_price
            product.cost_price = cost_price
            product.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "product_cost_updated",
                extra={
                    "product_id": str(product_id),
                    "previous_cost": str(previous),
                    "cost_price": str(cost_price),
                },
            )
        return product.to_dto()

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(
        self,
        scope: TenantScope,
        user_id: UUID,
        lines: Sequence[SaleLineInput],
        actor_id: UUID,
        sale_date: datetime | None = None,
        customer_name: str | None = None,
    ) -> Sale:
        """Record an open sale, snapshotting cost and commission percent."""
        require_scope(scope)
        if not lines:
            raise ValidationError("a sale needs at least one line")

        with transaction_boundary(self.session, logger, "sale_record", user_id=user_id):
            sale = stamp_tenant(scope, SaleModel(
                user_id=user_id,
                customer_name=customer_name,
                sale_date=sale_date or self._clock.now(),
                status=SaleStatus.OPEN.value,
                gross_amount=ZERO,
                discount_amount=ZERO,
                net_amount=ZERO,
                created_by_id=actor_id,
            ))
            gross = ZERO
            discount_total = ZERO
            for number, line in enumerate(lines, start=1):
                if line.quantity <= ZERO:
                    raise ValidationError(f"line {number}: quantity must be positive")
                if line.discount < ZERO:
                    raise ValidationError(f"line {number}: discount cannot be negative")
                product = self._product(scope, line.product_id)
                unit_price = line.unit_price if line.unit_price is not None else product.sale_price
                if unit_price < ZERO:
                    raise ValidationError(f"line {number}: unit price cannot be negative")
                sale.items.append(stamp_tenant(scope, SaleItemModel(
                    product_id=product.id,
                    line_number=number,
                    description=product.name,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    cost_price=product.cost_price,
                    discount=line.discount,
                    commission_percent=product.commission_percent,
                    created_by_id=actor_id,
                )))
                gross += unit_price * line.quantity
                discount_total += line.discount

            sale.gross_amount = round2(gross)
            sale.discount_amount = round2(discount_total)
            sale.net_amount = round2(gross - discount_total)
            self.session.add(sale)
            self.session.flush()
            logger.info(
                "sale_recorded",
                extra={
                    "sale_id": str(sale.id),
                    "user_id": str(user_id),
                    "line_count": len(lines),
                    "net_amount": str(sale.net_amount),
                },
            )
        return sale.to_dto()

    def finalize_sale(self, scope: TenantScope, sale_id: UUID, actor_id: UUID) -> Sale:
        """OPEN -> FINALIZED, creating the sale's commissions."""
        from settlement_modules.commissions.helpers import create_commissions, sale_lines
        from settlement_modules.commissions.models import CommissionKind

        with transaction_boundary(self.session, logger, "sale_finalize", entity_id=sale_id):
            sale = self._sale(scope, sale_id)
            if sale.status != SaleStatus.OPEN.value:
                raise InvalidStateTransitionError("Sale", str(sale_id), sale.status, "finalize")
            sale.status = SaleStatus.FINALIZED.value
            sale.finalized_at = self._clock.now()
            sale.updated_by_id = actor_id
            self.session.flush()
            commissions = create_commissions(
                self.session, scope, CommissionKind.SALE, sale.id, sale.user_id,
                sale.sale_date.date(), sale_lines(sale), actor_id,
                self._commission_settings.non_positive_profit,
            )
            logger.info(
                "sale_finalized",
                extra={"sale_id": str(sale_id), "commission_count": len(commissions)},
            )
        return sale.to_dto()

    def cancel_sale(self, scope: TenantScope, sale_id: UUID, actor_id: UUID) -> Sale:
        """Cancel the sale and its commissions that are not yet paid."""
        from settlement_modules.commissions.helpers import cancel_open_commissions
        from settlement_modules.commissions.models import CommissionKind

        with transaction_boundary(self.session, logger, "sale_cancel", entity_id=sale_id):
            sale = self._sale(scope, sale_id)
            if sale.status == SaleStatus.CANCELLED.value:
                raise InvalidStateTransitionError("Sale", str(sale_id), sale.status, "cancel")
            sale.status = SaleStatus.CANCELLED.value
            sale.updated_by_id = actor_id
            cancelled = cancel_open_commissions(
                self.session, scope, CommissionKind.SALE, sale_id, actor_id,
            )
            self.session.flush()
            logger.info(
                "sale_cancelled",
                extra={"sale_id": str(sale_id), "commissions_cancelled": cancelled},
            )
        return sale.to_dto()

    def get_sale(self, scope: TenantScope, sale_id: UUID) -> Sale:
        return self._sale(scope, sale_id).to_dto()

    # ------------------------------------------------------------------
    # Service orders
    # ------------------------------------------------------------------

    def record_service_order(
        self,
        scope: TenantScope,
        user_id: UUID,
        items: Sequence[ServiceItemInput],
        actor_id: UUID,
        customer_name: str | None = None,
    ) -> ServiceOrder:
        require_scope(scope)
        if not items:
            raise ValidationError("a service order needs at least one item")

        with transaction_boundary(self.session, logger, "service_order_record", user_id=user_id):
            order = stamp_tenant(scope, ServiceOrderModel(
                user_id=user_id,
                customer_name=customer_name,
                opened_at=self._clock.now(),
                status=ServiceOrderStatus.OPEN.value,
                total_amount=ZERO,
                created_by_id=actor_id,
            ))
            total = ZERO
            for number, item in enumerate(items, start=1):
                if item.quantity <= ZERO:
                    raise ValidationError(f"item {number}: quantity must be positive")
                if item.price < ZERO or item.cost_price < ZERO or item.discount < ZERO:
                    raise ValidationError(f"item {number}: amounts cannot be negative")
                _check_percent(item.commission_percent, f"item {number}")
                order.items.append(stamp_tenant(scope, ServiceOrderItemModel(
                    line_number=number,
                    description=item.description,
                    quantity=item.quantity,
                    price=item.price,
                    cost_price=item.cost_price,
                    discount=item.discount,
                    commission_percent=item.commission_percent,
                    created_by_id=actor_id,
                )))
                total += item.price * item.quantity - item.discount
            order.total_amount = round2(total)
            self.session.add(order)
            self.session.flush()
            logger.info(
                "service_order_recorded",
                extra={"service_order_id": str(order.id), "item_count": len(items)},
            )
        return order.to_dto()

    def complete_service_order(
        self, scope: TenantScope, order_id: UUID, actor_id: UUID,
    ) -> ServiceOrder:
        """OPEN -> COMPLETED, creating the order's commissions."""
        from settlement_modules.commissions.helpers import create_commissions, service_order_lines
        from settlement_modules.commissions.models import CommissionKind

        with transaction_boundary(
            self.session, logger, "service_order_complete", entity_id=order_id,
        ):
            order = self._service_order(scope, order_id)
            if order.status != ServiceOrderStatus.OPEN.value:
                raise InvalidStateTransitionError(
                    "ServiceOrder", str(order_id), order.status, "complete",
                )
            order.status = ServiceOrderStatus.COMPLETED.value
            order.completed_at = self._clock.now()
            order.updated_by_id = actor_id
            self.session.flush()
            commissions = create_commissions(
                self.session, scope, CommissionKind.SERVICE_ORDER, order.id, order.user_id,
                order.completed_at.date(), service_order_lines(order), actor_id,
                self._commission_settings.non_positive_profit,
            )
            logger.info(
                "service_order_completed",
                extra={
                    "service_order_id": str(order_id),
                    "commission_count": len(commissions),
                },
            )
        return order.to_dto()

    def deliver_service_order(
        self, scope: TenantScope, order_id: UUID, actor_id: UUID,
    ) -> ServiceOrder:
        """COMPLETED -> DELIVERED.  Commissions created on completion stand."""
        with transaction_boundary(
            self.session, logger, "service_order_deliver", entity_id=order_id,
        ):
            order = self._service_order(scope, order_id)
            if order.status != ServiceOrderStatus.COMPLETED.value:
                raise InvalidStateTransitionError(
                    "ServiceOrder", str(order_id), order.status, "deliver",
                )
            order.status = ServiceOrderStatus.DELIVERED.value
            order.delivered_at = self._clock.now()
            order.updated_by_id = actor_id
            self.session.flush()
            logger.info("service_order_delivered", extra={"service_order_id": str(order_id)})
        return order.to_dto()

    def cancel_service_order(
        self, scope: TenantScope, order_id: UUID, actor_id: UUID,
    ) -> ServiceOrder:
        from settlement_modules.commissions.helpers import cancel_open_commissions
        from settlement_modules.commissions.models import CommissionKind

        with transaction_boundary(
            self.session, logger, "service_order_cancel", entity_id=order_id,
        ):
            order = self._service_order(scope, order_id)
            if order.status in (
                ServiceOrderStatus.CANCELLED.value, ServiceOrderStatus.DELIVERED.value,
            ):
                raise InvalidStateTransitionError(
                    "ServiceOrder", str(order_id), order.status, "cancel",
                )
            order.status = ServiceOrderStatus.CANCELLED.value
            order.updated_by_id = actor_id
            cancelled = cancel_open_commissions(
                self.session, scope, CommissionKind.SERVICE_ORDER, order_id, actor_id,
            )
            self.session.flush()
            logger.info(
                "service_order_cancelled",
                extra={"service_order_id": str(order_id), "commissions_cancelled": cancelled},
            )
        return order.to_dto()

    def get_service_order(self, scope: TenantScope, order_id: UUID) -> ServiceOrder:
        return self._service_order(scope, order_id).to_dto()

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def _product(self, scope: TenantScope, product_id: UUID) -> ProductModel:
        require_scope(scope)
        product = self.session.get(ProductModel, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return ensure_tenant(scope, product, "Product")

    def _sale(self, scope: TenantScope, sale_id: UUID) -> SaleModel:
        require_scope(scope)
        sale = self.session.get(SaleModel, sale_id)
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return ensure_tenant(scope, sale, "Sale")

    def _service_order(self, scope: TenantScope, order_id: UUID) -> ServiceOrderModel:
        require_scope(scope)
        order = self.session.get(ServiceOrderModel, order_id)
        if order is None:
            raise ServiceOrderNotFoundError(str(order_id))
        return ensure_tenant(scope, order, "ServiceOrder")
