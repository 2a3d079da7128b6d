"""
Tests for SalesLedgerService: catalog, sales and service orders.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import (
    InvalidStateTransitionError,
    ProductNotFoundError,
    TenantViolationError,
    ValidationError,
)
from settlement_modules.sales.models import (
    SaleLineInput,
    SaleStatus,
    ServiceItemInput,
    ServiceOrderStatus,
)


class TestCatalog:

    def test_register_product(self, register_product):
        product = register_product("12.50", "30.00", "7.5")
        assert product.cost_price == Decimal("12.50")
        assert product.commission_percent == Decimal("7.5")
        assert product.is_active

    @pytest.mark.parametrize("percent", ["-1", "100.01"])
    def test_percent_out_of_range(self, register_product, percent):
        with pytest.raises(ValidationError):
            register_product(commission_percent=percent)

    def test_negative_price_rejected(self, register_product):
        with pytest.raises(ValidationError):
            register_product(cost_price="-1.00")

    def test_cost_update_keeps_recorded_snapshot(
        self, sales_service, register_product, tenant, test_actor_id,
    ):
        product = register_product("60.00", "100.00")
        sale = sales_service.record_sale(
            tenant, uuid4(), [SaleLineInput(product.id, Decimal("1"))], test_actor_id,
        )
        updated = sales_service.update_product_cost(
            tenant, product.id, Decimal("70.00"), test_actor_id,
        )
        assert updated.cost_price == Decimal("70.00")
        assert sales_service.get_sale(tenant, sale.id).items[0].cost_price == Decimal("60.00")


class TestSales:

    def test_totals(self, sales_service, register_product, tenant, test_actor_id):
        a = register_product("10.00", "25.00")
        b = register_product("1.00", "4.99")
        sale = sales_service.record_sale(
            tenant, uuid4(),
            [
                SaleLineInput(a.id, Decimal("2"), discount=Decimal("5.00")),
                SaleLineInput(b.id, Decimal("3"), unit_price=Decimal("4.50")),
            ],
            test_actor_id,
            customer_name="Loja Centro",
        )
        assert sale.status == SaleStatus.OPEN
        assert sale.gross_amount == Decimal("63.50")
        assert sale.discount_amount == Decimal("5.00")
        assert sale.net_amount == Decimal("58.50")
        assert [item.unit_price for item in sale.items] == [Decimal("25.00"), Decimal("4.50")]

    def test_sale_date_defaults_to_clock(self, sales_service, register_product, tenant, test_actor_id):
        product = register_product()
        sale = sales_service.record_sale(
            tenant, uuid4(), [SaleLineInput(product.id, Decimal("1"))], test_actor_id,
        )
        assert sale.sale_date.date() == datetime(2025, 1, 31, tzinfo=timezone.utc).date()

    def test_empty_sale_rejected(self, sales_service, tenant, test_actor_id):
        with pytest.raises(ValidationError):
            sales_service.record_sale(tenant, uuid4(), [], test_actor_id)

    def test_non_positive_quantity_rejected(
        self, sales_service, register_product, tenant, test_actor_id,
    ):
        product = register_product()
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                tenant, uuid4(), [SaleLineInput(product.id, Decimal("0"))], test_actor_id,
            )

    def test_unknown_product(self, sales_service, tenant, test_actor_id):
        with pytest.raises(ProductNotFoundError):
            sales_service.record_sale(
                tenant, uuid4(), [SaleLineInput(uuid4(), Decimal("1"))], test_actor_id,
            )

    def test_other_tenants_product_rejected(
        self, sales_service, register_product, other_tenant, test_actor_id,
    ):
        product = register_product()
        with pytest.raises(TenantViolationError):
            sales_service.record_sale(
                other_tenant, uuid4(), [SaleLineInput(product.id, Decimal("1"))], test_actor_id,
            )

    def test_finalize_once(self, sales_service, finalized_sale, register_product, tenant, test_actor_id):
        sale = finalized_sale(register_product(), uuid4())
        assert sale.status == SaleStatus.FINALIZED
        assert sale.finalized_at is not None
        with pytest.raises(InvalidStateTransitionError):
            sales_service.finalize_sale(tenant, sale.id, test_actor_id)

    def test_cancel_twice_rejected(
        self, sales_service, finalized_sale, register_product, tenant, test_actor_id,
    ):
        sale = finalized_sale(register_product(), uuid4())
        assert sales_service.cancel_sale(tenant, sale.id, test_actor_id).status == (
            SaleStatus.CANCELLED
        )
        with pytest.raises(InvalidStateTransitionError):
            sales_service.cancel_sale(tenant, sale.id, test_actor_id)


class TestServiceOrders:

    def test_record_and_complete(self, sales_service, tenant, test_actor_id):
        order = sales_service.record_service_order(
            tenant, uuid4(),
            [
                ServiceItemInput("Diagnosis", Decimal("1"), Decimal("80.00")),
                ServiceItemInput(
                    "Battery swap", Decimal("2"), Decimal("150.00"),
                    cost_price=Decimal("90.00"), commission_percent=Decimal("10"),
                    discount=Decimal("20.00"),
                ),
            ],
            test_actor_id,
        )
        assert order.status == ServiceOrderStatus.OPEN
        assert order.total_amount == Decimal("360.00")

        completed = sales_service.complete_service_order(tenant, order.id, test_actor_id)
        assert completed.status == ServiceOrderStatus.COMPLETED
        assert completed.completed_at is not None

    def test_cancelled_order_cannot_complete(self, sales_service, tenant, test_actor_id):
        order = sales_service.record_service_order(
            tenant, uuid4(),
            [ServiceItemInput("Cleaning", Decimal("1"), Decimal("50.00"))],
            test_actor_id,
        )
        sales_service.cancel_service_order(tenant, order.id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            sales_service.complete_service_order(tenant, order.id, test_actor_id)

    def test_delivery_follows_completion(self, sales_service, tenant, test_actor_id):
        order = sales_service.record_service_order(
            tenant, uuid4(),
            [ServiceItemInput("Cleaning", Decimal("1"), Decimal("50.00"))],
            test_actor_id,
        )
        with pytest.raises(InvalidStateTransitionError):
            sales_service.deliver_service_order(tenant, order.id, test_actor_id)

        sales_service.complete_service_order(tenant, order.id, test_actor_id)
        delivered = sales_service.deliver_service_order(tenant, order.id, test_actor_id)
        assert delivered.status == ServiceOrderStatus.DELIVERED
        assert delivered.delivered_at is not None
        assert delivered.completed_at is not None

    def test_delivered_order_cannot_be_cancelled(self, sales_service, tenant, test_actor_id):
        order = sales_service.record_service_order(
            tenant, uuid4(),
            [ServiceItemInput("Cleaning", Decimal("1"), Decimal("50.00"))],
            test_actor_id,
        )
        sales_service.complete_service_order(tenant, order.id, test_actor_id)
        sales_service.deliver_service_order(tenant, order.id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            sales_service.cancel_service_order(tenant, order.id, test_actor_id)
        assert sales_service.get_service_order(tenant, order.id).status == (
            ServiceOrderStatus.DELIVERED
        )

    def test_item_percent_validated(self, sales_service, tenant, test_actor_id):
        with pytest.raises(ValidationError):
            sales_service.record_service_order(
                tenant, uuid4(),
                [ServiceItemInput(
                    "Cleaning", Decimal("1"), Decimal("50.00"),
                    commission_percent=Decimal("150"),
                )],
                test_actor_id,
            )
