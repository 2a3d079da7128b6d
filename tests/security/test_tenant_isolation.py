"""
Tenant isolation tests.

Every service and selector entry point takes a TenantScope; rows of
another tenant are reported and refused, and the flush guard rejects
rows that reach the database without a tenant or with a reassigned one.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import TenantViolationError
from settlement_modules.payroll.models import PayrollEntryInput
from settlement_modules.sales.orm import ProductModel


@pytest.fixture
def calculated_period(
    seeded_brackets, register_employee, payroll_service, tenant, test_actor_id,
):
    register_employee("Ana Souza", "3000.00")
    period = payroll_service.create_period(tenant, 2025, 1, test_actor_id)
    return payroll_service.calculate(tenant, period.id, test_actor_id)


# =============================================================================
# Service and selector boundaries
# =============================================================================


class TestCrossTenantAccess:

    def test_period_read(self, calculated_period, payroll_selector, other_tenant):
        with pytest.raises(TenantViolationError):
            payroll_selector.get_period(other_tenant, calculated_period.id)

    def test_result_read(self, calculated_period, payroll_selector, tenant, other_tenant):
        result = payroll_selector.results_for_period(tenant, calculated_period.id)[0]
        with pytest.raises(TenantViolationError):
            payroll_selector.get_result(other_tenant, result.id)

    def test_period_write(self, calculated_period, payroll_service, other_tenant, test_actor_id):
        with pytest.raises(TenantViolationError):
            payroll_service.approve(other_tenant, calculated_period.id, test_actor_id)

    def test_employee_is_invisible_to_other_tenant(
        self, register_employee, payroll_service, other_tenant, test_actor_id,
    ):
        ana = register_employee("Ana Souza", "3000.00")
        theirs = payroll_service.create_period(other_tenant, 2025, 1, test_actor_id)
        with pytest.raises(TenantViolationError):
            payroll_service.upsert_entry(
                other_tenant, theirs.id, PayrollEntryInput(employee_id=ana.employee_id),
                test_actor_id,
            )

    def test_other_tenant_does_not_see_staff(
        self, register_employee, directory, tenant, other_tenant,
    ):
        register_employee("Ana Souza", "3000.00")
        assert len(directory.list_active(tenant)) == 1
        assert directory.list_active(other_tenant) == []

    def test_missing_scope(self, payroll_selector):
        with pytest.raises(TenantViolationError):
            payroll_selector.list_periods(None)

    def test_violation_is_logged(
        self, calculated_period, payroll_selector, other_tenant, captured_logs,
    ):
        with pytest.raises(TenantViolationError):
            payroll_selector.get_period(other_tenant, calculated_period.id)
        record = next(r for r in captured_logs() if r["message"] == "tenant_violation")
        assert record["entity_type"] == "PayrollPeriod"
        assert record["entity_id"] == str(calculated_period.id)
        assert record["active_tenant_id"] == str(other_tenant.tenant_id)


# =============================================================================
# Flush guard
# =============================================================================


class TestFlushGuard:

    def test_row_without_tenant_rejected(self, session, test_actor_id):
        session.add(ProductModel(
            sku="RAW-1",
            name="Unscoped",
            cost_price=Decimal("1.00"),
            sale_price=Decimal("2.00"),
            created_by_id=test_actor_id,
        ))
        with pytest.raises(TenantViolationError):
            session.flush()
        session.rollback()

    def test_tenant_reassignment_rejected(self, register_product, session):
        product = register_product()
        row = session.get(ProductModel, product.id)
        assert row.tenant_id is not None
        row.tenant_id = uuid4()
        with pytest.raises(TenantViolationError):
            session.flush()
        session.rollback()
