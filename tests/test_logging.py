"""
Tests for the JSON log stream: the records payroll, commission and tenant
checks emit, and how request context is merged into them.
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import InvalidStateTransitionError, TenantViolationError
from settlement_kernel.logging_config import LogContext, StructuredFormatter, reset_logging
from settlement_modules.commissions.models import NON_POSITIVE_PROFIT


@pytest.fixture(autouse=True)
def _fresh_context():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _events(records: list[dict], message: str) -> list[dict]:
    return [r for r in records if r["message"] == message]


def _render(message: str, exc_info=None, **extra) -> dict:
    record = logging.getLogger("settlement.modules.test").makeRecord(
        "settlement.modules.test", logging.INFO, __file__, 0, message, (), exc_info,
        extra=extra,
    )
    return json.loads(StructuredFormatter().format(record))


# =============================================================================
# Payroll events
# =============================================================================


class TestPayrollEvents:

    @pytest.fixture
    def period(self, seeded_brackets, register_employee, payroll_service, tenant, test_actor_id):
        register_employee("Ana Souza", "3000.00")
        return payroll_service.create_period(tenant, 2025, 1, test_actor_id)

    def test_claim_carries_bound_context(
        self, captured_logs, period, payroll_service, tenant, test_actor_id,
    ):
        payroll_service.calculate(tenant, period.id, test_actor_id)

        [claimed] = _events(captured_logs(), "payroll_calculation_claimed")
        assert claimed["tenant_id"] == str(tenant.tenant_id)
        assert claimed["actor_id"] == str(test_actor_id)
        assert claimed["period_id"] == str(period.id)
        assert claimed["previous_status"] == "draft"
        assert claimed["employee_count"] == 1

        [calculated] = _events(captured_logs(), "payroll_calculated")
        assert calculated["run_id"] == claimed["run_id"]
        assert calculated["tenant_id"] == str(tenant.tenant_id)
        assert LogContext.get_all() == {}

    def test_repeat_payment_logged_once(
        self, captured_logs, period, payroll_service, tenant, test_actor_id,
    ):
        payroll_service.calculate(tenant, period.id, test_actor_id)
        payroll_service.approve(tenant, period.id, test_actor_id)
        payroll_service.mark_paid(tenant, period.id, test_actor_id, date(2025, 2, 5))
        assert _events(captured_logs(), "payroll_already_paid") == []

        payroll_service.mark_paid(tenant, period.id, test_actor_id, date(2025, 2, 20))
        [repeat] = _events(captured_logs(), "payroll_already_paid")
        assert repeat["period_id"] == str(period.id)
        assert repeat["level"] == "INFO"

    def test_rejected_recalculation_is_not_claimed(
        self, captured_logs, period, payroll_service, tenant, test_actor_id,
    ):
        payroll_service.calculate(tenant, period.id, test_actor_id)
        payroll_service.approve(tenant, period.id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.calculate(tenant, period.id, test_actor_id)
        assert len(_events(captured_logs(), "payroll_calculation_claimed")) == 1


# =============================================================================
# Commission events
# =============================================================================


class TestCommissionEvents:

    def test_created_and_existing_counts(
        self, captured_logs, register_product, finalized_sale, commission_service,
        tenant, test_actor_id,
    ):
        sale = finalized_sale(register_product(), uuid4(), quantity="5")
        commission_service.calculate_for_sale(tenant, sale.id, test_actor_id)

        created = _events(captured_logs(), "commission_created")
        assert [(r["created_count"], r["existing_count"]) for r in created] == [(1, 0), (0, 1)]
        assert {r["source_id"] for r in created} == {str(sale.id)}
        assert created[0]["kind"] == "sale"

    def test_loss_flag_is_a_warning(
        self, captured_logs, register_product, finalized_sale, tenant,
    ):
        finalized_sale(register_product(cost_price="60.00"), uuid4(), unit_price="50.00")

        [flagged] = _events(captured_logs(), "commission_flagged_for_review")
        assert flagged["level"] == "WARNING"
        assert flagged["reason"] == NON_POSITIVE_PROFIT
        assert flagged["logger"] == "settlement.modules.commissions.helpers"


# =============================================================================
# Tenant violations
# =============================================================================


class TestTenantViolationEvent:

    def test_cross_tenant_read_reported(
        self, captured_logs, register_product, finalized_sale, sales_service,
        tenant, other_tenant,
    ):
        sale = finalized_sale(register_product(), uuid4())
        with pytest.raises(TenantViolationError):
            sales_service.get_sale(other_tenant, sale.id)

        [violation] = _events(captured_logs(), "tenant_violation")
        assert violation["logger"] == "settlement.security"
        assert violation["entity_type"] == "Sale"
        assert violation["entity_id"] == str(sale.id)
        assert violation["active_tenant_id"] == str(other_tenant.tenant_id)


# =============================================================================
# Context and formatting
# =============================================================================


class TestContext:

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            with LogContext.bind(employee_id=uuid4()):
                pass
        with pytest.raises(TypeError):
            LogContext.set(run_id="r-1")

    def test_nested_bind_restores_outer(self):
        outer, inner = uuid4(), uuid4()
        with LogContext.bind(tenant_id=outer):
            with LogContext.bind(tenant_id=inner, period_id=None):
                assert LogContext.get_all() == {"tenant_id": str(inner)}
            assert LogContext.get_all() == {"tenant_id": str(outer)}
        assert LogContext.get_all() == {}

    def test_context_overrides_extra(self):
        with LogContext.bind(period_id="bound"):
            record = _render("payroll_approved", period_id="from-extra")
        assert record["period_id"] == "bound"


class TestFormatting:

    def test_money_and_dates(self):
        result_id = uuid4()
        record = _render(
            "payroll_paid",
            total_net=Decimal("2611.44"),
            payment_date=date(2025, 2, 5),
            result_id=result_id,
        )
        assert record["total_net"] == "2611.44"
        assert record["payment_date"] == "2025-02-05"
        assert record["result_id"] == str(result_id)

    def test_domain_error_details(self):
        try:
            raise InvalidStateTransitionError("PayrollPeriod", "p-1", "paid", "calculate")
        except InvalidStateTransitionError:
            record = _render("payroll_calculation_failed", exc_info=sys.exc_info())
        assert record["exc_code"] == "INVALID_STATE_TRANSITION"
        assert record["exc_current_state"] == "paid"
        assert record["exc_action"] == "calculate"
        assert "Traceback" in record["traceback"]
