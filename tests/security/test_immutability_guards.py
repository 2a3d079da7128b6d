"""
ORM-level immutability guard tests.

Calculated payroll results, their components, tax brackets and the
frozen figures of a commission cannot be changed through the session.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_modules.commissions.orm import CommissionModel
from settlement_modules.payroll.orm import PayrollComponentModel, PayrollResultModel
from settlement_modules.tax.orm import TaxBracketModel


@pytest.fixture
def result_row(
    seeded_brackets, register_employee, payroll_service, payroll_selector, session,
    tenant, test_actor_id,
):
    register_employee("Ana Souza", "3000.00")
    period = payroll_service.create_period(tenant, 2025, 1, test_actor_id)
    payroll_service.calculate(tenant, period.id, test_actor_id)
    result = payroll_selector.results_for_period(tenant, period.id)[0]
    return session.get(PayrollResultModel, result.id)


class TestPayrollResults:

    def test_amount_update_blocked(self, result_row, session):
        result_row.net_salary = Decimal("9999.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "PayrollResult"
        session.rollback()

    def test_payment_date_allowed(self, result_row, session):
        result_row.payment_date = date(2025, 2, 5)
        session.flush()
        session.commit()

    def test_delete_outside_calculation_blocked(self, result_row, session):
        session.delete(result_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_component_update_blocked(self, result_row, session):
        component = session.scalars(
            select(PayrollComponentModel).where(
                PayrollComponentModel.payroll_result_id == result_row.id
            )
        ).first()
        component.amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_component_delete_alone_blocked(self, result_row, session):
        component = session.scalars(
            select(PayrollComponentModel).where(
                PayrollComponentModel.payroll_result_id == result_row.id
            )
        ).first()
        session.delete(component)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_guards_can_be_lifted_for_seeding(self, result_row, session, without_guards):
        result_row.net_salary = Decimal("1.00")
        session.flush()
        session.rollback()


class TestTaxBrackets:

    def test_rate_update_blocked(self, seeded_brackets, session):
        bracket = session.scalars(select(TaxBracketModel)).first()
        bracket.rate = Decimal("0.5")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_window_close_allowed(self, seeded_brackets, session):
        bracket = session.scalars(select(TaxBracketModel)).first()
        bracket.effective_to = date(2030, 1, 1)
        session.flush()
        session.rollback()

    def test_delete_blocked(self, seeded_brackets, session, captured_logs):
        bracket = session.scalars(select(TaxBracketModel)).first()
        session.delete(bracket)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())


class TestCommissions:

    @pytest.fixture
    def commission_row(
        self, register_product, finalized_sale, commission_service, session,
        tenant, test_actor_id,
    ):
        sale = finalized_sale(register_product(), uuid4(), quantity="5")
        [commission] = commission_service.calculate_for_sale(tenant, sale.id, test_actor_id)
        return session.get(CommissionModel, commission.id)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("commission_amount", Decimal("99.00")),
            ("profit_amount", Decimal("1.00")),
            ("commission_percent", Decimal("50")),
        ],
    )
    def test_frozen_figures(self, commission_row, session, field, value):
        setattr(commission_row, field, value)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_notes_update_allowed(self, commission_row, session):
        commission_row.notes = "checked"
        session.flush()
        session.commit()
