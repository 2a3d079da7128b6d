"""
Tests for the payroll period lifecycle.

Covers:
- Period creation and attendance entries
- Calculation, recalculation and the persisted totals
- Approval and payment
- Claim handling: cancellation, version conflicts, stuck claims
- Downstream links blocking recalculation
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.cancellation import CancellationToken
from settlement_kernel.exceptions import (
    CalculationCancelledError,
    CalculationInProgressError,
    ConcurrentModificationError,
    DownstreamLinkError,
    InvalidPayrollEntryError,
    InvalidStateTransitionError,
    MissingTaxBracketsError,
    NoEligibleEmployeesError,
    ValidationError,
)
from settlement_modules.payroll.models import PayrollEntryInput, PayrollPeriodStatus
from settlement_modules.payroll.orm import PayrollPeriodModel


@pytest.fixture
def staff(register_employee):
    ana = register_employee("Ana Souza", "3000.00")
    bruno = register_employee("Bruno Lima", "2200.00", dependents=1)
    return ana, bruno


@pytest.fixture
def period(payroll_service, tenant, test_actor_id):
    return payroll_service.create_period(tenant, 2025, 1, test_actor_id)


@pytest.fixture
def calculated(seeded_brackets, staff, period, payroll_service, tenant, test_actor_id):
    return payroll_service.calculate(tenant, period.id, test_actor_id)


# =============================================================================
# Periods and entries
# =============================================================================


class TestPeriods:

    def test_create_is_idempotent(self, payroll_service, tenant, test_actor_id, period):
        again = payroll_service.create_period(tenant, 2025, 1, test_actor_id)
        assert again.id == period.id
        assert period.status == PayrollPeriodStatus.DRAFT

    def test_periods_are_per_tenant(self, payroll_service, other_tenant, test_actor_id, period):
        theirs = payroll_service.create_period(other_tenant, 2025, 1, test_actor_id)
        assert theirs.id != period.id

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, payroll_service, tenant, test_actor_id, month):
        with pytest.raises(ValidationError):
            payroll_service.create_period(tenant, 2025, month, test_actor_id)

    def test_list_periods_newest_first(self, payroll_service, payroll_selector, tenant, test_actor_id):
        payroll_service.create_period(tenant, 2025, 1, test_actor_id)
        payroll_service.create_period(tenant, 2025, 3, test_actor_id)
        periods = payroll_selector.list_periods(tenant, year=2025)
        assert [p.month for p in periods] == [3, 1]


class TestEntries:

    def test_upsert_replaces_existing(self, payroll_service, tenant, test_actor_id, staff, period):
        ana, _ = staff
        payroll_service.upsert_entry(
            tenant, period.id,
            PayrollEntryInput(employee_id=ana.employee_id, overtime_hours=Decimal("5")),
            test_actor_id,
        )
        payroll_service.upsert_entry(
            tenant, period.id,
            PayrollEntryInput(employee_id=ana.employee_id, overtime_hours=Decimal("8")),
            test_actor_id,
        )
        entries = payroll_service.list_entries(tenant, period.id)
        assert len(entries) == 1
        assert entries[0].overtime_hours == Decimal("8")

    def test_justified_beyond_absence_rejected(
        self, payroll_service, tenant, test_actor_id, staff, period,
    ):
        ana, _ = staff
        with pytest.raises(InvalidPayrollEntryError) as exc_info:
            payroll_service.upsert_entry(
                tenant, period.id,
                PayrollEntryInput(
                    employee_id=ana.employee_id,
                    absence_days=Decimal("1"),
                    justified_absence_days=Decimal("2"),
                ),
                test_actor_id,
            )
        assert "justified_absence_days exceeds absence_days" in exc_info.value.errors

    def test_unknown_employee_rejected(self, payroll_service, tenant, test_actor_id, period):
        with pytest.raises(InvalidPayrollEntryError):
            payroll_service.upsert_entry(
                tenant, period.id, PayrollEntryInput(employee_id=uuid4()), test_actor_id,
            )

    def test_remove_entry(self, payroll_service, tenant, test_actor_id, staff, period):
        ana, _ = staff
        payroll_service.upsert_entry(
            tenant, period.id, PayrollEntryInput(employee_id=ana.employee_id), test_actor_id,
        )
        assert payroll_service.remove_entry(tenant, period.id, ana.employee_id, test_actor_id)
        assert not payroll_service.remove_entry(tenant, period.id, ana.employee_id, test_actor_id)

    def test_entries_frozen_after_calculation(
        self, payroll_service, tenant, test_actor_id, staff, calculated,
    ):
        ana, _ = staff
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.upsert_entry(
                tenant, calculated.id, PayrollEntryInput(employee_id=ana.employee_id),
                test_actor_id,
            )


# =============================================================================
# Calculation
# =============================================================================


class TestCalculation:

    def test_one_result_per_active_employee(self, calculated, payroll_selector, tenant):
        assert calculated.status == PayrollPeriodStatus.CALCULATED
        assert calculated.employee_count == 2
        results = payroll_selector.results_for_period(tenant, calculated.id)
        assert [r.snapshot.name for r in results] == ["Ana Souza", "Bruno Lima"]

    def test_worked_values(self, calculated, payroll_selector, tenant):
        ana = payroll_selector.results_for_period(tenant, calculated.id)[0]
        assert ana.gross_salary == Decimal("3000.00")
        assert ana.social_contribution == Decimal("360.00")
        assert ana.income_withholding == Decimal("28.56")
        assert ana.net_salary == Decimal("2611.44")
        assert ana.employer_cost == Decimal("3840.00")
        assert ana.additional_employer_cost == Decimal("840.00")
        assert ana.payroll_entry_id is None

    def test_totals_equal_sum_of_results(self, calculated, payroll_selector, tenant):
        results = payroll_selector.results_for_period(tenant, calculated.id)
        assert calculated.total_gross == sum(r.gross_salary for r in results)
        assert calculated.total_net == sum(r.net_salary for r in results)
        assert calculated.total_deductions == sum(r.total_deductions for r in results)
        assert calculated.total_employer_cost == sum(r.employer_cost for r in results)
        assert calculated.total_social_contribution == sum(r.social_contribution for r in results)
        assert calculated.total_income_withholding == sum(r.income_withholding for r in results)

    def test_withholding_and_contribution_totals(self, calculated):
        # Ana 360.00 + 28.56, Bruno 198.00 + 0.00
        assert calculated.total_social_contribution == Decimal("558.00")
        assert calculated.total_income_withholding == Decimal("28.56")

    def test_entry_feeds_calculation(
        self, seeded_brackets, staff, period, payroll_service, payroll_selector,
        tenant, test_actor_id,
    ):
        _, bruno = staff
        entry = payroll_service.upsert_entry(
            tenant, period.id,
            PayrollEntryInput(employee_id=bruno.employee_id, overtime_hours=Decimal("10")),
            test_actor_id,
        )
        payroll_service.calculate(tenant, period.id, test_actor_id)
        result = payroll_selector.results_for_period(tenant, period.id)[1]
        assert result.gross_salary == Decimal("2350.00")
        assert result.net_salary == Decimal("2138.50")
        assert result.payroll_entry_id == entry.id

    def test_components_are_ordered(self, calculated, payroll_selector, tenant):
        result = payroll_selector.results_for_period(tenant, calculated.id)[0]
        components = payroll_selector.components_for_result(tenant, result.id)
        assert [c.sequence for c in components] == sorted(c.sequence for c in components)
        assert components[0].amount == Decimal("3000.00")

    def test_recalculation_replaces_results(
        self, calculated, payroll_service, payroll_selector, register_employee,
        tenant, test_actor_id,
    ):
        before = {r.id for r in payroll_selector.results_for_period(tenant, calculated.id)}
        register_employee("Carla Dias", "1800.00")
        again = payroll_service.calculate(tenant, calculated.id, test_actor_id)
        after = payroll_selector.results_for_period(tenant, calculated.id)
        assert again.employee_count == 3
        assert len(after) == 3
        assert before.isdisjoint({r.id for r in after})

    def test_results_keep_employee_snapshot(
        self, calculated, directory, payroll_selector, staff, tenant, test_actor_id,
    ):
        ana, _ = staff
        directory.update_compensation(
            tenant, ana.employee_id, test_actor_id, name="Ana Souza Reis",
        )
        result = payroll_selector.results_for_employee(tenant, ana.employee_id)[0]
        assert result.snapshot.name == "Ana Souza"

    def test_inactive_employees_excluded(
        self, seeded_brackets, staff, period, directory, payroll_service, tenant, test_actor_id,
    ):
        _, bruno = staff
        directory.update_compensation(tenant, bruno.employee_id, test_actor_id, is_active=False)
        info = payroll_service.calculate(tenant, period.id, test_actor_id)
        assert info.employee_count == 1

    def test_calculation_logs(
        self, seeded_brackets, staff, period, payroll_service, tenant, test_actor_id,
        captured_logs,
    ):
        payroll_service.calculate(tenant, period.id, test_actor_id)
        records = captured_logs()
        messages = [r["message"] for r in records]
        assert "payroll_calculation_claimed" in messages
        done = next(r for r in records if r["message"] == "payroll_calculated")
        assert done["period_id"] == str(period.id)
        assert done["employee_count"] == 2


class TestCalculationFailures:

    def test_missing_brackets_leaves_draft(
        self, staff, period, payroll_service, payroll_selector, tenant, test_actor_id,
    ):
        with pytest.raises(MissingTaxBracketsError):
            payroll_service.calculate(tenant, period.id, test_actor_id)
        assert payroll_selector.get_period(tenant, period.id).status == PayrollPeriodStatus.DRAFT

    def test_no_employees(self, seeded_brackets, period, payroll_service, tenant, test_actor_id):
        with pytest.raises(NoEligibleEmployeesError):
            payroll_service.calculate(tenant, period.id, test_actor_id)

    def test_version_mismatch(
        self, seeded_brackets, staff, period, payroll_service, payroll_selector,
        tenant, test_actor_id,
    ):
        with pytest.raises(ConcurrentModificationError):
            payroll_service.calculate(
                tenant, period.id, test_actor_id, expected_version=period.version + 5,
            )
        assert payroll_selector.get_period(tenant, period.id).status == PayrollPeriodStatus.DRAFT

    def test_matching_version_accepted(
        self, seeded_brackets, staff, period, payroll_service, tenant, test_actor_id,
    ):
        info = payroll_service.calculate(
            tenant, period.id, test_actor_id, expected_version=period.version,
        )
        assert info.status == PayrollPeriodStatus.CALCULATED
        assert info.version > period.version

    def test_cancelled_first_run_returns_to_draft(
        self, seeded_brackets, staff, period, payroll_service, payroll_selector,
        tenant, test_actor_id,
    ):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CalculationCancelledError):
            payroll_service.calculate(tenant, period.id, test_actor_id, cancel_token=token)
        info = payroll_selector.get_period(tenant, period.id)
        assert info.status == PayrollPeriodStatus.DRAFT
        assert payroll_selector.results_for_period(tenant, period.id) == []

    def test_cancelled_recalculation_keeps_old_results(
        self, calculated, payroll_service, payroll_selector, tenant, test_actor_id,
    ):
        before = {r.id for r in payroll_selector.results_for_period(tenant, calculated.id)}
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CalculationCancelledError):
            payroll_service.calculate(tenant, calculated.id, test_actor_id, cancel_token=token)
        info = payroll_selector.get_period(tenant, calculated.id)
        assert info.status == PayrollPeriodStatus.CALCULATED
        assert {r.id for r in payroll_selector.results_for_period(tenant, calculated.id)} == before


class TestStuckClaim:

    @pytest.fixture
    def stuck(self, seeded_brackets, staff, period, session):
        row = session.get(PayrollPeriodModel, period.id)
        row.status = PayrollPeriodStatus.CALCULATING.value
        row.status_before_calculation = PayrollPeriodStatus.DRAFT.value
        row.calculation_run_id = uuid4()
        session.commit()
        return period

    def test_second_calculation_rejected(self, stuck, payroll_service, tenant, test_actor_id):
        with pytest.raises(CalculationInProgressError):
            payroll_service.calculate(tenant, stuck.id, test_actor_id)

    def test_results_hidden_while_calculating(self, stuck, payroll_selector, tenant):
        with pytest.raises(CalculationInProgressError):
            payroll_selector.results_for_period(tenant, stuck.id)

    def test_abort_releases_claim(
        self, stuck, payroll_service, tenant, test_actor_id, captured_logs,
    ):
        info = payroll_service.abort_calculation(tenant, stuck.id, test_actor_id)
        assert info.status == PayrollPeriodStatus.DRAFT
        assert any(r["message"] == "payroll_calculation_aborted" for r in captured_logs())
        recalculated = payroll_service.calculate(tenant, stuck.id, test_actor_id)
        assert recalculated.status == PayrollPeriodStatus.CALCULATED


# =============================================================================
# Approval and payment
# =============================================================================


class TestApprovalAndPayment:

    def test_approve_from_draft_rejected(self, payroll_service, tenant, test_actor_id, period):
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.approve(tenant, period.id, test_actor_id)

    def test_approved_period_cannot_recalculate(
        self, calculated, payroll_service, tenant, test_actor_id,
    ):
        approved = payroll_service.approve(tenant, calculated.id, test_actor_id, notes="ok")
        assert approved.status == PayrollPeriodStatus.APPROVED
        assert approved.approved_by_id == test_actor_id
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.calculate(tenant, calculated.id, test_actor_id)

    @pytest.mark.parametrize("paid", [False, True])
    def test_rejected_recalculation_leaves_figures_untouched(
        self, calculated, payroll_service, payroll_selector, register_employee,
        tenant, test_actor_id, paid,
    ):
        payroll_service.approve(tenant, calculated.id, test_actor_id)
        if paid:
            payroll_service.mark_paid(tenant, calculated.id, test_actor_id, date(2025, 2, 5))
        period_before = payroll_selector.get_period(tenant, calculated.id)
        results_before = payroll_selector.results_for_period(tenant, calculated.id)

        register_employee("Carla Dias", "1800.00")
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.calculate(tenant, calculated.id, test_actor_id)

        assert payroll_selector.get_period(tenant, calculated.id) == period_before
        assert payroll_selector.results_for_period(tenant, calculated.id) == results_before

    def test_pay_requires_approval(self, calculated, payroll_service, tenant, test_actor_id):
        with pytest.raises(InvalidStateTransitionError):
            payroll_service.mark_paid(tenant, calculated.id, test_actor_id, date(2025, 2, 5))

    def test_mark_paid_dates_results(
        self, calculated, payroll_service, payroll_selector, tenant, test_actor_id,
    ):
        payroll_service.approve(tenant, calculated.id, test_actor_id)
        paid = payroll_service.mark_paid(tenant, calculated.id, test_actor_id, date(2025, 2, 5))
        assert paid.status == PayrollPeriodStatus.PAID
        assert paid.payment_date == date(2025, 2, 5)
        results = payroll_selector.results_for_period(tenant, calculated.id)
        assert {r.payment_date for r in results} == {date(2025, 2, 5)}

    def test_mark_paid_is_idempotent(
        self, calculated, payroll_service, tenant, test_actor_id, captured_logs,
    ):
        payroll_service.approve(tenant, calculated.id, test_actor_id)
        first = payroll_service.mark_paid(tenant, calculated.id, test_actor_id, date(2025, 2, 5))
        second = payroll_service.mark_paid(tenant, calculated.id, test_actor_id, date(2025, 2, 9))
        assert second.payment_date == first.payment_date
        assert second.paid_at == first.paid_at
        assert any(r["message"] == "payroll_already_paid" for r in captured_logs())


# =============================================================================
# Downstream links
# =============================================================================


class TestDownstreamLinks:

    def test_slip_blocks_recalculation(
        self, calculated, payroll_service, payroll_selector, payslip_service,
        tenant, test_actor_id,
    ):
        result = payroll_selector.results_for_period(tenant, calculated.id)[0]
        payslip_service.generate(tenant, result.id, test_actor_id)
        with pytest.raises(DownstreamLinkError) as exc_info:
            payroll_service.calculate(tenant, calculated.id, test_actor_id)
        assert exc_info.value.slip_links == 1
        assert exc_info.value.commission_links == 0
        assert payroll_selector.get_period(tenant, calculated.id).status == (
            PayrollPeriodStatus.CALCULATED
        )

    def test_discarding_slips_allows_recalculation(
        self, calculated, payroll_service, payroll_selector, payslip_service,
        tenant, test_actor_id,
    ):
        for result in payroll_selector.results_for_period(tenant, calculated.id):
            payslip_service.generate(tenant, result.id, test_actor_id)
        assert payslip_service.discard_slips(tenant, calculated.id, test_actor_id) == 2
        again = payroll_service.calculate(tenant, calculated.id, test_actor_id)
        assert again.status == PayrollPeriodStatus.CALCULATED
