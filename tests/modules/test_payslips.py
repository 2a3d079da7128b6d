"""
Tests for payslip generation and storage.
"""

import hashlib
from io import BytesIO
from uuid import uuid4

import openpyxl
import pytest

from settlement_kernel.exceptions import InvalidStateTransitionError, TenantViolationError
from settlement_modules.payroll.slips import XLSX_CONTENT_TYPE, slip_path


@pytest.fixture
def period(seeded_brackets, register_employee, payroll_service, tenant, test_actor_id):
    register_employee("Ana Souza", "3000.00", tax_id="123.456.789-00", department="Sales")
    return payroll_service.create_period(tenant, 2025, 1, test_actor_id)


@pytest.fixture
def result(period, payroll_service, payroll_selector, tenant, test_actor_id):
    payroll_service.calculate(tenant, period.id, test_actor_id)
    return payroll_selector.results_for_period(tenant, period.id)[0]


class TestGenerate:

    def test_metadata_matches_file(self, result, payslip_service, slip_storage, tenant, test_actor_id):
        slip = payslip_service.generate(tenant, result.id, test_actor_id)
        content = slip_storage.read(slip.file_path)
        assert slip.file_path == slip_path(tenant.tenant_id, result.employee_id, 2025, 1)
        assert slip.file_hash == hashlib.sha256(content).hexdigest()
        assert slip.file_size == len(content)
        assert slip.content_type == XLSX_CONTENT_TYPE
        assert slip.generated_by_id == test_actor_id

    def test_workbook_content(self, result, payslip_service, slip_storage, tenant, test_actor_id):
        slip = payslip_service.generate(tenant, result.id, test_actor_id)
        wb = openpyxl.load_workbook(BytesIO(slip_storage.read(slip.file_path)))
        ws = wb["Payslip"]
        assert ws["A1"].value == "PAYSLIP"
        assert ws["D1"].value == "2025-01"
        assert ws["B3"].value == "Ana Souza"
        assert ws["B4"].value == "123.456.789-00"
        values = [row for row in ws.iter_rows(values_only=True)]
        net_row = next(row for row in values if row[1] == "Net salary")
        assert float(net_row[4]) == pytest.approx(2611.44)

    def test_regenerate_overwrites(
        self, result, payslip_service, payroll_selector, tenant, test_actor_id,
    ):
        first = payslip_service.generate(tenant, result.id, test_actor_id)
        second = payslip_service.generate(tenant, result.id, test_actor_id, notes="reissued")
        assert second.id == first.id
        assert second.notes == "reissued"
        assert payroll_selector.slip_for_result(tenant, result.id) == second

    def test_approved_period_can_be_issued(
        self, result, payroll_service, payslip_service, tenant, test_actor_id,
    ):
        payroll_service.approve(tenant, result.period_id, test_actor_id)
        slip = payslip_service.generate(tenant, result.id, test_actor_id)
        assert slip.payroll_result_id == result.id

    def test_other_tenant_rejected(self, result, payslip_service, other_tenant, test_actor_id):
        with pytest.raises(TenantViolationError):
            payslip_service.generate(other_tenant, result.id, test_actor_id)


class TestTenantSeparation:
    """Employee ids repeat across tenants; their slips must not collide."""

    @pytest.fixture
    def twin_results(
        self, seeded_brackets, register_employee, payroll_service, payroll_selector,
        tenant, other_tenant, test_actor_id,
    ):
        shared_id = uuid4()
        register_employee("Ana Souza", "3000.00", employee_id=shared_id)
        register_employee("Bia Lima", "2200.00", scope=other_tenant, employee_id=shared_id)
        results = []
        for scope in (tenant, other_tenant):
            period = payroll_service.create_period(scope, 2025, 1, test_actor_id)
            payroll_service.calculate(scope, period.id, test_actor_id)
            results.append(payroll_selector.results_for_period(scope, period.id)[0])
        return results

    def test_slips_are_stored_apart(
        self, twin_results, payslip_service, slip_storage, tenant, other_tenant, test_actor_id,
    ):
        ours, theirs = twin_results
        our_slip = payslip_service.generate(tenant, ours.id, test_actor_id)
        their_slip = payslip_service.generate(other_tenant, theirs.id, test_actor_id)

        assert our_slip.file_path != their_slip.file_path
        content = slip_storage.read(our_slip.file_path)
        assert our_slip.file_hash == hashlib.sha256(content).hexdigest()
        ws = openpyxl.load_workbook(BytesIO(content))["Payslip"]
        assert ws["B3"].value == "Ana Souza"

    def test_discard_leaves_other_tenant_slip(
        self, twin_results, payslip_service, slip_storage, tenant, other_tenant, test_actor_id,
    ):
        ours, theirs = twin_results
        payslip_service.generate(tenant, ours.id, test_actor_id)
        their_slip = payslip_service.generate(other_tenant, theirs.id, test_actor_id)

        payslip_service.discard_slips(tenant, ours.period_id, test_actor_id)
        assert (slip_storage.root / their_slip.file_path).exists()


class TestDiscard:

    def test_discard_removes_files(
        self, result, payslip_service, payroll_selector, slip_storage, tenant, test_actor_id,
    ):
        slip = payslip_service.generate(tenant, result.id, test_actor_id)
        assert payslip_service.discard_slips(tenant, result.period_id, test_actor_id) == 1
        assert payroll_selector.slip_for_result(tenant, result.id) is None
        assert not (slip_storage.root / slip.file_path).exists()

    def test_discard_after_approval_rejected(
        self, result, payroll_service, payslip_service, tenant, test_actor_id,
    ):
        payslip_service.generate(tenant, result.id, test_actor_id)
        payroll_service.approve(tenant, result.period_id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            payslip_service.discard_slips(tenant, result.period_id, test_actor_id)
