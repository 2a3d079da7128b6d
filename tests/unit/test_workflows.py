"""
Tests for the payroll period and commission state machines.
"""

import pytest

from settlement_kernel.domain.workflow import Transition, Workflow, resolve_transition
from settlement_kernel.exceptions import InvalidStateTransitionError
from settlement_modules.commissions.workflows import COMMISSION_WORKFLOW
from settlement_modules.payroll.workflows import (
    NO_PRIOR_RESULTS,
    PAYROLL_PERIOD_WORKFLOW,
    PRIOR_RESULTS_EXIST,
)


class TestPayrollPeriodWorkflow:

    @pytest.mark.parametrize(
        "state,action,expected",
        [
            ("draft", "calculate", "calculating"),
            ("calculated", "calculate", "calculating"),
            ("calculating", "complete_calculation", "calculated"),
            ("calculated", "approve", "approved"),
            ("approved", "pay", "paid"),
            ("paid", "pay", "paid"),
        ],
    )
    def test_declared_transitions(self, state, action, expected):
        assert resolve_transition(PAYROLL_PERIOD_WORKFLOW, state, action) == expected

    @pytest.mark.parametrize(
        "state,action",
        [
            ("draft", "approve"),
            ("draft", "pay"),
            ("calculating", "calculate"),
            ("calculated", "pay"),
            ("approved", "calculate"),
            ("paid", "calculate"),
            ("paid", "approve"),
        ],
    )
    def test_forbidden_transitions(self, state, action):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            resolve_transition(PAYROLL_PERIOD_WORKFLOW, state, action, entity_id="p-1")
        assert exc_info.value.current_state == state
        assert exc_info.value.action == action

    def test_abort_returns_to_draft_without_prior_results(self):
        assert resolve_transition(
            PAYROLL_PERIOD_WORKFLOW, "calculating", "abort_calculation", [NO_PRIOR_RESULTS.name],
        ) == "draft"

    def test_abort_returns_to_calculated_with_prior_results(self):
        assert resolve_transition(
            PAYROLL_PERIOD_WORKFLOW, "calculating", "abort_calculation", [PRIOR_RESULTS_EXIST.name],
        ) == "calculated"

    def test_abort_without_guard_is_rejected(self):
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition(PAYROLL_PERIOD_WORKFLOW, "calculating", "abort_calculation")

    def test_approve_not_offered_from_draft(self):
        assert "approve" not in PAYROLL_PERIOD_WORKFLOW.actions_from("draft")


class TestCommissionWorkflow:

    def test_happy_path(self):
        state = COMMISSION_WORKFLOW.initial_state
        assert state == "pending"
        state = resolve_transition(COMMISSION_WORKFLOW, state, "approve")
        state = resolve_transition(COMMISSION_WORKFLOW, state, "pay")
        assert state == "paid"

    @pytest.mark.parametrize("state", ["pending", "approved"])
    def test_cancel_open(self, state):
        assert resolve_transition(COMMISSION_WORKFLOW, state, "cancel") == "cancelled"

    @pytest.mark.parametrize(
        "state,action",
        [("paid", "cancel"), ("cancelled", "approve"), ("pending", "pay"), ("paid", "approve")],
    )
    def test_forbidden(self, state, action):
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition(COMMISSION_WORKFLOW, state, action)


class TestWorkflowDefinition:

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )
