"""Payroll Workflows.

State machine for the monthly payroll period.
"""

from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_PRIOR_RESULTS = Guard(
    name="no_prior_results",
    description="The period has never been calculated",
)

PRIOR_RESULTS_EXIST = Guard(
    name="prior_results_exist",
    description="The period holds results from an earlier calculation",
)

logger.info(
    "payroll_workflow_guards_defined",
    extra={"guards": [NO_PRIOR_RESULTS.name, PRIOR_RESULTS_EXIST.name]},
)


# -----------------------------------------------------------------------------
# Payroll Period Workflow
# -----------------------------------------------------------------------------

PAYROLL_PERIOD_WORKFLOW = Workflow(
    name="payroll_period",
    description="Monthly payroll period lifecycle",
    initial_state="draft",
    states=("draft", "calculating", "calculated", "approved", "paid"),
    transitions=(
        Transition("draft", "calculating", action="calculate"),
        Transition("calculated", "calculating", action="calculate"),
        Transition("calculating", "calculated", action="complete_calculation"),
        Transition("calculating", "draft", action="abort_calculation", guard=NO_PRIOR_RESULTS),
        Transition(
            "calculating", "calculated", action="abort_calculation", guard=PRIOR_RESULTS_EXIST,
        ),
        Transition("calculated", "approved", action="approve"),
        Transition("approved", "paid", action="pay"),
        Transition("paid", "paid", action="pay"),
    ),
    terminal_states=("paid",),
)

logger.info(
    "payroll_workflow_defined",
    extra={
        "workflow": PAYROLL_PERIOD_WORKFLOW.name,
        "states": list(PAYROLL_PERIOD_WORKFLOW.states),
    },
)
