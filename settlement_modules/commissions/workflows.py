"""Commission Workflows.

State machine for commission approval and settlement.
"""

from settlement_kernel.domain.workflow import Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.commissions.workflows")


COMMISSION_WORKFLOW = Workflow(
    name="commission",
    description="Commission approval and payout",
    initial_state="pending",
    states=("pending", "approved", "paid", "cancelled"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "paid", action="pay"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)

logger.info(
    "commission_workflow_defined",
    extra={
        "workflow": COMMISSION_WORKFLOW.name,
        "states": list(COMMISSION_WORKFLOW.states),
    },
)
