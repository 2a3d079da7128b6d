"""
Pure domain layer.

Value objects and pure functions with NO dependencies on the ORM, the
database or the system clock.
"""

from settlement_kernel.domain.cancellation import CancellationToken
from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.money import round2, round4
from settlement_kernel.domain.months import month_window
from settlement_kernel.domain.tenancy import TenantScope, ensure_tenant, require_scope
from settlement_kernel.domain.workflow import Guard, Transition, Workflow, resolve_transition

__all__ = [
    "CancellationToken",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "round2",
    "round4",
    "month_window",
    "TenantScope",
    "ensure_tenant",
    "require_scope",
    "Guard",
    "Transition",
    "Workflow",
    "resolve_transition",
]
