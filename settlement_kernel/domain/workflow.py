"""
Canonical workflow types (``settlement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines and the single function
that maps ``(current_state, action)`` to the next state.  Payroll periods
and commissions declare their transition tables with these types; no
service flips a status field without going through ``resolve_transition``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* At most one transition is eligible for a given state, action and set of
  satisfied guards.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from settlement_kernel.exceptions import InvalidStateTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the caller reports which
    guards hold when it asks for a transition.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` accept no action except explicitly declared
    self-transitions (idempotent repeats).
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial_state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action!r} references unknown state"
                )

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions declared from ``state`` (for error messages and UIs)."""
        return tuple(
            sorted({t.action for t in self.transitions if t.from_state == state})
        )


def resolve_transition(
    workflow: Workflow,
    current_state: str,
    action: str,
    satisfied_guards: Iterable[str] = (),
    *,
    entity_id: object = "",
) -> str:
    """Return the state reached by ``action`` from ``current_state``.

    Raises:
        InvalidStateTransitionError: no transition is declared for the pair,
            or none of the declared transitions has its guard satisfied.
    """
    satisfied = frozenset(satisfied_guards)
    candidates = [
        t for t in workflow.transitions
        if t.from_state == current_state and t.action == action
        and (t.guard is None or t.guard.name in satisfied)
    ]
    if len(candidates) != 1:
        raise InvalidStateTransitionError(
            entity_type=workflow.name,
            entity_id=str(entity_id),
            current_state=current_state,
            action=action,
        )
    return candidates[0].to_state
