"""
Workflow types and the outgoing payment state machine.

Responsibility
--------------
Pure value objects for workflow state machines, plus the one workflow the
ledger runs: the hand-over (outgoing payment) request lifecycle::

    PENDING --approve--> APPROVED
    PENDING --reject---> REJECTED   (guard: rejection note)
    PENDING --delete---> DELETED    (row removed)

APPROVED and REJECTED are terminal.  DELETED is never stored.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* A transition fires only from its ``from_state``; anything else raises
  InvalidStateError.
"""

from __future__ import annotations

from dataclasses import dataclass

from dorm_ledger.domain.dtos import OutgoingStatus
from dorm_ledger.domain.permissions import Permission
from dorm_ledger.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``permission`` is the capability the acting user must hold.
    ``moves_cash=True`` marks a transition that changes the available balance.
    """
    from_state: str
    to_state: str
    action: str
    permission: Permission
    guard: Guard | None = None
    moves_cash: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def transition_for(self, current_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == current_state and transition.action == action:
                return transition
        return None

    def actions_from(self, current_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == current_state)


DELETED_STATE = "DELETED"

REJECTION_NOTE_GUARD = Guard(
    name="rejection_note_present",
    description="A non-empty note explaining the rejection",
)

OUTGOING_PAYMENT_WORKFLOW = Workflow(
    name="outgoing_payment",
    description="Hand-over of collected cash to the central office",
    initial_state=OutgoingStatus.PENDING.value,
    states=(
        OutgoingStatus.PENDING.value,
        OutgoingStatus.APPROVED.value,
        OutgoingStatus.REJECTED.value,
        DELETED_STATE,
    ),
    transitions=(
        Transition(
            from_state=OutgoingStatus.PENDING.value,
            to_state=OutgoingStatus.APPROVED.value,
            action="approve",
            permission=Permission.OUTGOING_APPROVE,
            moves_cash=True,
        ),
        Transition(
            from_state=OutgoingStatus.PENDING.value,
            to_state=OutgoingStatus.REJECTED.value,
            action="reject",
            permission=Permission.OUTGOING_APPROVE,
            guard=REJECTION_NOTE_GUARD,
        ),
        Transition(
            from_state=OutgoingStatus.PENDING.value,
            to_state=DELETED_STATE,
            action="delete",
            permission=Permission.OUTGOING_DELETE,
        ),
    ),
    terminal_states=(
        OutgoingStatus.APPROVED.value,
        OutgoingStatus.REJECTED.value,
        DELETED_STATE,
    ),
)


def resolve_transition(
    workflow: Workflow,
    entity_type: str,
    entity_id: str,
    current_state: str,
    action: str,
) -> Transition:
    """
    Find the transition for ``action`` from ``current_state``.

    Raises:
        InvalidStateError: If the workflow has no such transition.
    """
    transition = workflow.transition_for(current_state, action)
    if transition is None:
        raise InvalidStateError(
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=current_state,
            action=action,
        )
    return transition
