"""Enum-based workflow state machine pattern.

Defines workflow states as Python enums with an explicit transition table.
The state definitions are independent of persistence: a workflow instance
wraps the current state of a record, validates a move, and returns an
audit record of it. The caller writes the new state back.

Example domain: the rental lifecycle (see verticals.rentals.workflow).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Mapping, Sequence, TypeVar

StateT = TypeVar("StateT", bound=Enum)

TransitionTable = Mapping[StateT, Sequence[StateT]]


class TransitionNotAllowed(ValueError):
    """Raised when a move is not in the transition table."""

    def __init__(self, from_state: Enum, to_state: Enum, allowed: Sequence[Enum]):
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = list(allowed)
        allowed_names = [s.value for s in allowed]
        super().__init__(
            f"Cannot transition from {from_state.value} to {to_state.value}. "
            f"Allowed: {allowed_names}"
        )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class WorkflowTransition:
    """Record of a single state transition."""

    workflow_id: str
    from_state: str
    to_state: str
    timestamp: datetime
    actor: str = "system"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowInstance(Generic[StateT]):
    """A workflow instance bound to a transition table.

    Usage::

        wf = WorkflowInstance(
            workflow_id=str(rental.id),
            current_state=RentalStatus.BOOKED,
            transitions=RENTAL_TRANSITIONS,
        )
        wf.transition(RentalStatus.RENTED, actor="admin")
    """

    workflow_id: str
    current_state: StateT
    transitions: TransitionTable

    def allowed(self) -> list[StateT]:
        return list(self.transitions.get(self.current_state, []))

    def can_transition(self, to_state: StateT) -> bool:
        """Check if a transition is allowed from the current state."""
        return to_state in self.allowed()

    def transition(
        self,
        to_state: StateT,
        actor: str = "system",
        metadata: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> WorkflowTransition:
        """Execute a state transition.

        Raises TransitionNotAllowed if the transition is not in the table.
        """
        if not self.can_transition(to_state):
            raise TransitionNotAllowed(self.current_state, to_state, self.allowed())

        record = WorkflowTransition(
            workflow_id=self.workflow_id,
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=at or datetime.now(timezone.utc),
            actor=actor,
            metadata=metadata or {},
        )
        self.current_state = to_state
        return record
