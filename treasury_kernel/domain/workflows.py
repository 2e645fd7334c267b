"""
treasury_kernel.domain.workflows
================================

Responsibility:
    Declarative state-machine definitions for the treasury's stateful
    processes: a transaction's reversal lifecycle, the daily opening
    (count -> float -> opened) and the daily closing.  Services look up
    the transition they are about to perform; a request that has no
    matching transition is a programming error.

Architecture:
    Kernel > Domain.  Pure data declarations -- no I/O, no imports from
    services or models.

Invariants enforced:
    - Workflow transitions are immutable (frozen dataclasses).
    - ``writes_ledger=True`` marks the only transitions that persist rows;
      the opening's ``count`` transition never does.

Failure modes:
    - ``Workflow.transition_for`` raises ValueError for an undeclared
      (state, action) pair.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Guard:
    """
    A condition that must be true for a transition to be allowed.

    Contract:
        Immutable predicate declaration.  The owning service evaluates the
        guard; this dataclass only names and documents it.
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
    writes_ledger: bool = False  # if True, the transition appends transactions


@dataclass(frozen=True)
class Workflow:
    """
    A state machine definition.

    Contract:
        Frozen declaration of states and transitions.  ``initial_state``
        must be an element of ``states``.  All ``from_state`` / ``to_state``
        values in ``transitions`` must be elements of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def transition_for(self, from_state: str, action: str) -> Transition:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        raise ValueError(
            f"Workflow '{self.name}' has no '{action}' transition from '{from_state}'"
        )

    @property
    def terminal_states(self) -> tuple[str, ...]:
        sources = {t.from_state for t in self.transitions}
        return tuple(s for s in self.states if s not in sources)


# -----------------------------------------------------------------------------
# Transaction reversal lifecycle
# -----------------------------------------------------------------------------


class ReversalState(str, Enum):
    ACTIVE = "active"
    REVERSED = "reversed"
    CANNOT_REVERSE = "cannot_reverse"


NOT_ALREADY_REVERSED = Guard(
    name="not_already_reversed",
    description="No reversal row references this transaction",
)

TRANSACTION_REVERSAL_WORKFLOW = Workflow(
    name="transaction_reversal",
    description="A transaction may be reversed once; reversal rows are terminal",
    initial_state=ReversalState.ACTIVE.value,
    states=tuple(s.value for s in ReversalState),
    transitions=(
        Transition(
            ReversalState.ACTIVE.value,
            ReversalState.REVERSED.value,
            action="reverse",
            guard=NOT_ALREADY_REVERSED,
            writes_ledger=True,
        ),
    ),
)


# -----------------------------------------------------------------------------
# Daily opening
# -----------------------------------------------------------------------------


class OpeningState(str, Enum):
    AWAITING_COUNT = "awaiting_count"
    AWAITING_FLOAT = "awaiting_float"
    OPENED = "opened"


REGISTRY_EMPTY = Guard(
    name="registry_empty",
    description="Registry balance is 0 (the previous day was closed)",
)

COUNT_COVERS_FLOAT = Guard(
    name="count_covers_float",
    description="Counted safe balance >= requested float amount",
)

DAILY_OPENING_WORKFLOW = Workflow(
    name="daily_opening",
    description="Reconcile the counted safe, then move the float to the registry",
    initial_state=OpeningState.AWAITING_COUNT.value,
    states=tuple(s.value for s in OpeningState),
    transitions=(
        Transition(
            OpeningState.AWAITING_COUNT.value,
            OpeningState.AWAITING_FLOAT.value,
            action="count",
            guard=REGISTRY_EMPTY,
        ),
        Transition(
            OpeningState.AWAITING_FLOAT.value,
            OpeningState.OPENED.value,
            action="confirm_float",
            guard=COUNT_COVERS_FLOAT,
            writes_ledger=True,
        ),
    ),
)


# -----------------------------------------------------------------------------
# Daily closing
# -----------------------------------------------------------------------------


class ClosingState(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"


REGISTRY_HOLDS_CASH = Guard(
    name="registry_holds_cash",
    description="Registry balance > 0 (the day was opened)",
)

DAILY_CLOSING_WORKFLOW = Workflow(
    name="daily_closing",
    description="Count the registry and sweep it back into the safe",
    initial_state=ClosingState.OPENED.value,
    states=tuple(s.value for s in ClosingState),
    transitions=(
        Transition(
            ClosingState.OPENED.value,
            ClosingState.CLOSED.value,
            action="close",
            guard=REGISTRY_HOLDS_CASH,
            writes_ledger=True,
        ),
    ),
)
