"""
Effects -- the central transaction type table.

Responsibility:
    Declares the closed set of cash locations, directions and transaction
    types, and the ONE table that maps each type to its balance effect and
    to the type used when it is reversed.  Adding a new kind of movement
    means adding one row to ``TRANSACTION_EFFECTS`` (and, if it has a
    dedicated reversal type, one row to ``REVERSAL_TYPES``); no service
    branches on type names.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every TransactionType has exactly one effect.
    - A resolved Flow never moves money from a location to itself.
    - The mirror of a flow is its exact inverse: applying a flow and then
      its ``reversed()`` flow for the same amount leaves every balance
      unchanged.

Failure modes:
    - ValueError when a Flow is built without any location or with the
      same source and destination.

Audit relevance:
    Every persisted transaction stores its resolved flow (source and
    destination location), so history can be replayed without consulting
    this table and a later edit of the table cannot rewrite the past.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CashLocation(str, Enum):
    """Where cash physically sits. Each location has one balance, never negative."""

    REGISTRY = "registry"
    SAFE = "safe"
    BANK = "bank"
    MOBILE_MONEY = "mobile_money"


class Direction(str, Enum):
    """Direction of a movement, seen from the treasury (transfers: from the safe)."""

    IN = "in"
    OUT = "out"

    def opposite(self) -> Direction:
        return Direction.OUT if self is Direction.IN else Direction.IN


class TransactionType(str, Enum):
    """Closed set of ledger transaction types."""

    STUDENT_PAYMENT = "student_payment"
    EXPENSE_PAYMENT = "expense_payment"
    BANK_DEPOSIT = "bank_deposit"
    BANK_WITHDRAWAL = "bank_withdrawal"
    MOBILE_MONEY_INCOME = "mobile_money_income"
    MOBILE_MONEY_PAYMENT = "mobile_money_payment"
    MOBILE_MONEY_FEE = "mobile_money_fee"
    SAFE_TO_REGISTRY = "safe_to_registry"
    REGISTRY_TO_SAFE = "registry_to_safe"
    REGISTRY_ADJUSTMENT = "registry_adjustment"
    REVERSAL_STUDENT_PAYMENT = "reversal_student_payment"
    REVERSAL_EXPENSE_PAYMENT = "reversal_expense_payment"
    REVERSAL_BANK_DEPOSIT = "reversal_bank_deposit"
    REVERSAL_MOBILE_MONEY = "reversal_mobile_money"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class Flow:
    """
    A resolved movement: money leaves ``source`` and enters ``destination``.

    ``source`` is None for money entering the treasury, ``destination`` is
    None for money leaving it.  Transfers have both.
    """

    source: CashLocation | None
    destination: CashLocation | None

    def __post_init__(self) -> None:
        if self.source is None and self.destination is None:
            raise ValueError("A flow must touch at least one location")
        if self.source is not None and self.source == self.destination:
            raise ValueError(f"A flow cannot move money from {self.source.value} to itself")

    def reversed(self) -> Flow:
        """The mirror flow: same locations, money moving the other way."""
        return Flow(source=self.destination, destination=self.source)

    def deltas(self, amount: int) -> dict[CashLocation, int]:
        """Signed balance change per touched location for ``amount``."""
        changes: dict[CashLocation, int] = {}
        if self.source is not None:
            changes[self.source] = -amount
        if self.destination is not None:
            changes[self.destination] = amount
        return changes

    @property
    def locations(self) -> tuple[CashLocation, ...]:
        return tuple(loc for loc in (self.source, self.destination) if loc is not None)

    @property
    def is_transfer(self) -> bool:
        return self.source is not None and self.destination is not None


@dataclass(frozen=True)
class CashMovement:
    """Money entering (``in``) or leaving (``out``) a single location."""

    location: CashLocation

    def flow(self, direction: Direction) -> Flow:
        if direction is Direction.IN:
            return Flow(source=None, destination=self.location)
        return Flow(source=self.location, destination=None)


@dataclass(frozen=True)
class InterLocationTransfer:
    """
    Money moving between two locations.

    ``natural_direction`` is the direction recorded when money flows from
    ``source`` to ``destination``; recording the opposite direction
    reverses the flow.
    """

    source: CashLocation
    destination: CashLocation
    natural_direction: Direction

    def flow(self, direction: Direction) -> Flow:
        forward = Flow(source=self.source, destination=self.destination)
        return forward if direction is self.natural_direction else forward.reversed()


TransactionEffect = CashMovement | InterLocationTransfer


# =============================================================================
# The table
# =============================================================================

TRANSACTION_EFFECTS: dict[TransactionType, TransactionEffect] = {
    TransactionType.STUDENT_PAYMENT: CashMovement(CashLocation.SAFE),
    TransactionType.EXPENSE_PAYMENT: CashMovement(CashLocation.SAFE),
    TransactionType.ADJUSTMENT: CashMovement(CashLocation.SAFE),
    TransactionType.REVERSAL_STUDENT_PAYMENT: CashMovement(CashLocation.SAFE),
    TransactionType.REVERSAL_EXPENSE_PAYMENT: CashMovement(CashLocation.SAFE),
    TransactionType.MOBILE_MONEY_INCOME: CashMovement(CashLocation.MOBILE_MONEY),
    TransactionType.MOBILE_MONEY_PAYMENT: CashMovement(CashLocation.MOBILE_MONEY),
    TransactionType.MOBILE_MONEY_FEE: CashMovement(CashLocation.MOBILE_MONEY),
    TransactionType.REVERSAL_MOBILE_MONEY: CashMovement(CashLocation.MOBILE_MONEY),
    TransactionType.REGISTRY_ADJUSTMENT: CashMovement(CashLocation.REGISTRY),
    TransactionType.SAFE_TO_REGISTRY: InterLocationTransfer(
        CashLocation.SAFE, CashLocation.REGISTRY, Direction.OUT
    ),
    TransactionType.REGISTRY_TO_SAFE: InterLocationTransfer(
        CashLocation.REGISTRY, CashLocation.SAFE, Direction.IN
    ),
    TransactionType.BANK_DEPOSIT: InterLocationTransfer(
        CashLocation.SAFE, CashLocation.BANK, Direction.OUT
    ),
    TransactionType.BANK_WITHDRAWAL: InterLocationTransfer(
        CashLocation.BANK, CashLocation.SAFE, Direction.IN
    ),
    TransactionType.REVERSAL_BANK_DEPOSIT: InterLocationTransfer(
        CashLocation.SAFE, CashLocation.BANK, Direction.OUT
    ),
}

# Types without an entry reverse as ADJUSTMENT.
REVERSAL_TYPES: dict[TransactionType, TransactionType] = {
    TransactionType.STUDENT_PAYMENT: TransactionType.REVERSAL_STUDENT_PAYMENT,
    TransactionType.EXPENSE_PAYMENT: TransactionType.REVERSAL_EXPENSE_PAYMENT,
    TransactionType.BANK_DEPOSIT: TransactionType.REVERSAL_BANK_DEPOSIT,
    TransactionType.BANK_WITHDRAWAL: TransactionType.REVERSAL_BANK_DEPOSIT,
    TransactionType.MOBILE_MONEY_INCOME: TransactionType.REVERSAL_MOBILE_MONEY,
    TransactionType.MOBILE_MONEY_PAYMENT: TransactionType.REVERSAL_MOBILE_MONEY,
    TransactionType.MOBILE_MONEY_FEE: TransactionType.REVERSAL_MOBILE_MONEY,
}

# Directions accepted when a type enters through the recorder.
RECORDABLE_DIRECTIONS: dict[TransactionType, frozenset[Direction]] = {
    TransactionType.STUDENT_PAYMENT: frozenset({Direction.IN}),
    TransactionType.EXPENSE_PAYMENT: frozenset({Direction.OUT}),
    TransactionType.MOBILE_MONEY_INCOME: frozenset({Direction.IN}),
    TransactionType.MOBILE_MONEY_PAYMENT: frozenset({Direction.OUT}),
    TransactionType.MOBILE_MONEY_FEE: frozenset({Direction.OUT}),
    TransactionType.ADJUSTMENT: frozenset({Direction.IN, Direction.OUT}),
    TransactionType.REGISTRY_ADJUSTMENT: frozenset({Direction.IN, Direction.OUT}),
}

# Single-location type used per location when the ledger itself writes an
# adjustment (opening discrepancy, verification, balance administration).
ADJUSTMENT_TYPES: dict[CashLocation, TransactionType] = {
    CashLocation.SAFE: TransactionType.ADJUSTMENT,
    CashLocation.REGISTRY: TransactionType.REGISTRY_ADJUSTMENT,
    CashLocation.BANK: TransactionType.ADJUSTMENT,
    CashLocation.MOBILE_MONEY: TransactionType.ADJUSTMENT,
}

# Ordinary type per (location, direction) used to re-enter a corrected amount.
CORRECTION_TYPES: dict[tuple[CashLocation, Direction], TransactionType] = {
    (CashLocation.SAFE, Direction.IN): TransactionType.STUDENT_PAYMENT,
    (CashLocation.SAFE, Direction.OUT): TransactionType.EXPENSE_PAYMENT,
    (CashLocation.MOBILE_MONEY, Direction.IN): TransactionType.MOBILE_MONEY_INCOME,
    (CashLocation.MOBILE_MONEY, Direction.OUT): TransactionType.MOBILE_MONEY_PAYMENT,
}


def effect_of(transaction_type: TransactionType) -> TransactionEffect:
    """Return the declared effect for a transaction type."""
    return TRANSACTION_EFFECTS[TransactionType(transaction_type)]


def reversal_type_for(transaction_type: TransactionType) -> TransactionType:
    """Return the type a reversal of ``transaction_type`` is recorded as."""
    return REVERSAL_TYPES.get(TransactionType(transaction_type), TransactionType.ADJUSTMENT)


def resolve_flow(
    transaction_type: TransactionType,
    direction: Direction,
    location: CashLocation | None = None,
) -> Flow:
    """
    Resolve the concrete flow for a type and direction.

    ``location`` overrides the declared location of single-location
    ADJUSTMENT rows (bank and mobile money adjustments); it is ignored for
    every other type.
    """
    effect = effect_of(transaction_type)
    if (
        location is not None
        and isinstance(effect, CashMovement)
        and TransactionType(transaction_type) is TransactionType.ADJUSTMENT
    ):
        effect = CashMovement(location)
    return effect.flow(Direction(direction))


def receipt_kind(direction: Direction) -> str:
    """Receipt number segment: REC for money in, DEP for money out."""
    return "REC" if Direction(direction) is Direction.IN else "DEP"
