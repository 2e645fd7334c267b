"""
Values -- Immutable, self-validating ledger value objects.

Responsibility:
    Provides the Balances value type (one integer balance per cash
    location) and the amount/text validators every writer calls before
    touching the database.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are ``int`` minor currency units, strictly positive.
      ``bool`` and ``float`` are rejected.
    - ``Balances.apply()`` never produces a negative balance; it raises
      InsufficientFundsError naming the first short location and the
      shortfall.

Failure modes:
    - InvalidAmountError for non-integer, non-positive or oversized amounts.
    - InvalidChoiceError for an unknown enum value (parse_choice).
    - BalanceLimitExceededError when a balance would exceed MAX_AMOUNT.
    - ReasonTooShortError / NotesTooShortError for short free text.
    - InsufficientFundsError when a flow would overdraw a location.

Audit relevance:
    Balances are computed in memory from the locked snapshot, checked, and
    only then written.  A rejected operation never reaches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from treasury_kernel.domain.effects import CashLocation, Flow
from treasury_kernel.exceptions import (
    BalanceLimitExceededError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidChoiceError,
    NotesTooShortError,
    ReasonTooShortError,
)

# Fixed reporting order for locations
LOCATION_ORDER: tuple[CashLocation, ...] = (
    CashLocation.REGISTRY,
    CashLocation.SAFE,
    CashLocation.BANK,
    CashLocation.MOBILE_MONEY,
)

# Largest value a BIGINT amount or balance column can hold
MAX_AMOUNT = 2**63 - 1

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True, slots=True)
class Balances:
    """
    Balance of every cash location at one instant.

    Contract:
        Immutable.  Arithmetic returns new instances.  Construction does not
        enforce non-negativity (so that a candidate result can be inspected);
        ``require_non_negative()`` does.
    """

    registry: int = 0
    safe: int = 0
    bank: int = 0
    mobile_money: int = 0

    @classmethod
    def zero(cls) -> Balances:
        return cls()

    def get(self, location: CashLocation) -> int:
        return getattr(self, CashLocation(location).value)

    def with_location(self, location: CashLocation, value: int) -> Balances:
        values = self.as_dict()
        values[CashLocation(location).value] = value
        return Balances(**values)

    def apply_deltas(self, deltas: dict[CashLocation, int]) -> Balances:
        """Apply signed deltas without checking the result."""
        values = self.as_dict()
        for location, delta in deltas.items():
            values[CashLocation(location).value] += delta
        return Balances(**values)

    def require_non_negative(self, required_by: dict[CashLocation, int] | None = None) -> Balances:
        """
        Raise InsufficientFundsError if any balance is negative, and
        BalanceLimitExceededError if any balance exceeds MAX_AMOUNT.

        ``required_by`` maps a location to the amount the operation wanted to
        take from it, so the error can report ``available`` and ``required``.
        """
        for location in LOCATION_ORDER:
            value = self.get(location)
            if value < 0:
                required = (required_by or {}).get(location, -value)
                raise InsufficientFundsError(
                    location=location.value,
                    available=required + value,
                    required=required,
                )
            if value > MAX_AMOUNT:
                raise BalanceLimitExceededError(location.value, value, MAX_AMOUNT)
        return self

    def apply(self, flow: Flow, amount: int) -> Balances:
        """
        Apply ``flow`` for ``amount`` and check non-negativity.

        Postconditions:
            - Only the flow's locations change; the others are carried
              forward unchanged.
            - Every balance of the result is between 0 and MAX_AMOUNT.
        """
        result = self.apply_deltas(flow.deltas(amount))
        required_by = {flow.source: amount} if flow.source is not None else None
        return result.require_non_negative(required_by)

    def as_dict(self) -> dict[str, int]:
        return {
            "registry": self.registry,
            "safe": self.safe,
            "bank": self.bank,
            "mobile_money": self.mobile_money,
        }

    @property
    def total_liquid_assets(self) -> int:
        return self.registry + self.safe + self.bank + self.mobile_money


def require_positive_amount(amount: object, field: str = "amount") -> int:
    """Validate a positive integer amount in minor units and return it."""
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_AMOUNT:
        raise InvalidAmountError(amount, field=field, maximum=MAX_AMOUNT)
    return amount


def require_non_negative_amount(amount: object, field: str) -> int:
    """Validate a physical count (zero allowed) and return it."""
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 <= amount <= MAX_AMOUNT:
        raise InvalidAmountError(amount, field=field, allow_zero=True, maximum=MAX_AMOUNT)
    return amount


def require_reason(reason: str | None, min_length: int, field: str = "reason") -> str:
    """Validate a mandatory justification and return it stripped."""
    text = (reason or "").strip()
    if len(text) < min_length:
        raise ReasonTooShortError(min_length=min_length, actual_length=len(text), field=field)
    return text


def require_notes(notes: str | None, min_length: int) -> str:
    """Validate mandatory transfer notes and return them stripped."""
    text = (notes or "").strip()
    if len(text) < max(min_length, 1):
        raise NotesTooShortError(min_length=max(min_length, 1), actual_length=len(text))
    return text


def parse_choice(enum_cls: type[E], value: E | str, field: str) -> E:
    """Coerce ``value`` to a member of ``enum_cls`` or raise InvalidChoiceError."""
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = tuple(member.value for member in enum_cls)
        raise InvalidChoiceError(field, value, allowed) from exc
