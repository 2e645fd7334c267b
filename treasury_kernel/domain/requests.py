"""
Requests -- immutable inputs for ledger writers.

Responsibility:
    Declares the request shapes accepted by the recorder, the reversal
    engine and the transfer engine.  Optional behaviour is expressed as
    distinct types (``PlainReversal`` vs ``ReversalWithCorrection``)
    rather than nullable fields, so every branch is explicit.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.values import Balances


class CorrectionMethod(str, Enum):
    """How a corrected amount is re-entered after a reversal."""

    CASH = "cash"
    MOBILE_MONEY = "mobile_money"

    @property
    def location(self) -> CashLocation:
        if self is CorrectionMethod.CASH:
            return CashLocation.SAFE
        return CashLocation.MOBILE_MONEY


class SafeRegistryDirection(str, Enum):
    """Direction of a manual safe <-> registry transfer."""

    SAFE_TO_REGISTRY = "safe_to_registry"
    REGISTRY_TO_SAFE = "registry_to_safe"

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType(self.value)


class BankTransferKind(str, Enum):
    """Safe <-> bank movement."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"

    @property
    def transaction_type(self) -> TransactionType:
        if self is BankTransferKind.DEPOSIT:
            return TransactionType.BANK_DEPOSIT
        return TransactionType.BANK_WITHDRAWAL


@dataclass(frozen=True)
class PlainReversal:
    """Undo a transaction."""

    reason: str


@dataclass(frozen=True)
class ReversalWithCorrection:
    """
    Undo a transaction and immediately re-enter it.

    ``amount`` defaults to the original amount (only the channel was wrong);
    ``method`` defaults to cash.
    """

    reason: str
    amount: int | None = None
    method: CorrectionMethod | str = CorrectionMethod.CASH


ReversalRequest = PlainReversal | ReversalWithCorrection


@dataclass(frozen=True)
class TransactionMetadata:
    """Descriptive fields carried on a transaction row. None of them affect balances."""

    description: str | None = None
    notes: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    student_id: str | None = None
    payer_name: str | None = None
    beneficiary_name: str | None = None
    category: str | None = None

    def as_columns(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "notes": self.notes,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "student_id": self.student_id,
            "payer_name": self.payer_name,
            "beneficiary_name": self.beneficiary_name,
            "category": self.category,
        }


@dataclass(frozen=True)
class TransactionDraft:
    """
    A fully computed row, ready for LedgerStore.append_transaction().

    Contract:
        Built by a writer service AFTER the flow has been applied to the
        locked balances and checked.  ``balances_after`` is authoritative
        for all four locations.
    """

    transaction_type: TransactionType
    direction: Direction
    amount: int
    source_location: CashLocation | None
    destination_location: CashLocation | None
    balances_after: Balances
    metadata: TransactionMetadata
    is_reversal: bool = False
    reversal_reason: str | None = None
    original_transaction_id: UUID | None = None
    receipt_number: str | None = None
