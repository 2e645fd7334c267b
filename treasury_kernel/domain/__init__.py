"""
Pure domain layer.

This module contains the transaction type table, value objects, request
types and workflow declarations with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from treasury_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from treasury_kernel.domain.effects import (
    CashLocation,
    CashMovement,
    Direction,
    Flow,
    InterLocationTransfer,
    REVERSAL_TYPES,
    TRANSACTION_EFFECTS,
    TransactionEffect,
    TransactionType,
    effect_of,
    resolve_flow,
    reversal_type_for,
)
from treasury_kernel.domain.requests import (
    BankTransferKind,
    CorrectionMethod,
    PlainReversal,
    ReversalRequest,
    ReversalWithCorrection,
    SafeRegistryDirection,
    TransactionDraft,
    TransactionMetadata,
)
from treasury_kernel.domain.values import Balances

__all__ = [
    "Balances",
    "BankTransferKind",
    "CashLocation",
    "CashMovement",
    "Clock",
    "CorrectionMethod",
    "DeterministicClock",
    "Direction",
    "Flow",
    "InterLocationTransfer",
    "PlainReversal",
    "REVERSAL_TYPES",
    "ReversalRequest",
    "ReversalWithCorrection",
    "SafeRegistryDirection",
    "SystemClock",
    "TRANSACTION_EFFECTS",
    "TransactionDraft",
    "TransactionEffect",
    "TransactionMetadata",
    "TransactionType",
    "effect_of",
    "resolve_flow",
    "reversal_type_for",
]
