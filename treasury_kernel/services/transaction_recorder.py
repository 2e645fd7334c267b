"""
TransactionRecorder -- the single entry point for new money movements.

Responsibility:
    Validates a single-location movement (student payment, expense,
    mobile money income/payment/fee, manual adjustment), applies it to the
    locked balances, allocates a receipt number and appends the row.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - amount is a strictly positive integer.
    - The type is recordable in the given direction (RECORDABLE_DIRECTIONS).
      Transfers go through TransferService, reversals through
      ReversalService.
    - The touched location never goes negative; the other three balances
      are carried forward unchanged.

Failure modes:
    - InvalidAmountError, InvalidTransactionTypeError (before any read).
    - InsufficientFundsError naming the location and shortfall (before
      any write).
    - OptimisticLockError from LedgerStore (retried by the orchestrator).
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.effects import (
    RECORDABLE_DIRECTIONS,
    CashLocation,
    Direction,
    TransactionType,
    resolve_flow,
)
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import Balances, require_positive_amount
from treasury_kernel.exceptions import InsufficientFundsError, InvalidTransactionTypeError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.receipt_service import DEFAULT_RECEIPT_PREFIX, ReceiptService

logger = get_logger("services.transaction_recorder")


@dataclass(frozen=True)
class RecordResult:
    """The created row and the balances right after it."""

    transaction: TreasuryTransaction
    balances: Balances


def parse_transaction_type(value: TransactionType | str) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise InvalidTransactionTypeError(str(value), "unknown transaction type") from exc


def parse_direction(value: Direction | str, transaction_type: TransactionType) -> Direction:
    try:
        return Direction(value)
    except ValueError as exc:
        raise InvalidTransactionTypeError(
            transaction_type.value, f"unknown direction '{value}'"
        ) from exc


class TransactionRecorder(BaseService[TreasuryTransaction]):
    """
    Records single-location movements.

    Usage:
        recorder = TransactionRecorder(session, clock)
        result = recorder.record(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 50000, actor_id,
            TransactionMetadata(student_id="S-001", payer_name="Parent"),
        )
        session.commit()  # caller owns the boundary
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        receipt_prefix: str = DEFAULT_RECEIPT_PREFIX,
    ):
        super().__init__(session, clock)
        self._store = LedgerStore(session, self.clock)
        self._receipts = ReceiptService(session, receipt_prefix)

    def record(
        self,
        transaction_type: TransactionType | str,
        direction: Direction | str,
        amount: int,
        actor_id: UUID,
        metadata: TransactionMetadata | None = None,
        location: CashLocation | None = None,
    ) -> RecordResult:
        """
        Record one movement.

        Args:
            transaction_type: A recordable type.
            direction: ``in`` or ``out``; must be allowed for the type.
            amount: Minor units, > 0.
            actor_id: Who recorded it.
            metadata: Descriptive fields (reference, payer, ...).
            location: Only for ``adjustment``: the location to adjust
                (defaults to the safe).

        Returns:
            RecordResult with the row and the new balances.
        """
        tx_type = parse_transaction_type(transaction_type)
        tx_direction = parse_direction(direction, tx_type)

        allowed = RECORDABLE_DIRECTIONS.get(tx_type)
        if allowed is None:
            raise InvalidTransactionTypeError(
                tx_type.value,
                "transfers and reversals are recorded through their own operations",
            )
        if tx_direction not in allowed:
            raise InvalidTransactionTypeError(
                tx_type.value,
                f"direction '{tx_direction.value}' is not allowed for this type",
            )

        amount = require_positive_amount(amount)
        metadata = metadata or TransactionMetadata()
        flow = resolve_flow(tx_type, tx_direction, location)

        snapshot = self._store.lock_balances()
        try:
            balances = snapshot.balances.apply(flow, amount)
        except InsufficientFundsError as exc:
            logger.warning(
                "insufficient_funds_rejected",
                extra={
                    "transaction_type": tx_type.value,
                    "location": exc.location,
                    "available": exc.available,
                    "required": exc.required,
                },
            )
            raise

        receipt_number = self._receipts.next_receipt_number(self.clock.today(), tx_direction)

        draft = TransactionDraft(
            transaction_type=tx_type,
            direction=tx_direction,
            amount=amount,
            source_location=flow.source,
            destination_location=flow.destination,
            balances_after=balances,
            metadata=metadata,
            receipt_number=receipt_number,
        )
        row = self._store.append_transaction(draft, snapshot, actor_id)

        logger.info(
            "transaction_recorded",
            extra={
                "transaction_id": str(row.id),
                "transaction_type": tx_type.value,
                "direction": tx_direction.value,
                "amount": amount,
                "receipt_number": receipt_number,
            },
        )
        return RecordResult(transaction=row, balances=balances)
