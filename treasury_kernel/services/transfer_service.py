"""
TransferService -- manual movements between cash locations.

Responsibility:
    Safe <-> registry transfers (with mandatory notes) and safe <-> bank
    deposits/withdrawals (with the deposit slip details kept in a
    BankTransfer record).  Each is one transaction row that updates both
    touched balances and carries the other two forward.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - amount > 0; safe <-> registry notes have the minimum length.
    - The source location covers the amount (InsufficientFundsError names
      it), checked under the snapshot lock, before any write.

Failure modes:
    - InvalidAmountError, NotesTooShortError, InsufficientFundsError.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.effects import Direction, TransactionType, effect_of
from treasury_kernel.domain.requests import (
    BankTransferKind,
    SafeRegistryDirection,
    TransactionDraft,
    TransactionMetadata,
)
from treasury_kernel.domain.values import (
    Balances,
    parse_choice,
    require_notes,
    require_positive_amount,
)
from treasury_kernel.exceptions import InsufficientFundsError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.bank_transfer import BankTransfer
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.transfer")

DEFAULT_TRANSFER_NOTES_MIN_LENGTH = 3


@dataclass(frozen=True)
class TransferResult:
    transaction: TreasuryTransaction
    balances: Balances
    bank_transfer: BankTransfer | None = None


class TransferService(BaseService[TreasuryTransaction]):
    """Moves money between the safe and the registry or the bank."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notes_min_length: int = DEFAULT_TRANSFER_NOTES_MIN_LENGTH,
    ):
        super().__init__(session, clock)
        self._notes_min_length = notes_min_length
        self._store = LedgerStore(session, self.clock)

    def transfer_safe_registry(
        self,
        direction: SafeRegistryDirection | str,
        amount: int,
        notes: str | None,
        actor_id: UUID,
    ) -> TransferResult:
        """
        Move ``amount`` between the safe and the registry.

        Raises:
            InvalidChoiceError: unknown direction.
            NotesTooShortError: notes missing or shorter than the minimum.
            InsufficientFundsError: the source location cannot cover it.
        """
        transfer_direction = parse_choice(SafeRegistryDirection, direction, "direction")
        amount = require_positive_amount(amount)
        notes = require_notes(notes, self._notes_min_length)

        tx_type = transfer_direction.transaction_type
        description = (
            f"Transfert coffre vers caisse: {amount}"
            if transfer_direction is SafeRegistryDirection.SAFE_TO_REGISTRY
            else f"Transfert caisse vers coffre: {amount}"
        )
        transaction, balances, _ = self._transfer(
            tx_type,
            amount,
            actor_id,
            TransactionMetadata(description=description, notes=notes, reference_type="manual_transfer"),
        )
        return TransferResult(transaction=transaction, balances=balances)

    def transfer_safe_bank(
        self,
        kind: BankTransferKind | str,
        amount: int,
        actor_id: UUID,
        bank_name: str | None = None,
        bank_reference: str | None = None,
        carried_by: str | None = None,
        notes: str | None = None,
    ) -> TransferResult:
        """
        Deposit safe cash at the bank, or withdraw bank cash into the safe.

        Also writes a BankTransfer record with the before/after balances of
        both locations.
        """
        transfer_kind = parse_choice(BankTransferKind, kind, "kind")
        amount = require_positive_amount(amount)

        tx_type = transfer_kind.transaction_type
        description = (
            f"Depot banque{f' ({bank_name})' if bank_name else ''}"
            if transfer_kind is BankTransferKind.DEPOSIT
            else f"Retrait banque{f' ({bank_name})' if bank_name else ''}"
        )
        transaction, balances, before = self._transfer(
            tx_type,
            amount,
            actor_id,
            TransactionMetadata(
                description=description,
                notes=notes,
                reference_type="bank_transfer",
                reference_id=bank_reference,
            ),
        )

        record = BankTransfer(
            kind=transfer_kind.value,
            amount=amount,
            transaction_id=transaction.id,
            bank_name=bank_name,
            bank_reference=bank_reference,
            carried_by=carried_by,
            notes=notes,
            transfer_date=transaction.recorded_at,
            safe_balance_before=before.safe,
            safe_balance_after=balances.safe,
            bank_balance_before=before.bank,
            bank_balance_after=balances.bank,
            created_by_id=actor_id,
        )
        self.session.add(record)
        self._store.flush()

        logger.info(
            "bank_transfer_recorded",
            extra={
                "bank_transfer_id": str(record.id),
                "transaction_id": str(transaction.id),
                "kind": transfer_kind.value,
                "amount": amount,
                "bank_reference": bank_reference,
            },
        )
        return TransferResult(transaction=transaction, balances=balances, bank_transfer=record)

    def _transfer(
        self,
        tx_type: TransactionType,
        amount: int,
        actor_id: UUID,
        metadata: TransactionMetadata,
    ) -> tuple[TreasuryTransaction, Balances, Balances]:
        effect = effect_of(tx_type)
        direction: Direction = effect.natural_direction
        flow = effect.flow(direction)

        snapshot = self._store.lock_balances()
        before = snapshot.balances
        try:
            balances = before.apply(flow, amount)
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

        draft = TransactionDraft(
            transaction_type=tx_type,
            direction=direction,
            amount=amount,
            source_location=flow.source,
            destination_location=flow.destination,
            balances_after=balances,
            metadata=metadata,
        )
        transaction = self._store.append_transaction(draft, snapshot, actor_id)

        logger.info(
            "transfer_completed",
            extra={
                "transaction_id": str(transaction.id),
                "transaction_type": tx_type.value,
                "source": flow.source.value,
                "destination": flow.destination.value,
                "amount": amount,
            },
        )
        return transaction, balances, before
