"""
ReversalService -- undo a transaction without rewriting history.

Responsibility:
    Writes the exact mirror of an original transaction (same amount, same
    locations, money moving the other way), and optionally a correction
    row that re-enters the right amount through the right channel.  The
    original row is never touched; the link is the reversal row's
    ``original_transaction_id``.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Single reversal: a transaction is reversed at most once (checked
      under the snapshot lock, backed by a partial unique index).
    - A reversal row can never itself be reversed.
    - Round trip: reversing restores every touched location to the value
      it would have had without the original.
    - All checks (reason, existence, state, funds for the reversal AND the
      correction) run before the first row is written.

Failure modes:
    - ReasonTooShortError, InvalidAmountError (correction amount),
      InvalidChoiceError (correction method).
    - TransactionNotFoundError, CannotReverseReversalError,
      TransactionAlreadyReversedError.
    - CorrectionNotAllowedError for transfers and registry movements.
    - InsufficientFundsError when undoing income that was already spent.

Audit relevance:
    ``reversal_completed`` carries the original id, reversal id, optional
    correction id and the reason.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.effects import (
    CORRECTION_TYPES,
    CashLocation,
    CashMovement,
    Direction,
    Flow,
    TransactionType,
    effect_of,
    resolve_flow,
    reversal_type_for,
)
from treasury_kernel.domain.requests import (
    CorrectionMethod,
    ReversalRequest,
    ReversalWithCorrection,
    TransactionDraft,
    TransactionMetadata,
)
from treasury_kernel.domain.values import (
    Balances,
    parse_choice,
    require_positive_amount,
    require_reason,
)
from treasury_kernel.domain.workflows import TRANSACTION_REVERSAL_WORKFLOW, ReversalState
from treasury_kernel.exceptions import (
    CannotReverseReversalError,
    CorrectionNotAllowedError,
    InsufficientFundsError,
    TransactionAlreadyReversedError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.receipt_service import DEFAULT_RECEIPT_PREFIX, ReceiptService

logger = get_logger("services.reversal")

DEFAULT_REASON_MIN_LENGTH = 10

_CORRECTABLE_LOCATIONS = frozenset({CashLocation.SAFE, CashLocation.MOBILE_MONEY})


@dataclass(frozen=True)
class ReversalResult:
    """Rows written by one reversal, and the balances after the last one."""

    reversal: TreasuryTransaction
    correction: TreasuryTransaction | None
    balances: Balances


@dataclass(frozen=True)
class _CorrectionPlan:
    transaction_type: TransactionType
    direction: Direction
    flow: Flow
    amount: int


def _describe(original: TreasuryTransaction, label: str) -> str:
    return f"{label}: {original.description or TransactionType(original.type).value}"


def _carried_metadata(original: TreasuryTransaction, description: str, notes: str) -> TransactionMetadata:
    return TransactionMetadata(
        description=description,
        notes=notes,
        reference_type=original.reference_type,
        reference_id=original.reference_id,
        student_id=original.student_id,
        payer_name=original.payer_name,
        beneficiary_name=original.beneficiary_name,
        category=original.category,
    )


class ReversalService(BaseService[TreasuryTransaction]):
    """
    Reverses transactions, with an optional same-step correction.

    Usage:
        service = ReversalService(session, clock)
        result = service.reverse(
            transaction_id,
            ReversalWithCorrection("Wrong amount typed", 45000, CorrectionMethod.CASH),
            actor_id,
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        reason_min_length: int = DEFAULT_REASON_MIN_LENGTH,
        receipt_prefix: str = DEFAULT_RECEIPT_PREFIX,
    ):
        super().__init__(session, clock)
        self._reason_min_length = reason_min_length
        self._store = LedgerStore(session, self.clock)
        self._receipts = ReceiptService(session, receipt_prefix)

    def reverse(
        self,
        transaction_id: UUID | str,
        request: ReversalRequest,
        actor_id: UUID,
    ) -> ReversalResult:
        """
        Reverse ``transaction_id``.

        Preconditions (each a distinct error, all checked before writing):
            - reason has the minimum length;
            - the transaction exists;
            - it is not itself a reversal;
            - it has not been reversed yet;
            - every resulting balance is >= 0.

        Returns:
            ReversalResult(reversal, correction or None, final balances).
        """
        reason = require_reason(request.reason, self._reason_min_length)
        method = None
        if isinstance(request, ReversalWithCorrection):
            if request.amount is not None:
                require_positive_amount(request.amount, field="correction_amount")
            method = parse_choice(CorrectionMethod, request.method, "correction_method")

        snapshot = self._store.lock_balances()
        original = self._store.find_transaction(transaction_id)
        transition = self._check_reversible(original)

        reversal_type = reversal_type_for(TransactionType(original.type))
        reversal_direction = Direction(original.direction).opposite()
        reversal_flow = original.flow.reversed()

        try:
            after_reversal = snapshot.balances.apply(reversal_flow, original.amount)
            plan = None
            final = after_reversal
            if method is not None:
                plan = self._plan_correction(original, request, method)
                final = after_reversal.apply(plan.flow, plan.amount)
        except InsufficientFundsError as exc:
            logger.warning(
                "insufficient_funds_rejected",
                extra={
                    "operation": "reverse",
                    "original_transaction_id": str(original.id),
                    "location": exc.location,
                    "available": exc.available,
                    "required": exc.required,
                },
            )
            raise

        reversal_draft = TransactionDraft(
            transaction_type=reversal_type,
            direction=reversal_direction,
            amount=original.amount,
            source_location=reversal_flow.source,
            destination_location=reversal_flow.destination,
            balances_after=after_reversal,
            metadata=_carried_metadata(original, _describe(original, "ANNULATION"), reason),
            is_reversal=True,
            reversal_reason=reason,
            original_transaction_id=original.id,
        )
        try:
            reversal = self._store.append_transaction(reversal_draft, snapshot, actor_id)
        except IntegrityError as exc:
            message = str(exc.orig)
            if "uq_treasury_tx_single_reversal" in message or "original_transaction_id" in message:
                raise TransactionAlreadyReversedError(str(original.id)) from exc
            raise

        correction = None
        if plan is not None:
            correction_draft = TransactionDraft(
                transaction_type=plan.transaction_type,
                direction=plan.direction,
                amount=plan.amount,
                source_location=plan.flow.source,
                destination_location=plan.flow.destination,
                balances_after=final,
                metadata=_carried_metadata(original, _describe(original, "CORRECTION"), reason),
                original_transaction_id=original.id,
                receipt_number=self._receipts.next_receipt_number(
                    self.clock.today(), plan.direction
                ),
            )
            correction = self._store.append_transaction(correction_draft, snapshot, actor_id)

        logger.info(
            "reversal_completed",
            extra={
                "original_transaction_id": str(original.id),
                "reversal_id": str(reversal.id),
                "correction_id": str(correction.id) if correction else None,
                "reversal_type": reversal_type.value,
                "amount": original.amount,
                "reason": reason,
                "state": transition.to_state,
            },
        )
        return ReversalResult(reversal=reversal, correction=correction, balances=final)

    def _check_reversible(self, original: TreasuryTransaction):
        if original.is_reversal:
            logger.warning(
                "reversal_rejected",
                extra={
                    "original_transaction_id": str(original.id),
                    "state": ReversalState.CANNOT_REVERSE.value,
                },
            )
            raise CannotReverseReversalError(str(original.id))

        existing = self._store.find_reversal_of(original.id)
        if existing is not None:
            logger.warning(
                "reversal_rejected",
                extra={
                    "original_transaction_id": str(original.id),
                    "state": ReversalState.REVERSED.value,
                    "reversal_id": str(existing.id),
                },
            )
            raise TransactionAlreadyReversedError(str(original.id), str(existing.id))

        return TRANSACTION_REVERSAL_WORKFLOW.transition_for(ReversalState.ACTIVE.value, "reverse")

    def _plan_correction(
        self,
        original: TreasuryTransaction,
        request: ReversalWithCorrection,
        method: CorrectionMethod,
    ) -> _CorrectionPlan:
        original_flow = original.flow
        location = original_flow.destination or original_flow.source
        if original_flow.is_transfer or location not in _CORRECTABLE_LOCATIONS:
            raise CorrectionNotAllowedError(str(original.id), original.type)

        target = method.location
        direction = Direction(original.direction)
        original_type = TransactionType(original.type)

        effect = effect_of(original_type)
        if isinstance(effect, CashMovement) and effect.location is target:
            correction_type = original_type
        else:
            correction_type = CORRECTION_TYPES[(target, direction)]

        return _CorrectionPlan(
            transaction_type=correction_type,
            direction=direction,
            flow=resolve_flow(correction_type, direction, target),
            amount=request.amount if request.amount is not None else original.amount,
        )

