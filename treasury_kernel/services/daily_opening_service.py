"""
DailyOpeningService -- two-phase reconciliation of the safe at day start.

Responsibility:
    Phase 1 (``preview_opening``) compares the physical safe count with the
    ledger and returns a preview; it never writes.  Phase 2
    (``confirm_opening``) reconciles the safe to the count with an
    adjustment row when needed and moves the float into the registry.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    State machine declared in domain/workflows.py (DAILY_OPENING_WORKFLOW).

Invariants enforced:
    - The registry must be empty to open (DayAlreadyOpenedError otherwise),
      checked in both phases; phase 2 rechecks under the snapshot lock.
    - counted_safe_balance >= float_amount (InsufficientFundsForFloatError).
    - Adjustment and float transfer belong to the caller's single unit of
      work: both are written, or neither.

Failure modes:
    - InvalidAmountError, DayAlreadyOpenedError,
      InsufficientFundsForFloatError.  None of them writes anything.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType, resolve_flow
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import (
    Balances,
    require_non_negative_amount,
    require_positive_amount,
)
from treasury_kernel.domain.workflows import DAILY_OPENING_WORKFLOW, OpeningState
from treasury_kernel.exceptions import DayAlreadyOpenedError, InsufficientFundsForFloatError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.daily_opening")

DEFAULT_FLOAT_AMOUNT = 2_000_000
DEFAULT_DISCREPANCY_ALERT_THRESHOLD = 50_000


class DiscrepancySeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"


def classify_discrepancy(discrepancy: int, threshold: int) -> DiscrepancySeverity:
    """none for 0, major above ``threshold`` in absolute value, else minor."""
    if discrepancy == 0:
        return DiscrepancySeverity.NONE
    if abs(discrepancy) > threshold:
        return DiscrepancySeverity.MAJOR
    return DiscrepancySeverity.MINOR


@dataclass(frozen=True)
class OpeningPreview:
    """Result of phase 1.  Carries the count into phase 2."""

    expected_safe_balance: int
    counted_safe_balance: int
    discrepancy: int
    severity: DiscrepancySeverity
    suggested_float_amount: int
    state: OpeningState = OpeningState.AWAITING_FLOAT


@dataclass(frozen=True)
class OpeningResult:
    balances: Balances
    float_amount: int
    discrepancy: int
    adjustment: TreasuryTransaction | None
    float_transfer: TreasuryTransaction
    state: OpeningState = OpeningState.OPENED

    @property
    def adjustment_created(self) -> bool:
        return self.adjustment is not None


class DailyOpeningService(BaseService[TreasuryTransaction]):
    """
    Opens the business day.

    Usage:
        service = DailyOpeningService(session, clock)
        preview = service.preview_opening(counted_safe_balance=95000)
        # show preview.discrepancy to the operator, then:
        result = service.confirm_opening(preview, float_amount=20000, actor_id=user)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_float_amount: int = DEFAULT_FLOAT_AMOUNT,
        discrepancy_alert_threshold: int = DEFAULT_DISCREPANCY_ALERT_THRESHOLD,
    ):
        super().__init__(session, clock)
        self._default_float_amount = default_float_amount
        self._threshold = discrepancy_alert_threshold
        self._store = LedgerStore(session, self.clock)

    def preview_opening(self, counted_safe_balance: int) -> OpeningPreview:
        """
        Phase 1: compute the discrepancy.  Never writes.

        Raises:
            InvalidAmountError: the count is not an integer >= 0.
            DayAlreadyOpenedError: the registry still holds cash.
        """
        counted = require_non_negative_amount(counted_safe_balance, "counted_safe_balance")
        balances = self._store.current_balances()
        if balances.registry != 0:
            raise DayAlreadyOpenedError(balances.registry)

        transition = DAILY_OPENING_WORKFLOW.transition_for(
            OpeningState.AWAITING_COUNT.value, "count"
        )
        discrepancy = counted - balances.safe
        preview = OpeningPreview(
            expected_safe_balance=balances.safe,
            counted_safe_balance=counted,
            discrepancy=discrepancy,
            severity=classify_discrepancy(discrepancy, self._threshold),
            suggested_float_amount=self._default_float_amount,
            state=OpeningState(transition.to_state),
        )
        logger.info(
            "daily_opening_previewed",
            extra={
                "expected_safe_balance": preview.expected_safe_balance,
                "counted_safe_balance": counted,
                "discrepancy": discrepancy,
                "severity": preview.severity.value,
            },
        )
        return preview

    def confirm_opening(
        self,
        preview: OpeningPreview,
        float_amount: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> OpeningResult:
        """
        Phase 2: reconcile the safe and move the float.

        The discrepancy is recomputed against the locked snapshot; if the
        ledger moved since the preview, the fresh value wins.
        """
        float_amount = require_positive_amount(float_amount, field="float_amount")
        counted = preview.counted_safe_balance
        if counted < float_amount:
            raise InsufficientFundsForFloatError(counted, float_amount)

        snapshot = self._store.lock_balances()
        if snapshot.registry_balance != 0:
            raise DayAlreadyOpenedError(snapshot.registry_balance)

        transition = DAILY_OPENING_WORKFLOW.transition_for(
            OpeningState.AWAITING_FLOAT.value, "confirm_float"
        )
        discrepancy = counted - snapshot.safe_balance
        if discrepancy != preview.discrepancy:
            logger.warning(
                "opening_discrepancy_recomputed",
                extra={
                    "previewed_discrepancy": preview.discrepancy,
                    "discrepancy": discrepancy,
                },
            )

        balances = snapshot.balances
        adjustment_direction = Direction.IN if discrepancy > 0 else Direction.OUT
        adjustment_flow = resolve_flow(TransactionType.ADJUSTMENT, adjustment_direction, CashLocation.SAFE)
        after_adjustment = (
            balances.apply(adjustment_flow, abs(discrepancy)) if discrepancy else balances
        )
        float_flow = resolve_flow(TransactionType.SAFE_TO_REGISTRY, Direction.OUT)
        final = after_adjustment.apply(float_flow, float_amount)

        adjustment = None
        if discrepancy:
            label = "Surplus" if discrepancy > 0 else "Manque"
            adjustment = self._store.append_transaction(
                TransactionDraft(
                    transaction_type=TransactionType.ADJUSTMENT,
                    direction=adjustment_direction,
                    amount=abs(discrepancy),
                    source_location=adjustment_flow.source,
                    destination_location=adjustment_flow.destination,
                    balances_after=after_adjustment,
                    metadata=TransactionMetadata(
                        description=f"Ajustement d'ouverture - {label} de {abs(discrepancy)}",
                        notes=notes,
                        reference_type="daily_opening",
                    ),
                ),
                snapshot,
                actor_id,
            )

        float_transfer = self._store.append_transaction(
            TransactionDraft(
                transaction_type=TransactionType.SAFE_TO_REGISTRY,
                direction=Direction.OUT,
                amount=float_amount,
                source_location=float_flow.source,
                destination_location=float_flow.destination,
                balances_after=final,
                metadata=TransactionMetadata(
                    description=f"Ouverture journaliere - Fond de caisse {float_amount}",
                    notes=notes or f"Comptage coffre: {counted}",
                    reference_type="daily_opening",
                ),
            ),
            snapshot,
            actor_id,
        )
        self._store.set_float_amount(snapshot, float_amount, actor_id)

        logger.info(
            "daily_opening_confirmed",
            extra={
                "counted_safe_balance": counted,
                "discrepancy": discrepancy,
                "float_amount": float_amount,
                "adjustment_id": str(adjustment.id) if adjustment else None,
                "float_transfer_id": str(float_transfer.id),
                "state": transition.to_state,
            },
        )
        return OpeningResult(
            balances=final,
            float_amount=float_amount,
            discrepancy=discrepancy,
            adjustment=adjustment,
            float_transfer=float_transfer,
            state=OpeningState(transition.to_state),
        )
