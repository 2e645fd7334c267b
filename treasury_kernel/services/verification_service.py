"""
VerificationService -- daily physical count of the safe.

Responsibility:
    Records one count per business day.  When the count differs from the
    ledger an explanation is mandatory and an ``adjustment`` row (reference
    type ``verification``) brings the ledger to the counted value.  The
    snapshot is stamped with the last verification time and actor.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Failure modes:
    - InvalidAmountError for a negative count.
    - VerificationAlreadyRecordedError for a second count the same day.
    - DiscrepancyExplanationRequiredError when the count differs and no
      explanation is given.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType, resolve_flow
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import Balances, require_non_negative_amount
from treasury_kernel.exceptions import (
    DiscrepancyExplanationRequiredError,
    VerificationAlreadyRecordedError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.models.verification import DailyVerification, VerificationStatus
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.verification")


@dataclass(frozen=True)
class VerificationResult:
    verification: DailyVerification
    adjustment: TreasuryTransaction | None
    balances: Balances


class VerificationService(BaseService[DailyVerification]):
    """Records the daily safe count."""

    def verify_safe(
        self,
        counted_balance: int,
        actor_id: UUID,
        explanation: str | None = None,
    ) -> VerificationResult:
        counted = require_non_negative_amount(counted_balance, "counted_balance")
        explanation = (explanation or "").strip() or None
        store = LedgerStore(self.session, self.clock)

        snapshot = store.lock_balances()
        today = self.clock.today()
        existing = self.session.execute(
            select(DailyVerification).where(DailyVerification.verification_date == today)
        ).scalar_one_or_none()
        if existing is not None:
            raise VerificationAlreadyRecordedError(today.isoformat(), str(existing.id))

        expected = snapshot.safe_balance
        discrepancy = counted - expected
        if discrepancy and explanation is None:
            raise DiscrepancyExplanationRequiredError(discrepancy)

        balances = snapshot.balances
        adjustment = None
        if discrepancy:
            direction = Direction.IN if discrepancy > 0 else Direction.OUT
            flow = resolve_flow(TransactionType.ADJUSTMENT, direction, CashLocation.SAFE)
            balances = balances.apply(flow, abs(discrepancy))
            adjustment = store.append_transaction(
                TransactionDraft(
                    transaction_type=TransactionType.ADJUSTMENT,
                    direction=direction,
                    amount=abs(discrepancy),
                    source_location=flow.source,
                    destination_location=flow.destination,
                    balances_after=balances,
                    metadata=TransactionMetadata(
                        description=f"Ajustement suite a verification - {explanation}",
                        notes=explanation,
                        reference_type="verification",
                    ),
                ),
                snapshot,
                actor_id,
            )

        verification = DailyVerification(
            verification_date=today,
            expected_balance=expected,
            counted_balance=counted,
            discrepancy=discrepancy,
            status=(
                VerificationStatus.DISCREPANCY.value if discrepancy else VerificationStatus.MATCHED.value
            ),
            explanation=explanation,
            adjustment_transaction_id=adjustment.id if adjustment else None,
            created_by_id=actor_id,
        )
        self.session.add(verification)
        store.mark_verified(snapshot, actor_id)

        logger.info(
            "safe_verification_recorded",
            extra={
                "verification_id": str(verification.id),
                "verification_date": today.isoformat(),
                "expected_balance": expected,
                "counted_balance": counted,
                "discrepancy": discrepancy,
            },
        )
        return VerificationResult(verification=verification, adjustment=adjustment, balances=balances)
