"""
DailyClosingService -- count the registry and sweep it back into the safe.

Responsibility:
    At day end the registry is counted; a registry_adjustment reconciles
    the ledger to the count when they differ, then a registry_to_safe
    transfer of the counted amount leaves the registry at zero, ready for
    the next opening.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    State machine declared in domain/workflows.py (DAILY_CLOSING_WORKFLOW).

Failure modes:
    - InvalidAmountError for a negative count.
    - DayNotOpenedError when the registry is already empty.
"""

from dataclasses import dataclass
from uuid import UUID

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType, resolve_flow
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import Balances, require_non_negative_amount
from treasury_kernel.domain.workflows import DAILY_CLOSING_WORKFLOW, ClosingState
from treasury_kernel.exceptions import DayNotOpenedError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.daily_closing")


@dataclass(frozen=True)
class ClosingResult:
    balances: Balances
    expected_registry_balance: int
    counted_registry_balance: int
    discrepancy: int
    adjustment: TreasuryTransaction | None
    sweep: TreasuryTransaction | None

    @property
    def adjustment_created(self) -> bool:
        return self.adjustment is not None


class DailyClosingService(BaseService[TreasuryTransaction]):
    """Closes the business day."""

    def close_day(
        self,
        counted_registry_balance: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ClosingResult:
        """
        Reconcile the registry to ``counted_registry_balance`` and empty it.

        A count of zero only writes the adjustment; there is nothing to sweep.
        """
        counted = require_non_negative_amount(counted_registry_balance, "counted_registry_balance")
        store = LedgerStore(self.session, self.clock)

        snapshot = store.lock_balances()
        expected = snapshot.registry_balance
        if expected <= 0:
            raise DayNotOpenedError()
        transition = DAILY_CLOSING_WORKFLOW.transition_for(ClosingState.OPENED.value, "close")

        discrepancy = counted - expected
        adjustment_direction = Direction.IN if discrepancy > 0 else Direction.OUT
        adjustment_flow = resolve_flow(TransactionType.REGISTRY_ADJUSTMENT, adjustment_direction)
        balances = snapshot.balances
        after_adjustment = (
            balances.apply(adjustment_flow, abs(discrepancy)) if discrepancy else balances
        )
        sweep_flow = resolve_flow(TransactionType.REGISTRY_TO_SAFE, Direction.IN)
        final = after_adjustment.apply(sweep_flow, counted) if counted else after_adjustment

        adjustment = None
        if discrepancy:
            label = "Surplus" if discrepancy > 0 else "Manque"
            adjustment = store.append_transaction(
                TransactionDraft(
                    transaction_type=TransactionType.REGISTRY_ADJUSTMENT,
                    direction=adjustment_direction,
                    amount=abs(discrepancy),
                    source_location=adjustment_flow.source,
                    destination_location=adjustment_flow.destination,
                    balances_after=after_adjustment,
                    metadata=TransactionMetadata(
                        description=f"Ajustement de fermeture - {label} de {abs(discrepancy)}",
                        notes=notes,
                        reference_type="daily_closing",
                    ),
                ),
                snapshot,
                actor_id,
            )

        sweep = None
        if counted:
            sweep = store.append_transaction(
                TransactionDraft(
                    transaction_type=TransactionType.REGISTRY_TO_SAFE,
                    direction=Direction.IN,
                    amount=counted,
                    source_location=sweep_flow.source,
                    destination_location=sweep_flow.destination,
                    balances_after=final,
                    metadata=TransactionMetadata(
                        description=f"Fermeture journaliere - Depot {counted} au coffre",
                        notes=notes,
                        reference_type="daily_closing",
                    ),
                ),
                snapshot,
                actor_id,
            )

        assert final.get(CashLocation.REGISTRY) == 0, "closing must leave the registry empty"

        logger.info(
            "daily_closing_completed",
            extra={
                "expected_registry_balance": expected,
                "counted_registry_balance": counted,
                "discrepancy": discrepancy,
                "state": transition.to_state,
            },
        )
        return ClosingResult(
            balances=final,
            expected_registry_balance=expected,
            counted_registry_balance=counted,
            discrepancy=discrepancy,
            adjustment=adjustment,
            sweep=sweep,
        )
