"""
BalanceAdminService -- starting balances and manual balance corrections.

Responsibility:
    ``initialize_balances`` seeds an empty ledger; ``adjust_balance`` sets
    one location to a stated value.  Both go through ordinary adjustment
    rows so that replaying history always reproduces the snapshot.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Failure modes:
    - BalancesAlreadyInitializedError once any transaction exists.
    - ReasonTooShortError, InvalidAmountError.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.effects import ADJUSTMENT_TYPES, CashLocation, Direction, resolve_flow
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import (
    LOCATION_ORDER,
    Balances,
    parse_choice,
    require_non_negative_amount,
    require_reason,
)
from treasury_kernel.exceptions import BalancesAlreadyInitializedError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.balance import BalanceSnapshot
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.reversal_service import DEFAULT_REASON_MIN_LENGTH

logger = get_logger("services.balance_admin")


@dataclass(frozen=True)
class AdjustmentResult:
    transactions: tuple[TreasuryTransaction, ...]
    balances: Balances


class BalanceAdminService(BaseService[TreasuryTransaction]):
    """Administrative balance writes."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        reason_min_length: int = DEFAULT_REASON_MIN_LENGTH,
    ):
        super().__init__(session, clock)
        self._reason_min_length = reason_min_length
        self._store = LedgerStore(session, self.clock)

    def initialize_balances(
        self,
        balances: Balances,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentResult:
        """Seed an unused ledger with starting balances, one row per non-zero location."""
        for location in LOCATION_ORDER:
            require_non_negative_amount(balances.get(location), location.value)

        snapshot = self._store.lock_balances()
        count = self._store.transaction_count()
        if count:
            raise BalancesAlreadyInitializedError(count)

        rows = []
        for location in LOCATION_ORDER:
            target = balances.get(location)
            if target:
                rows.append(
                    self._write_adjustment(
                        snapshot,
                        location,
                        target,
                        actor_id,
                        TransactionMetadata(
                            description=f"Solde initial - {location.value}",
                            notes=notes,
                            reference_type="initialization",
                        ),
                    )
                )

        logger.info("balances_initialized", extra={"balances": snapshot.balances.as_dict()})
        return AdjustmentResult(transactions=tuple(rows), balances=snapshot.balances)

    def adjust_balance(
        self,
        location: CashLocation | str,
        new_balance: int,
        reason: str,
        actor_id: UUID,
    ) -> AdjustmentResult:
        """Set ``location`` to ``new_balance``.  No row when it already matches."""
        location = parse_choice(CashLocation, location, "location")
        new_balance = require_non_negative_amount(new_balance, "new_balance")
        reason = require_reason(reason, self._reason_min_length)

        snapshot = self._store.lock_balances()
        previous = snapshot.balances.get(location)
        rows = ()
        if new_balance != previous:
            rows = (
                self._write_adjustment(
                    snapshot,
                    location,
                    new_balance,
                    actor_id,
                    TransactionMetadata(
                        description=reason,
                        notes=f"Ajustement manuel {location.value}: {previous} -> {new_balance}",
                        reference_type="manual_adjustment",
                    ),
                ),
            )

        logger.info(
            "balance_adjusted",
            extra={
                "location": location.value,
                "previous_balance": previous,
                "new_balance": new_balance,
            },
        )
        return AdjustmentResult(transactions=rows, balances=snapshot.balances)

    def _write_adjustment(
        self,
        snapshot: BalanceSnapshot,
        location: CashLocation,
        target: int,
        actor_id: UUID,
        metadata: TransactionMetadata,
    ) -> TreasuryTransaction:
        delta = target - snapshot.balances.get(location)
        direction = Direction.IN if delta > 0 else Direction.OUT
        tx_type = ADJUSTMENT_TYPES[location]
        flow = resolve_flow(tx_type, direction, location)
        balances = snapshot.balances.apply(flow, abs(delta))
        return self._store.append_transaction(
            TransactionDraft(
                transaction_type=tx_type,
                direction=direction,
                amount=abs(delta),
                source_location=flow.source,
                destination_location=flow.destination,
                balances_after=balances,
                metadata=metadata,
            ),
            snapshot,
            actor_id,
        )
