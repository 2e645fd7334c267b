"""
Module: treasury_kernel.selectors.transaction_selector
Responsibility: Read-only access to the transaction history: filtered,
    paginated listings, the reversal chain of one transaction, and replay
    of balances from history for the consistency check.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ value objects and selectors/base.py.

Invariants enforced:
    - Read-only: no mutations.
    - Listings are newest first (highest sequence first).
    - Replay uses the flow stored on each row, never the current type table.

Failure modes:
    - Returns None / empty results when nothing matches; never raises on
      absence of data.

Audit relevance:
    ``verify_snapshot_consistency`` is the reconciliation check behind the
    guarantee that the snapshot always equals the latest row's balances
    and the sum of every row's signed amounts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, or_, select

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.values import Balances, parse_choice
from treasury_kernel.domain.workflows import ReversalState
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.balance import DEFAULT_LEDGER_KEY, BalanceSnapshot
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.transaction")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a UTC business day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


@dataclass(frozen=True)
class TransactionDTO:
    """Data transfer object for a ledger transaction."""

    id: UUID
    sequence: int
    transaction_type: TransactionType
    direction: Direction
    amount: int
    source_location: CashLocation | None
    destination_location: CashLocation | None
    balances_after: Balances
    receipt_number: str | None
    description: str | None
    notes: str | None
    reference_type: str | None
    reference_id: str | None
    student_id: str | None
    payer_name: str | None
    beneficiary_name: str | None
    category: str | None
    is_reversal: bool
    reversal_reason: str | None
    reversed_by_id: UUID | None
    reversed_at: datetime | None
    original_transaction_id: UUID | None
    recorded_by_id: UUID
    recorded_at: datetime

    @property
    def is_correction(self) -> bool:
        return self.original_transaction_id is not None and not self.is_reversal


@dataclass(frozen=True)
class TransactionFilter:
    """Listing criteria.  Every field is optional."""

    transaction_type: TransactionType | None = None
    direction: Direction | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0


@dataclass(frozen=True)
class TransactionPage:
    items: list[TransactionDTO]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


@dataclass(frozen=True)
class ReversalHistory:
    """An original transaction with its reversal and corrections."""

    original: TransactionDTO
    reversal: TransactionDTO | None
    corrections: list[TransactionDTO] = field(default_factory=list)

    @property
    def is_reversed(self) -> bool:
        return self.reversal is not None

    @property
    def is_reversal(self) -> bool:
        return self.original.is_reversal

    @property
    def reversal_count(self) -> int:
        return 1 if self.reversal is not None else 0

    @property
    def state(self) -> ReversalState:
        if self.original.is_reversal:
            return ReversalState.CANNOT_REVERSE
        if self.reversal is not None:
            return ReversalState.REVERSED
        return ReversalState.ACTIVE


@dataclass(frozen=True)
class ConsistencyReport:
    snapshot: Balances
    replayed: Balances
    latest: Balances
    transaction_count: int
    snapshot_sequence: int
    latest_sequence: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.snapshot == self.replayed == self.latest
            and self.snapshot_sequence == self.latest_sequence
        )


def to_dto(row: TreasuryTransaction) -> TransactionDTO:
    return TransactionDTO(
        id=row.id,
        sequence=row.sequence,
        transaction_type=TransactionType(row.type),
        direction=Direction(row.direction),
        amount=row.amount,
        source_location=CashLocation(row.source_location) if row.source_location else None,
        destination_location=(
            CashLocation(row.destination_location) if row.destination_location else None
        ),
        balances_after=row.balances_after,
        receipt_number=row.receipt_number,
        description=row.description,
        notes=row.notes,
        reference_type=row.reference_type,
        reference_id=row.reference_id,
        student_id=row.student_id,
        payer_name=row.payer_name,
        beneficiary_name=row.beneficiary_name,
        category=row.category,
        is_reversal=row.is_reversal,
        reversal_reason=row.reversal_reason,
        reversed_by_id=row.reversed_by_id,
        reversed_at=row.reversed_at,
        original_transaction_id=row.original_transaction_id,
        recorded_by_id=row.recorded_by_id,
        recorded_at=row.recorded_at,
    )


class TransactionSelector(BaseSelector[TreasuryTransaction]):
    """
    Selector for transaction history queries.

    Guarantees:
        - Read-only.
        - Deterministic ordering by sequence.
    """

    def get(self, transaction_id: UUID) -> TransactionDTO | None:
        row = self.session.get(TreasuryTransaction, transaction_id)
        return to_dto(row) if row is not None else None

    def list_transactions(self, criteria: TransactionFilter | None = None) -> TransactionPage:
        """Filtered page of transactions, newest first."""
        criteria = criteria or TransactionFilter()
        limit = max(1, min(criteria.limit, MAX_PAGE_SIZE))
        offset = max(0, criteria.offset)

        conditions = []
        if criteria.transaction_type is not None:
            conditions.append(
                TreasuryTransaction.type
                == parse_choice(TransactionType, criteria.transaction_type, "transaction_type").value
            )
        if criteria.direction is not None:
            conditions.append(
                TreasuryTransaction.direction
                == parse_choice(Direction, criteria.direction, "direction").value
            )
        if criteria.date_from is not None:
            conditions.append(TreasuryTransaction.recorded_at >= day_bounds(criteria.date_from)[0])
        if criteria.date_to is not None:
            conditions.append(TreasuryTransaction.recorded_at < day_bounds(criteria.date_to)[1])
        if criteria.search:
            pattern = f"%{criteria.search.strip()}%"
            conditions.append(
                or_(
                    TreasuryTransaction.description.ilike(pattern),
                    TreasuryTransaction.payer_name.ilike(pattern),
                    TreasuryTransaction.beneficiary_name.ilike(pattern),
                    TreasuryTransaction.receipt_number.ilike(pattern),
                )
            )

        total = self.session.execute(
            select(func.count(TreasuryTransaction.id)).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(TreasuryTransaction)
            .where(*conditions)
            .order_by(TreasuryTransaction.sequence.desc())
            .limit(limit)
            .offset(offset)
        ).scalars()

        return TransactionPage(
            items=[to_dto(row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    def reversal_history(self, transaction_id: UUID) -> ReversalHistory | None:
        """The reversal chain of ``transaction_id``, or None if it does not exist."""
        original = self.session.get(TreasuryTransaction, transaction_id)
        if original is None:
            return None

        chained = self.session.execute(
            select(TreasuryTransaction)
            .where(TreasuryTransaction.original_transaction_id == original.id)
            .order_by(TreasuryTransaction.sequence)
        ).scalars()

        reversal = None
        corrections = []
        for row in chained:
            if row.is_reversal:
                reversal = to_dto(row)
            else:
                corrections.append(to_dto(row))

        return ReversalHistory(
            original=to_dto(original),
            reversal=reversal,
            corrections=corrections,
        )

    def replay_balances(self) -> Balances:
        """Balances derived from history alone: sum of every row's signed deltas."""
        values = {location.value: 0 for location in CashLocation}

        inflows = self.session.execute(
            select(TreasuryTransaction.destination_location, func.sum(TreasuryTransaction.amount))
            .where(TreasuryTransaction.destination_location.is_not(None))
            .group_by(TreasuryTransaction.destination_location)
        ).all()
        outflows = self.session.execute(
            select(TreasuryTransaction.source_location, func.sum(TreasuryTransaction.amount))
            .where(TreasuryTransaction.source_location.is_not(None))
            .group_by(TreasuryTransaction.source_location)
        ).all()

        for location, total in inflows:
            values[CashLocation(location).value] += int(total)
        for location, total in outflows:
            values[CashLocation(location).value] -= int(total)

        return Balances(**values)

    def verify_snapshot_consistency(self) -> ConsistencyReport:
        """Compare the snapshot with the latest row and with the replayed history."""
        snapshot = self.session.execute(
            select(BalanceSnapshot).where(BalanceSnapshot.ledger_key == DEFAULT_LEDGER_KEY)
        ).scalar_one_or_none()
        latest = self.session.execute(
            select(TreasuryTransaction).order_by(TreasuryTransaction.sequence.desc()).limit(1)
        ).scalar_one_or_none()
        count = self.session.execute(select(func.count(TreasuryTransaction.id))).scalar_one()

        report = ConsistencyReport(
            snapshot=snapshot.balances if snapshot is not None else Balances.zero(),
            replayed=self.replay_balances(),
            latest=latest.balances_after if latest is not None else Balances.zero(),
            transaction_count=count,
            snapshot_sequence=snapshot.last_sequence if snapshot is not None else 0,
            latest_sequence=latest.sequence if latest is not None else 0,
        )
        if not report.is_consistent:
            logger.critical(
                "snapshot_inconsistency_detected",
                extra={
                    "snapshot": report.snapshot.as_dict(),
                    "replayed": report.replayed.as_dict(),
                    "latest": report.latest.as_dict(),
                    "snapshot_sequence": report.snapshot_sequence,
                    "latest_sequence": report.latest_sequence,
                },
            )
        return report
