"""
Module: treasury_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions -- the append-only
    history of every cash movement.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - amount > 0 (CHECK constraint).
    - sequence is unique and strictly increasing in write order; "latest
      transaction" always means highest sequence.
    - All four *_balance_after columns are NOT NULL and >= 0 on every row,
      including the locations the row does not touch.
    - At most one reversal per original transaction (partial unique index
      on original_transaction_id WHERE is_reversal).
    - Immutability (ORM listeners in db/immutability.py + DB triggers
      prevent UPDATE/DELETE of any row).

Failure modes:
    - IntegrityError on a second reversal row for the same original.
    - ImmutabilityViolationError on UPDATE/DELETE.

Audit relevance:
    Each row stores its resolved flow (source_location, destination_location)
    so balances can be replayed from history alone.  Reversals and
    corrections point at the original through original_transaction_id.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.domain.effects import CashLocation, Direction, Flow, TransactionType
from treasury_kernel.domain.values import Balances


class TreasuryTransaction(Base):
    """
    One immutable ledger row.

    Contract:
        Written once by LedgerStore.append_transaction() in the same flush as
        the snapshot update.  Never updated, never deleted.  Corrections are
        new rows.

    Guarantees:
        - balances_after is the state of every location right after this row.
        - flow.deltas(amount) is exactly the change this row made.
    """

    __tablename__ = "treasury_transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        CheckConstraint("registry_balance_after >= 0", name="ck_transaction_registry_after"),
        CheckConstraint("safe_balance_after >= 0", name="ck_transaction_safe_after"),
        CheckConstraint("bank_balance_after >= 0", name="ck_transaction_bank_after"),
        CheckConstraint("mobile_money_balance_after >= 0", name="ck_transaction_mobile_money_after"),
        CheckConstraint("direction IN ('in', 'out')", name="ck_transaction_direction"),
        Index("idx_treasury_tx_recorded_at", "recorded_at"),
        Index("idx_treasury_tx_reference", "reference_id"),
        Index("idx_treasury_tx_original", "original_transaction_id"),
        Index("idx_treasury_tx_type", "type"),
        Index(
            "uq_treasury_tx_single_reversal",
            "original_transaction_id",
            unique=True,
            postgresql_where=text("is_reversal"),
            sqlite_where=text("is_reversal = 1"),
        ),
    )

    # Strictly increasing ledger position, allocated from the locked snapshot
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    type: Mapped[TransactionType] = mapped_column(String(40), nullable=False)

    direction: Mapped[Direction] = mapped_column(String(3), nullable=False)

    # Minor currency units
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Resolved flow (NULL source = money in, NULL destination = money out)
    source_location: Mapped[CashLocation | None] = mapped_column(String(20), nullable=True)
    destination_location: Mapped[CashLocation | None] = mapped_column(String(20), nullable=True)

    registry_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    safe_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bank_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mobile_money_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    receipt_number: Mapped[str | None] = mapped_column(String(40), nullable=True, unique=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Loose pointer to the external event (payment, expense, bank transfer...)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    student_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    beneficiary_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set only on reversal and correction rows
    original_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("treasury_transactions.id"),
        nullable=True,
    )

    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    original: Mapped["TreasuryTransaction | None"] = relationship(
        remote_side="TreasuryTransaction.id",
        foreign_keys=[original_transaction_id],
    )

    def __repr__(self) -> str:
        return (
            f"<TreasuryTransaction {self.id} {TransactionType(self.type).value} "
            f"{Direction(self.direction).value} {self.amount}>"
        )

    @property
    def balances_after(self) -> Balances:
        """Balances of all four locations right after this row.

        Postconditions: Each field equals the matching *_balance_after column.
        """
        return Balances(
            registry=self.registry_balance_after,
            safe=self.safe_balance_after,
            bank=self.bank_balance_after,
            mobile_money=self.mobile_money_balance_after,
        )

    @property
    def flow(self) -> Flow:
        """The stored flow of this row."""
        return Flow(
            source=CashLocation(self.source_location) if self.source_location else None,
            destination=(
                CashLocation(self.destination_location) if self.destination_location else None
            ),
        )

    @property
    def is_correction(self) -> bool:
        """Check if this row re-enters an amount after a reversal.

        Postconditions: True iff it points at an original and is not a reversal.
        """
        return self.original_transaction_id is not None and not self.is_reversal
