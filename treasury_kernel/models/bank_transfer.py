"""
Module: treasury_kernel.models.bank_transfer
Responsibility: ORM persistence for safe <-> bank transfer records (the
    deposit slip / withdrawal voucher that accompanies the ledger row).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0 and before/after balances >= 0 (CHECK constraints).
    - One record per ledger transaction (UNIQUE transaction_id).
    - Immutable from creation (ORM listeners + DB triggers).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treasury_kernel.db.base import AppendOnlyBase, UUIDString
from treasury_kernel.models.transaction import TreasuryTransaction


class BankTransfer(AppendOnlyBase):
    """A deposit to, or withdrawal from, the bank."""

    __tablename__ = "treasury_bank_transfers"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bank_transfer_amount_positive"),
        CheckConstraint("kind IN ('deposit', 'withdrawal')", name="ck_bank_transfer_kind"),
        Index("idx_bank_transfer_transfer_date", "transfer_date"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("treasury_transactions.id"),
        nullable=False,
        unique=True,
    )

    bank_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bank_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carried_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    transfer_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    safe_balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    safe_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bank_balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bank_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction: Mapped[TreasuryTransaction] = relationship(foreign_keys=[transaction_id])

    def __repr__(self) -> str:
        return f"<BankTransfer {self.id} {self.kind} {self.amount}>"
