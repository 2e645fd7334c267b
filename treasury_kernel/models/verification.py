"""
Module: treasury_kernel.models.verification
Responsibility: ORM persistence for daily physical safe counts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one verification per calendar day (UNIQUE verification_date).
    - Immutable from creation (ORM listeners + DB triggers).
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import AppendOnlyBase, UUIDString


class VerificationStatus(str, Enum):
    """Outcome of a safe count."""

    MATCHED = "matched"
    DISCREPANCY = "discrepancy"


class DailyVerification(AppendOnlyBase):
    """One physical count of the safe against the ledger."""

    __tablename__ = "treasury_daily_verifications"

    verification_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)

    expected_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    counted_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discrepancy: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[VerificationStatus] = mapped_column(String(20), nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Adjustment written when the count differed
    adjustment_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("treasury_transactions.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<DailyVerification {self.verification_date} {VerificationStatus(self.status).value}>"
