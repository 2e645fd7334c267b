"""
Module: treasury_kernel.models.receipt_counter
Responsibility: Locked counter rows backing receipt numbers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (business day, receipt kind) (UNIQUE name).
    - The counter only grows, and only under a row lock.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base


class ReceiptCounter(Base):
    """
    Receipt counter table.

    Each row is a named counter, e.g. ``CAISSE-20240101-REC``.  Counters
    are mutable and are not part of the append-only history.
    """

    __tablename__ = "treasury_receipt_counters"

    name: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ReceiptCounter {self.name}={self.current_value}>"
