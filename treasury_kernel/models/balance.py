"""
Module: treasury_kernel.models.balance
Responsibility: ORM persistence for the single current-balance snapshot --
    the only shared mutable state of the treasury ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.  MUST NOT import from services/, selectors/,
    or outer layers.

Invariants enforced:
    - One row per ledger (UNIQUE ledger_key).
    - Every balance >= 0 (CHECK constraints).
    - version_id_col: every UPDATE is conditioned on the version read, so
      a write based on a stale read fails with StaleDataError instead of
      silently overwriting a concurrent update.

Failure modes:
    - IntegrityError on a second row with the same ledger_key (lazy-creation
      race; handled by LedgerStore with a savepoint retry).
    - IntegrityError on a negative balance (defence behind Balances checks).
    - StaleDataError on a version mismatch (translated to OptimisticLockError).

Audit relevance:
    The snapshot exists so that reads do not replay history.  It must always
    equal the *_balance_after columns of the transaction with the highest
    sequence (last_sequence); the only writer is
    LedgerStore.append_transaction().
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.domain.values import Balances

DEFAULT_LEDGER_KEY = "main"


class BalanceSnapshot(Base):
    """
    Current balance of every cash location.

    Contract:
        Created lazily, zeroed, on first use.  Mutated by every transaction
        write.  Never deleted.
    """

    __tablename__ = "treasury_balance_snapshots"

    __table_args__ = (
        CheckConstraint("registry_balance >= 0", name="ck_snapshot_registry_non_negative"),
        CheckConstraint("safe_balance >= 0", name="ck_snapshot_safe_non_negative"),
        CheckConstraint("bank_balance >= 0", name="ck_snapshot_bank_non_negative"),
        CheckConstraint("mobile_money_balance >= 0", name="ck_snapshot_mobile_money_non_negative"),
        CheckConstraint("registry_float_amount >= 0", name="ck_snapshot_float_non_negative"),
    )

    ledger_key: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        default=DEFAULT_LEDGER_KEY,
    )

    registry_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    safe_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bank_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mobile_money_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Sequence of the last transaction appended (allocated under the row lock)
    last_sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Standard daily float target (set by the last opening)
    registry_float_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    last_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_verified_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<BalanceSnapshot registry={self.registry_balance} safe={self.safe_balance} "
            f"bank={self.bank_balance} mobile_money={self.mobile_money_balance} v{self.version}>"
        )

    @property
    def balances(self) -> Balances:
        """Current balances as an immutable value.

        Postconditions: Each field equals the matching *_balance column.
        """
        return Balances(
            registry=self.registry_balance,
            safe=self.safe_balance,
            bank=self.bank_balance,
            mobile_money=self.mobile_money_balance,
        )

    def overwrite(self, balances: Balances) -> None:
        """Replace all four balances. Only LedgerStore calls this."""
        self.registry_balance = balances.registry
        self.safe_balance = balances.safe
        self.bank_balance = balances.bank
        self.mobile_money_balance = balances.mobile_money
