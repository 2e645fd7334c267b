"""
LedgerStore -- single source of truth for balances and transaction history.

Responsibility:
    Owns the balance snapshot and the append-only transaction table.  Every
    ledger writer reads the snapshot through ``lock_balances()`` and writes
    through ``append_transaction()``; no other code path touches balances.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Called by TransactionRecorder, ReversalService, DailyOpeningService,
    DailyClosingService, TransferService, VerificationService and
    BalanceAdminService.

Invariants enforced:
    - Atomic unit: the transaction INSERT and the snapshot UPDATE are
      flushed together; the caller's commit or rollback covers both.
    - Serialized writes: ``lock_balances()`` takes a row lock (SELECT ...
      FOR UPDATE on PostgreSQL, BEGIN IMMEDIATE on SQLite) and the
      snapshot's version column rejects any write computed from a stale
      read.
    - Snapshot consistency: the snapshot's balances are overwritten with
      the draft's ``balances_after`` in the same flush, and the row's
      sequence is allocated from the locked snapshot.
    - Non-negativity: a draft with a negative balance is refused before
      anything is flushed.

Failure modes:
    - OptimisticLockError when the snapshot version moved, or the lock
      could not be taken in time.  Retried by the orchestrator.
    - TransactionNotFoundError from ``find_transaction()``.
    - IntegrityError from the single-reversal unique index propagates to
      the caller (ReversalService maps it).

Audit relevance:
    Every append is logged as ``transaction_appended`` with the type,
    amount, sequence and resulting balances.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.requests import TransactionDraft
from treasury_kernel.domain.values import Balances
from treasury_kernel.exceptions import OptimisticLockError, TransactionNotFoundError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.balance import DEFAULT_LEDGER_KEY, BalanceSnapshot
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")

# SQLSTATEs for serialization failure, deadlock and lock timeout.
_LOCK_FAILURE_PGCODES = frozenset({"40001", "40P01", "55P03"})


def is_lock_failure(exc: OperationalError) -> bool:
    """Check whether a driver error means "another writer holds the ledger"."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _LOCK_FAILURE_PGCODES:
        return True
    return "database is locked" in str(exc.orig).lower()


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class LedgerStore(BaseService[TreasuryTransaction]):
    """
    Balance snapshot and transaction history.

    Contract:
        Flush-only.  ``lock_balances()`` must be the first ledger read of
        any write; the lock is held until the caller commits or rolls back.

    Guarantees:
        - ``get_balances()`` / ``lock_balances()`` never return None: a
          zeroed snapshot is created on first use.
        - ``append_transaction()`` either flushes both the row and the
          snapshot update, or raises with neither flushed.
    """

    ledger_key = DEFAULT_LEDGER_KEY

    # =========================================================================
    # Snapshot
    # =========================================================================

    def get_balances(self) -> BalanceSnapshot:
        """Current snapshot, without a lock.  Creates a zeroed one if missing."""
        return self._snapshot(lock=False)

    def lock_balances(self) -> BalanceSnapshot:
        """
        Current snapshot, row-locked for the rest of the database transaction.

        Raises:
            OptimisticLockError: The lock could not be acquired in time.
        """
        return self._snapshot(lock=True)

    def current_balances(self) -> Balances:
        """Current balances without locking or creating the snapshot.

        Used by read-only previews; an unused ledger reads as all zeros.
        """
        snapshot = self._select_snapshot(lock=False)
        return snapshot.balances if snapshot is not None else Balances.zero()

    def _select_snapshot(self, lock: bool) -> BalanceSnapshot | None:
        stmt = select(BalanceSnapshot).where(BalanceSnapshot.ledger_key == self.ledger_key)
        if lock:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        try:
            return self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if is_lock_failure(exc):
                raise OptimisticLockError("BalanceSnapshot", self.ledger_key) from exc
            raise

    def _snapshot(self, lock: bool) -> BalanceSnapshot:
        snapshot = self._select_snapshot(lock)
        if snapshot is not None:
            return snapshot

        # First use.  Another writer may be creating it at the same time;
        # the savepoint keeps the caller's work if we lose the race.
        savepoint = self.session.begin_nested()
        try:
            snapshot = BalanceSnapshot(
                ledger_key=self.ledger_key,
                registry_balance=0,
                safe_balance=0,
                bank_balance=0,
                mobile_money_balance=0,
                registry_float_amount=0,
                last_sequence=0,
                updated_at=self.clock.now(),
            )
            self.session.add(snapshot)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug("balance_snapshot_race_retry", extra={"ledger_key": self.ledger_key})
            savepoint.rollback()
            snapshot = self._select_snapshot(lock)
            if snapshot is None:
                raise
            return snapshot

        logger.info("balance_snapshot_created", extra={"ledger_key": self.ledger_key})
        return snapshot

    # =========================================================================
    # Writes
    # =========================================================================

    def append_transaction(
        self,
        draft: TransactionDraft,
        snapshot: BalanceSnapshot,
        actor_id: UUID,
    ) -> TreasuryTransaction:
        """
        Insert one transaction row and overwrite the snapshot balances.

        Preconditions:
            - ``snapshot`` was obtained from ``lock_balances()`` in the
              current database transaction.
            - ``draft.balances_after`` was computed from ``snapshot``.

        Postconditions:
            - The row's *_balance_after columns equal the snapshot balances.
            - The row's sequence is ``snapshot.last_sequence`` (incremented).

        Raises:
            InsufficientFundsError: ``draft.balances_after`` is negative.
            OptimisticLockError: The snapshot changed underneath us.
        """
        balances = draft.balances_after.require_non_negative()
        now = self.clock.now()
        sequence = snapshot.last_sequence + 1

        row = TreasuryTransaction(
            sequence=sequence,
            type=TransactionType(draft.transaction_type).value,
            direction=Direction(draft.direction).value,
            amount=draft.amount,
            source_location=(
                CashLocation(draft.source_location).value if draft.source_location else None
            ),
            destination_location=(
                CashLocation(draft.destination_location).value
                if draft.destination_location
                else None
            ),
            registry_balance_after=balances.registry,
            safe_balance_after=balances.safe,
            bank_balance_after=balances.bank,
            mobile_money_balance_after=balances.mobile_money,
            receipt_number=draft.receipt_number,
            is_reversal=draft.is_reversal,
            reversal_reason=draft.reversal_reason,
            reversed_by_id=actor_id if draft.is_reversal else None,
            reversed_at=now if draft.is_reversal else None,
            original_transaction_id=draft.original_transaction_id,
            recorded_by_id=actor_id,
            recorded_at=now,
            **draft.metadata.as_columns(),
        )
        self.session.add(row)

        snapshot.overwrite(balances)
        snapshot.last_sequence = sequence
        snapshot.updated_at = now
        snapshot.updated_by_id = actor_id

        self.flush()

        logger.info(
            "transaction_appended",
            extra={
                "transaction_id": str(row.id),
                "transaction_type": row.type,
                "direction": row.direction,
                "amount": row.amount,
                "sequence": sequence,
                "balances_after": balances.as_dict(),
            },
        )
        return row

    def set_float_amount(self, snapshot: BalanceSnapshot, float_amount: int, actor_id: UUID) -> None:
        """Record the float chosen by the last opening."""
        snapshot.registry_float_amount = float_amount
        snapshot.updated_at = self.clock.now()
        snapshot.updated_by_id = actor_id
        self.flush()

    def mark_verified(self, snapshot: BalanceSnapshot, actor_id: UUID) -> None:
        """Stamp the snapshot with the last physical safe count."""
        now = self.clock.now()
        snapshot.last_verified_at = now
        snapshot.last_verified_by_id = actor_id
        snapshot.updated_at = now
        snapshot.updated_by_id = actor_id
        self.flush()

    def flush(self) -> None:
        """Flush, translating lost races into OptimisticLockError."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "balance_snapshot_version_conflict",
                extra={"ledger_key": self.ledger_key},
            )
            raise OptimisticLockError("BalanceSnapshot", self.ledger_key) from exc
        except OperationalError as exc:
            if is_lock_failure(exc):
                raise OptimisticLockError("BalanceSnapshot", self.ledger_key) from exc
            raise

    # =========================================================================
    # Lookups
    # =========================================================================

    def find_transaction(self, transaction_id: UUID | str) -> TreasuryTransaction:
        """
        Load a transaction by id.

        Raises:
            TransactionNotFoundError: No row with this id.
        """
        try:
            key = _as_uuid(transaction_id)
        except ValueError as exc:
            raise TransactionNotFoundError(str(transaction_id)) from exc
        row = self.session.get(TreasuryTransaction, key)
        if row is None:
            raise TransactionNotFoundError(str(transaction_id))
        return row

    def find_reversal_of(self, transaction_id: UUID | str) -> TreasuryTransaction | None:
        """The reversal row of ``transaction_id``, if any."""
        return self.session.execute(
            select(TreasuryTransaction).where(
                TreasuryTransaction.original_transaction_id == _as_uuid(transaction_id),
                TreasuryTransaction.is_reversal.is_(True),
            )
        ).scalar_one_or_none()

    def find_corrections_of(self, transaction_id: UUID | str) -> list[TreasuryTransaction]:
        """Ordinary rows chained to ``transaction_id`` (corrections)."""
        return list(
            self.session.execute(
                select(TreasuryTransaction)
                .where(
                    TreasuryTransaction.original_transaction_id == _as_uuid(transaction_id),
                    TreasuryTransaction.is_reversal.is_(False),
                )
                .order_by(TreasuryTransaction.sequence)
            ).scalars()
        )

    def latest_transaction(self) -> TreasuryTransaction | None:
        """The most recent row (highest sequence), or None on an empty ledger."""
        return self.session.execute(
            select(TreasuryTransaction).order_by(TreasuryTransaction.sequence.desc()).limit(1)
        ).scalar_one_or_none()

    def transaction_count(self) -> int:
        return self.session.execute(select(func.count(TreasuryTransaction.id))).scalar_one()
