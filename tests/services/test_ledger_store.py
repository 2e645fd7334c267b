"""
Tests for LedgerStore: the snapshot and the append-only history.

The snapshot must always equal the balances recorded on the latest row,
and sequence numbers must be dense and ordered.
"""

import pytest
from sqlalchemy import text

from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.requests import TransactionDraft, TransactionMetadata
from treasury_kernel.domain.values import Balances
from treasury_kernel.exceptions import (
    InsufficientFundsError,
    OptimisticLockError,
    TransactionNotFoundError,
)


def _draft(amount: int, balances_after: Balances) -> TransactionDraft:
    return TransactionDraft(
        transaction_type=TransactionType.STUDENT_PAYMENT,
        direction=Direction.IN,
        amount=amount,
        source_location=None,
        destination_location=CashLocation.SAFE,
        balances_after=balances_after,
        metadata=TransactionMetadata(description="test"),
    )


class TestSnapshot:

    def test_created_lazily_once(self, ledger_store):
        first = ledger_store.get_balances()
        second = ledger_store.lock_balances()

        assert first.id == second.id
        assert first.balances == Balances.zero()
        assert first.last_sequence == 0

    def test_current_balances_does_not_create(self, ledger_store, session):
        from treasury_kernel.models.balance import BalanceSnapshot

        assert ledger_store.current_balances() == Balances.zero()
        assert session.query(BalanceSnapshot).count() == 0

    def test_creation_logged(self, ledger_store, captured_logs):
        ledger_store.get_balances()
        assert any(r["message"] == "balance_snapshot_created" for r in captured_logs())


class TestAppendTransaction:

    def test_sequence_and_snapshot_follow_rows(self, ledger_store, test_actor_id):
        snapshot = ledger_store.lock_balances()
        first = ledger_store.append_transaction(_draft(100, Balances(safe=100)), snapshot, test_actor_id)
        second = ledger_store.append_transaction(_draft(50, Balances(safe=150)), snapshot, test_actor_id)

        assert (first.sequence, second.sequence) == (1, 2)
        assert snapshot.last_sequence == 2
        assert snapshot.balances == Balances(safe=150)
        assert ledger_store.latest_transaction().id == second.id
        assert ledger_store.transaction_count() == 2

    def test_negative_draft_refused_before_flush(self, ledger_store, test_actor_id):
        snapshot = ledger_store.lock_balances()

        with pytest.raises(InsufficientFundsError):
            ledger_store.append_transaction(_draft(100, Balances(safe=-100)), snapshot, test_actor_id)

        assert ledger_store.transaction_count() == 0
        assert snapshot.last_sequence == 0

    def test_stale_snapshot_raises_optimistic_lock(self, ledger_store, session, test_actor_id):
        snapshot = ledger_store.lock_balances()
        session.execute(
            text("UPDATE treasury_balance_snapshots SET version = version + 1 WHERE id = :id"),
            {"id": str(snapshot.id)},
        )

        with pytest.raises(OptimisticLockError) as exc_info:
            ledger_store.append_transaction(_draft(100, Balances(safe=100)), snapshot, test_actor_id)
        assert exc_info.value.entity_type == "BalanceSnapshot"


class TestLookups:

    def test_find_transaction(self, recorder, ledger_store, test_actor_id):
        row = recorder.record(TransactionType.STUDENT_PAYMENT, Direction.IN, 100, test_actor_id).transaction

        assert ledger_store.find_transaction(row.id) is row
        assert ledger_store.find_transaction(str(row.id)) is row

    def test_find_missing(self, ledger_store):
        with pytest.raises(TransactionNotFoundError):
            ledger_store.find_transaction("00000000-0000-0000-0000-000000000000")

    def test_latest_on_empty_ledger(self, ledger_store):
        assert ledger_store.latest_transaction() is None

    def test_find_corrections_excludes_reversal(self, recorder, reversal_service, ledger_store, test_actor_id):
        from treasury_kernel.domain.requests import CorrectionMethod, ReversalWithCorrection

        row = recorder.record(TransactionType.STUDENT_PAYMENT, Direction.IN, 100, test_actor_id).transaction
        result = reversal_service.reverse(
            row.id,
            ReversalWithCorrection("Montant errone saisi", 90, CorrectionMethod.CASH),
            test_actor_id,
        )

        assert ledger_store.find_reversal_of(row.id).id == result.reversal.id
        assert [c.id for c in ledger_store.find_corrections_of(row.id)] == [result.correction.id]
