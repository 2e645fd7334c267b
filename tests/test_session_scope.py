"""Tests for session_scope(): commit on success, rollback on error."""

import pytest

from treasury_kernel.db.engine import session_scope
from treasury_kernel.domain.clock import DeterministicClock
from treasury_kernel.domain.effects import Direction, TransactionType
from treasury_kernel.exceptions import InsufficientFundsError
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.transaction_recorder import TransactionRecorder


@pytest.fixture
def scoped_db(committed_session_factory):
    """Empty tables around a test whose sessions really commit."""
    yield


def _count() -> int:
    with session_scope() as session:
        return LedgerStore(session).transaction_count()


class TestSessionScope:

    def test_commits_on_normal_exit(self, scoped_db, test_actor_id):
        with session_scope() as session:
            TransactionRecorder(session, DeterministicClock()).record(
                TransactionType.STUDENT_PAYMENT, Direction.IN, 50_000, test_actor_id
            )

        assert _count() == 1

    def test_rolls_back_and_reraises(self, scoped_db, test_actor_id, captured_logs):
        with pytest.raises(InsufficientFundsError):
            with session_scope() as session:
                recorder = TransactionRecorder(session, DeterministicClock())
                recorder.record(TransactionType.STUDENT_PAYMENT, Direction.IN, 50_000, test_actor_id)
                recorder.record(TransactionType.EXPENSE_PAYMENT, Direction.OUT, 80_000, test_actor_id)

        assert _count() == 0
        messages = [r["message"] for r in captured_logs()]
        assert "transaction_rolled_back" in messages

    def test_session_closed_after_exit(self, scoped_db):
        with session_scope() as session:
            LedgerStore(session).current_balances()

        assert not session.in_transaction()
