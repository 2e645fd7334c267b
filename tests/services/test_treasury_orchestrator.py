"""
Tests for TreasuryOrchestrator.

The orchestrator owns the transaction boundary: these tests use sessions
that really commit, so every assertion about persisted state goes back
through a fresh unit of work.
"""

from uuid import uuid4

import pytest

from treasury_config import TreasuryConfig
from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.requests import (
    CorrectionMethod,
    PlainReversal,
    ReversalWithCorrection,
)
from treasury_kernel.domain.values import Balances
from treasury_kernel.exceptions import (
    DiscrepancyApprovalRequiredError,
    InsufficientFundsError,
    InvalidChoiceError,
    LedgerBusyError,
    NotAuthorizedError,
    OptimisticLockError,
    TransactionNotFoundError,
)
from treasury_kernel.selectors.transaction_selector import TransactionFilter
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.receipt_service import ReceiptService
from treasury_services import RoleBasedAuthority, TreasuryOrchestrator

REASON = "Erreur de saisie constatee"

DIRECTOR = uuid4()
ACCOUNTANT = uuid4()
SECRETARY = uuid4()
ROLES = {DIRECTOR: ["director"], ACCOUNTANT: ["accountant"], SECRETARY: ["secretary"]}


@pytest.fixture
def orchestrator(committed_session_factory, deterministic_clock):
    return TreasuryOrchestrator(
        committed_session_factory,
        clock=deterministic_clock,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def role_orchestrator(committed_session_factory, deterministic_clock):
    def _build(**config_values):
        return TreasuryOrchestrator(
            committed_session_factory,
            config=TreasuryConfig(**config_values),
            authority=RoleBasedAuthority(lambda actor: ROLES.get(actor, ())),
            clock=deterministic_clock,
            sleep=lambda seconds: None,
        )

    return _build


class TestUnitOfWork:

    def test_recording_is_committed(self, orchestrator, test_actor_id):
        result = orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 50_000, test_actor_id
        )

        assert result.transaction.receipt_number == "CAISSE-20240101-REC-0001"
        overview = orchestrator.balance_overview(test_actor_id)
        assert overview.balances == Balances(safe=50_000)
        page = orchestrator.list_transactions(test_actor_id)
        assert [item.id for item in page.items] == [result.transaction.id]

    def test_rejection_is_rolled_back_and_logged(self, orchestrator, test_actor_id, captured_logs):
        orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 10_000, test_actor_id
        )

        with pytest.raises(InsufficientFundsError):
            orchestrator.record_transaction(
                TransactionType.EXPENSE_PAYMENT, Direction.OUT, 15_000, test_actor_id
            )

        assert orchestrator.list_transactions(test_actor_id).total == 1
        rejected = [r for r in captured_logs() if r["message"] == "treasury_operation_rejected"]
        assert rejected[0]["error_code"] == "INSUFFICIENT_FUNDS"
        assert rejected[0]["operation"] == "record_transaction"

    def test_unknown_choice_logged_as_rejection(self, orchestrator, test_actor_id, captured_logs):
        with pytest.raises(InvalidChoiceError):
            orchestrator.transfer_safe_registry("sideways", 1_000, "Appoint de monnaie", test_actor_id)

        messages = [r["message"] for r in captured_logs()]
        assert "treasury_operation_rejected" in messages
        assert "treasury_operation_failed" not in messages

    def test_failure_after_first_row_leaves_nothing(
        self, orchestrator, test_actor_id, monkeypatch, captured_logs
    ):
        original = orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 50_000, test_actor_id
        ).transaction

        def _broken(self, day, direction):
            raise RuntimeError("receipt printer offline")

        monkeypatch.setattr(ReceiptService, "next_receipt_number", _broken)
        with pytest.raises(RuntimeError):
            orchestrator.reverse_transaction(
                original.id,
                ReversalWithCorrection(REASON, 45_000, CorrectionMethod.CASH),
                test_actor_id,
            )
        monkeypatch.undo()

        history = orchestrator.reversal_history(original.id, test_actor_id)
        assert history.reversal is None
        assert orchestrator.list_transactions(test_actor_id).total == 1
        assert any(r["message"] == "treasury_operation_failed" for r in captured_logs())

        result = orchestrator.reverse_transaction(original.id, PlainReversal(REASON), test_actor_id)
        assert result.balances == Balances()

    def test_log_context_is_bound(self, orchestrator, test_actor_id, captured_logs):
        orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 1_000, test_actor_id
        )

        (record,) = [r for r in captured_logs() if r["message"] == "transaction_recorded"]
        assert record["operation"] == "record_transaction"
        assert record["actor_id"] == str(test_actor_id)
        assert record["correlation_id"]

    def test_unknown_reversal_history(self, orchestrator, test_actor_id):
        with pytest.raises(TransactionNotFoundError):
            orchestrator.reversal_history(uuid4(), test_actor_id)


class TestRetries:

    def test_conflicts_are_retried(self, committed_session_factory, deterministic_clock, test_actor_id, monkeypatch, captured_logs):
        sleeps = []
        orchestrator = TreasuryOrchestrator(
            committed_session_factory, clock=deterministic_clock, sleep=sleeps.append
        )
        real_lock = LedgerStore.lock_balances
        failures = {"left": 2}

        def _flaky(self):
            if failures["left"]:
                failures["left"] -= 1
                raise OptimisticLockError("BalanceSnapshot", "main")
            return real_lock(self)

        monkeypatch.setattr(LedgerStore, "lock_balances", _flaky)

        result = orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 10_000, test_actor_id
        )

        assert result.balances == Balances(safe=10_000)
        assert sleeps == pytest.approx([0.05, 0.10])
        retries = [r for r in captured_logs() if r["message"] == "ledger_conflict_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_gives_up_after_max_retries(self, committed_session_factory, deterministic_clock, test_actor_id, monkeypatch):
        sleeps = []
        orchestrator = TreasuryOrchestrator(
            committed_session_factory,
            config=TreasuryConfig(max_retries=3),
            clock=deterministic_clock,
            sleep=sleeps.append,
        )

        def _always_busy(self):
            raise OptimisticLockError("BalanceSnapshot", "main")

        monkeypatch.setattr(LedgerStore, "lock_balances", _always_busy)

        with pytest.raises(LedgerBusyError) as exc_info:
            orchestrator.record_transaction(
                TransactionType.STUDENT_PAYMENT, Direction.IN, 10_000, test_actor_id
            )

        assert exc_info.value.attempts == 3
        assert exc_info.value.operation == "record_transaction"
        assert len(sleeps) == 2


class TestAuthorization:

    def test_denied_before_any_read(self, deterministic_clock):
        def _no_session():
            raise AssertionError("a denied request must not open a session")

        orchestrator = TreasuryOrchestrator(
            _no_session,
            authority=RoleBasedAuthority(lambda actor: ROLES.get(actor, ())),
            clock=deterministic_clock,
        )

        with pytest.raises(NotAuthorizedError) as exc_info:
            orchestrator.reverse_transaction(uuid4(), PlainReversal(REASON), SECRETARY)
        assert exc_info.value.action == "reverse_transaction"

    def test_unknown_actor_denied(self, role_orchestrator):
        orchestrator = role_orchestrator()
        with pytest.raises(NotAuthorizedError):
            orchestrator.balance_overview(uuid4())

    def test_roles(self, role_orchestrator):
        orchestrator = role_orchestrator()
        orchestrator.initialize_balances(Balances(safe=100_000), DIRECTOR)

        orchestrator.record_transaction(TransactionType.STUDENT_PAYMENT, Direction.IN, 5_000, SECRETARY)
        assert orchestrator.list_transactions(SECRETARY).total == 2

        with pytest.raises(NotAuthorizedError):
            orchestrator.balance_overview(SECRETARY)
        with pytest.raises(NotAuthorizedError):
            orchestrator.adjust_balance(CashLocation.SAFE, 0, "Remise a zero du coffre", ACCOUNTANT)
        with pytest.raises(NotAuthorizedError):
            orchestrator.transfer_safe_registry("safe_to_registry", 1_000, "Appoint", ACCOUNTANT)

        result = orchestrator.transfer_safe_bank("deposit", 10_000, ACCOUNTANT, bank_name="BICIS")
        assert result.balances == Balances(safe=95_000, bank=10_000)


class TestOpeningApproval:

    @pytest.fixture
    def strict(self, role_orchestrator):
        orchestrator = role_orchestrator(require_discrepancy_approval=True)
        orchestrator.initialize_balances(Balances(safe=1_000_000), DIRECTOR)
        return orchestrator

    def test_major_discrepancy_needs_approver(self, strict, captured_logs):
        preview = strict.open_day(900_000, ACCOUNTANT)

        with pytest.raises(DiscrepancyApprovalRequiredError) as exc_info:
            strict.confirm_opening(preview, 20_000, ACCOUNTANT)

        assert exc_info.value.discrepancy == -100_000
        assert strict.list_transactions(ACCOUNTANT).total == 1
        assert any(r["message"] == "discrepancy_approval_required" for r in captured_logs())

    def test_approver_must_hold_permission(self, strict):
        preview = strict.open_day(900_000, ACCOUNTANT)

        with pytest.raises(DiscrepancyApprovalRequiredError):
            strict.confirm_opening(preview, 20_000, ACCOUNTANT, approver_id=SECRETARY)

    def test_director_approves(self, strict):
        preview = strict.open_day(900_000, ACCOUNTANT)

        result = strict.confirm_opening(preview, 20_000, ACCOUNTANT, approver_id=DIRECTOR)

        assert result.adjustment.amount == 100_000
        assert result.balances == Balances(safe=880_000, registry=20_000)

    def test_minor_discrepancy_needs_no_approval(self, strict):
        preview = strict.open_day(990_000, ACCOUNTANT)

        result = strict.confirm_opening(preview, 20_000, ACCOUNTANT)

        assert result.balances == Balances(safe=970_000, registry=20_000)

    def test_default_float(self, role_orchestrator):
        orchestrator = role_orchestrator(default_float_amount=30_000)
        orchestrator.initialize_balances(Balances(safe=100_000), DIRECTOR)
        preview = orchestrator.open_day(100_000, ACCOUNTANT)

        result = orchestrator.confirm_opening(preview, None, ACCOUNTANT)

        assert preview.suggested_float_amount == 30_000
        assert result.float_amount == 30_000


class TestFullDay:

    def test_open_trade_verify_close(self, orchestrator, deterministic_clock, test_actor_id):
        orchestrator.initialize_balances(Balances(safe=200_000, bank=1_000_000), test_actor_id)
        preview = orchestrator.open_day(200_000, test_actor_id)
        orchestrator.confirm_opening(preview, 20_000, test_actor_id)
        orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 75_000, test_actor_id
        )
        orchestrator.transfer_safe_bank("deposit", 100_000, test_actor_id, bank_reference="BRD-1")
        orchestrator.verify_safe(155_000, test_actor_id)
        closing = orchestrator.close_day(20_000, test_actor_id)

        assert closing.balances == Balances(safe=175_000, bank=1_100_000)
        assert orchestrator.verify_consistency(test_actor_id).is_consistent

        report = orchestrator.daily_report(deterministic_clock.today(), test_actor_id)
        assert report.closing_safe_balance == 175_000
        assert len(report.bank_transfers) == 1
        assert report.verification is not None

        page = orchestrator.list_transactions(
            test_actor_id, TransactionFilter(transaction_type=TransactionType.SAFE_TO_REGISTRY)
        )
        assert page.total == 1
