"""
treasury_services.treasury_orchestrator -- External entry point of the treasury.

Responsibility:
    One method per treasury operation.  Each call checks the
    authorization gate, opens a unit of work, builds the kernel services
    with the configured values, commits on success and rolls back on any
    exception.  Snapshot conflicts are retried a bounded number of times.

Architecture position:
    Services -- orchestration over the kernel.  Owns the transaction
    boundary; kernel services only flush.  Receives its configuration as a
    TreasuryConfig and never reads files itself.

Invariants enforced:
    - Authorization first: NotAuthorizedError is raised before any read.
    - Atomic unit: every row written by one call (reversal + correction,
      opening adjustment + float transfer, closing adjustment + sweep)
      commits together or not at all.
    - Business-rule errors are never retried.
    - OptimisticLockError never reaches the caller; after ``max_retries``
      attempts the caller gets LedgerBusyError.

Failure modes:
    - Any TreasuryKernelError raised by the kernel, unchanged.
    - NotAuthorizedError, DiscrepancyApprovalRequiredError, LedgerBusyError.

Audit relevance:
    Every call runs inside ``LogContext.bind`` with a fresh correlation id,
    the actor id and the operation name, so every kernel log line of one
    call can be joined.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from treasury_config import TreasuryConfig
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.effects import CashLocation, Direction, TransactionType
from treasury_kernel.domain.requests import (
    BankTransferKind,
    ReversalRequest,
    SafeRegistryDirection,
    TransactionMetadata,
)
from treasury_kernel.domain.values import Balances
from treasury_kernel.exceptions import (
    DiscrepancyApprovalRequiredError,
    LedgerBusyError,
    NotAuthorizedError,
    OptimisticLockError,
    TransactionNotFoundError,
    TreasuryKernelError,
)
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.selectors.report_selector import BalanceOverview, DailyReport, ReportSelector
from treasury_kernel.selectors.transaction_selector import (
    ConsistencyReport,
    ReversalHistory,
    TransactionFilter,
    TransactionPage,
    TransactionSelector,
)
from treasury_kernel.services.balance_admin_service import AdjustmentResult, BalanceAdminService
from treasury_kernel.services.daily_closing_service import ClosingResult, DailyClosingService
from treasury_kernel.services.daily_opening_service import (
    DailyOpeningService,
    DiscrepancySeverity,
    OpeningPreview,
    OpeningResult,
)
from treasury_kernel.services.ledger_store import is_lock_failure
from treasury_kernel.services.reversal_service import ReversalResult, ReversalService
from treasury_kernel.services.transaction_recorder import RecordResult, TransactionRecorder
from treasury_kernel.services.transfer_service import TransferResult, TransferService
from treasury_kernel.services.verification_service import VerificationResult, VerificationService
from treasury_services.authority import AllowAllAuthority, TreasuryAction, TreasuryAuthority

logger = get_logger("services.orchestrator")

T = TypeVar("T")


class TreasuryOrchestrator:
    """
    Facade over the treasury kernel.

    Contract:
        Receives a session factory, the configuration, the authority and the
        clock via constructor injection.  Each public method is one unit of
        work on a fresh session.

    Usage:
        orchestrator = TreasuryOrchestrator(get_session_factory(), get_active_config())
        result = orchestrator.record_transaction(
            TransactionType.STUDENT_PAYMENT, Direction.IN, 50000, actor_id,
        )
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: TreasuryConfig | None = None,
        authority: TreasuryAuthority | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TreasuryConfig.with_defaults()
        self._authority: TreasuryAuthority = authority or AllowAllAuthority()
        self._clock = clock or SystemClock()
        self._sleep = sleep

    @property
    def config(self) -> TreasuryConfig:
        return self._config

    # ------------------------------------------------------------------
    # Gate and unit of work
    # ------------------------------------------------------------------

    def _authorize(self, actor_id: UUID, action: TreasuryAction) -> None:
        if not self._authority.is_authorized(actor_id, action):
            logger.warning(
                "treasury_action_denied",
                extra={"actor_id": str(actor_id), "action": action.value},
            )
            raise NotAuthorizedError(str(actor_id), action.value)

    def _run(
        self,
        operation: str,
        actor_id: UUID,
        action: TreasuryAction,
        work: Callable[[Session], T],
    ) -> T:
        """Authorize, then run ``work`` in a unit of work with bounded retries."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            operation=operation,
        ):
            self._authorize(actor_id, action)

            max_attempts = self._config.max_retries
            for attempt in range(1, max_attempts + 1):
                session = self._session_factory()
                try:
                    result = work(session)
                    session.commit()
                    return result
                except OptimisticLockError as exc:
                    session.rollback()
                    self._before_retry(operation, attempt, max_attempts, exc)
                except OperationalError as exc:
                    session.rollback()
                    if not is_lock_failure(exc):
                        raise
                    self._before_retry(operation, attempt, max_attempts, exc)
                except TreasuryKernelError as exc:
                    session.rollback()
                    logger.info(
                        "treasury_operation_rejected",
                        extra={"error_code": exc.code, "error": str(exc)},
                    )
                    raise
                except Exception:
                    session.rollback()
                    logger.exception("treasury_operation_failed")
                    raise
                finally:
                    session.close()

            logger.error(
                "ledger_busy",
                extra={"attempts": max_attempts},
            )
            raise LedgerBusyError(operation, max_attempts)

    def _before_retry(
        self,
        operation: str,
        attempt: int,
        max_attempts: int,
        exc: Exception,
    ) -> None:
        logger.warning(
            "ledger_conflict_retry",
            extra={
                "attempt": attempt,
                "max_attempts": max_attempts,
                "conflict": type(exc).__name__,
            },
        )
        if attempt < max_attempts:
            self._sleep(self._config.retry_backoff_seconds * attempt)

    # ------------------------------------------------------------------
    # Kernel wiring
    # ------------------------------------------------------------------

    def _recorder(self, session: Session) -> TransactionRecorder:
        return TransactionRecorder(session, self._clock, receipt_prefix=self._config.receipt_prefix)

    def _reversals(self, session: Session) -> ReversalService:
        return ReversalService(
            session,
            self._clock,
            reason_min_length=self._config.reason_min_length,
            receipt_prefix=self._config.receipt_prefix,
        )

    def _opening(self, session: Session) -> DailyOpeningService:
        return DailyOpeningService(
            session,
            self._clock,
            default_float_amount=self._config.default_float_amount,
            discrepancy_alert_threshold=self._config.discrepancy_alert_threshold,
        )

    def _transfers(self, session: Session) -> TransferService:
        return TransferService(
            session,
            self._clock,
            notes_min_length=self._config.transfer_notes_min_length,
        )

    # ------------------------------------------------------------------
    # Ledger writes
    # ------------------------------------------------------------------

    def record_transaction(
        self,
        transaction_type: TransactionType | str,
        direction: Direction | str,
        amount: int,
        actor_id: UUID,
        metadata: TransactionMetadata | None = None,
        location: CashLocation | None = None,
    ) -> RecordResult:
        return self._run(
            "record_transaction",
            actor_id,
            TreasuryAction.RECORD_TRANSACTION,
            lambda session: self._recorder(session).record(
                transaction_type, direction, amount, actor_id, metadata, location
            ),
        )

    def reverse_transaction(
        self,
        transaction_id: UUID | str,
        request: ReversalRequest,
        actor_id: UUID,
    ) -> ReversalResult:
        return self._run(
            "reverse_transaction",
            actor_id,
            TreasuryAction.REVERSE_TRANSACTION,
            lambda session: self._reversals(session).reverse(transaction_id, request, actor_id),
        )

    def open_day(self, counted_safe_balance: int, actor_id: UUID) -> OpeningPreview:
        """Phase 1 of the opening.  Writes nothing."""
        return self._run(
            "open_day",
            actor_id,
            TreasuryAction.OPEN_DAY,
            lambda session: self._opening(session).preview_opening(counted_safe_balance),
        )

    def confirm_opening(
        self,
        preview: OpeningPreview,
        float_amount: int | None,
        actor_id: UUID,
        notes: str | None = None,
        approver_id: UUID | None = None,
    ) -> OpeningResult:
        """
        Phase 2 of the opening.

        ``float_amount`` None uses the configured default float.  When
        approval is required and the preview's discrepancy is major,
        ``approver_id`` must hold APPROVE_DISCREPANCY.
        """
        amount = self._config.default_float_amount if float_amount is None else float_amount

        def work(session: Session) -> OpeningResult:
            self._check_discrepancy_approval(preview, approver_id)
            return self._opening(session).confirm_opening(preview, amount, actor_id, notes)

        return self._run("confirm_opening", actor_id, TreasuryAction.OPEN_DAY, work)

    def _check_discrepancy_approval(
        self,
        preview: OpeningPreview,
        approver_id: UUID | None,
    ) -> None:
        if not self._config.require_discrepancy_approval:
            return
        if preview.severity is not DiscrepancySeverity.MAJOR:
            return
        if approver_id is not None and self._authority.is_authorized(
            approver_id, TreasuryAction.APPROVE_DISCREPANCY
        ):
            logger.info(
                "opening_discrepancy_approved",
                extra={"approver_id": str(approver_id), "discrepancy": preview.discrepancy},
            )
            return
        logger.warning(
            "discrepancy_approval_required",
            extra={
                "discrepancy": preview.discrepancy,
                "threshold": self._config.discrepancy_alert_threshold,
                "approver_id": str(approver_id) if approver_id else None,
            },
        )
        raise DiscrepancyApprovalRequiredError(
            preview.discrepancy, self._config.discrepancy_alert_threshold
        )

    def transfer_safe_registry(
        self,
        direction: SafeRegistryDirection | str,
        amount: int,
        notes: str | None,
        actor_id: UUID,
    ) -> TransferResult:
        return self._run(
            "transfer_safe_registry",
            actor_id,
            TreasuryAction.TRANSFER_SAFE_REGISTRY,
            lambda session: self._transfers(session).transfer_safe_registry(
                direction, amount, notes, actor_id
            ),
        )

    def transfer_safe_bank(
        self,
        kind: BankTransferKind | str,
        amount: int,
        actor_id: UUID,
        bank_name: str | None = None,
        bank_reference: str | None = None,
        carried_by: str | None = None,
        notes: str | None = None,
    ) -> TransferResult:
        return self._run(
            "transfer_safe_bank",
            actor_id,
            TreasuryAction.TRANSFER_BANK,
            lambda session: self._transfers(session).transfer_safe_bank(
                kind,
                amount,
                actor_id,
                bank_name=bank_name,
                bank_reference=bank_reference,
                carried_by=carried_by,
                notes=notes,
            ),
        )

    def close_day(
        self,
        counted_registry_balance: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ClosingResult:
        return self._run(
            "close_day",
            actor_id,
            TreasuryAction.CLOSE_DAY,
            lambda session: DailyClosingService(session, self._clock).close_day(
                counted_registry_balance, actor_id, notes
            ),
        )

    def verify_safe(
        self,
        counted_balance: int,
        actor_id: UUID,
        explanation: str | None = None,
    ) -> VerificationResult:
        return self._run(
            "verify_safe",
            actor_id,
            TreasuryAction.VERIFY_SAFE,
            lambda session: VerificationService(session, self._clock).verify_safe(
                counted_balance, actor_id, explanation
            ),
        )

    def initialize_balances(
        self,
        balances: Balances,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentResult:
        return self._run(
            "initialize_balances",
            actor_id,
            TreasuryAction.ADJUST_BALANCE,
            lambda session: self._admin(session).initialize_balances(balances, actor_id, notes),
        )

    def adjust_balance(
        self,
        location: CashLocation | str,
        new_balance: int,
        reason: str,
        actor_id: UUID,
    ) -> AdjustmentResult:
        return self._run(
            "adjust_balance",
            actor_id,
            TreasuryAction.ADJUST_BALANCE,
            lambda session: self._admin(session).adjust_balance(
                location, new_balance, reason, actor_id
            ),
        )

    def _admin(self, session: Session) -> BalanceAdminService:
        return BalanceAdminService(
            session, self._clock, reason_min_length=self._config.reason_min_length
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_transactions(
        self,
        actor_id: UUID,
        criteria: TransactionFilter | None = None,
    ) -> TransactionPage:
        return self._run(
            "list_transactions",
            actor_id,
            TreasuryAction.VIEW_TRANSACTIONS,
            lambda session: TransactionSelector(session).list_transactions(criteria),
        )

    def reversal_history(self, transaction_id: UUID, actor_id: UUID) -> ReversalHistory:
        def work(session: Session) -> ReversalHistory:
            history = TransactionSelector(session).reversal_history(transaction_id)
            if history is None:
                raise TransactionNotFoundError(str(transaction_id))
            return history

        return self._run("reversal_history", actor_id, TreasuryAction.VIEW_REVERSALS, work)

    def balance_overview(self, actor_id: UUID) -> BalanceOverview:
        return self._run(
            "balance_overview",
            actor_id,
            TreasuryAction.VIEW_REPORTS,
            lambda session: ReportSelector(session, self._clock).balance_overview(
                self._config.safe_threshold_min, self._config.safe_threshold_max
            ),
        )

    def daily_report(self, day: date, actor_id: UUID) -> DailyReport:
        return self._run(
            "daily_report",
            actor_id,
            TreasuryAction.VIEW_REPORTS,
            lambda session: ReportSelector(session, self._clock).daily_report(day),
        )

    def verify_consistency(self, actor_id: UUID) -> ConsistencyReport:
        return self._run(
            "verify_consistency",
            actor_id,
            TreasuryAction.VIEW_REPORTS,
            lambda session: TransactionSelector(session).verify_snapshot_consistency(),
        )
