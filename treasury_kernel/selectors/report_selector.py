"""
Module: treasury_kernel.selectors.report_selector
Responsibility: Read models for the treasury dashboard and the daily
    report: balances with the safe status, today's totals, and one day's
    opening/closing safe balances, totals by type, bank transfers and
    safe verification.
Architecture position: Kernel > Selectors.  Read-only.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.effects import Direction
from treasury_kernel.domain.values import Balances
from treasury_kernel.models.balance import DEFAULT_LEDGER_KEY, BalanceSnapshot
from treasury_kernel.models.bank_transfer import BankTransfer
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.models.verification import DailyVerification, VerificationStatus
from treasury_kernel.selectors.base import BaseSelector
from treasury_kernel.selectors.transaction_selector import day_bounds

DEFAULT_SAFE_THRESHOLD_MIN = 5_000_000
DEFAULT_SAFE_THRESHOLD_MAX = 20_000_000


class SafeStatus(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    OPTIMAL = "optimal"
    EXCESS = "excess"


def classify_safe_status(safe_balance: int, threshold_min: int, threshold_max: int) -> SafeStatus:
    """critical below min, warning below twice min, excess above max, else optimal."""
    if safe_balance < threshold_min:
        return SafeStatus.CRITICAL
    if safe_balance < threshold_min * 2:
        return SafeStatus.WARNING
    if safe_balance > threshold_max:
        return SafeStatus.EXCESS
    return SafeStatus.OPTIMAL


@dataclass(frozen=True)
class VerificationDTO:
    id: UUID
    verification_date: date
    expected_balance: int
    counted_balance: int
    discrepancy: int
    status: VerificationStatus
    explanation: str | None
    adjustment_transaction_id: UUID | None
    verified_by_id: UUID


@dataclass(frozen=True)
class BankTransferDTO:
    id: UUID
    kind: str
    amount: int
    transaction_id: UUID
    bank_name: str | None
    bank_reference: str | None
    carried_by: str | None
    transfer_date: datetime
    safe_balance_before: int
    safe_balance_after: int
    bank_balance_before: int
    bank_balance_after: int


@dataclass(frozen=True)
class DaySummary:
    total_in: int
    total_out: int
    transaction_count: int

    @property
    def net(self) -> int:
        return self.total_in - self.total_out


@dataclass(frozen=True)
class BalanceOverview:
    balances: Balances
    registry_float_amount: int
    safe_status: SafeStatus
    safe_threshold_min: int
    safe_threshold_max: int
    today: DaySummary
    today_verification: VerificationDTO | None
    last_verified_at: datetime | None
    last_verified_by_id: UUID | None
    updated_at: datetime | None

    @property
    def total_liquid_assets(self) -> int:
        return self.balances.total_liquid_assets


@dataclass(frozen=True)
class DailyReport:
    day: date
    opening_safe_balance: int
    closing_safe_balance: int
    summary: DaySummary
    totals_by_type: dict[str, int] = field(default_factory=dict)
    bank_transfers: list[BankTransferDTO] = field(default_factory=list)
    verification: VerificationDTO | None = None


def _verification_dto(row: DailyVerification) -> VerificationDTO:
    return VerificationDTO(
        id=row.id,
        verification_date=row.verification_date,
        expected_balance=row.expected_balance,
        counted_balance=row.counted_balance,
        discrepancy=row.discrepancy,
        status=VerificationStatus(row.status),
        explanation=row.explanation,
        adjustment_transaction_id=row.adjustment_transaction_id,
        verified_by_id=row.created_by_id,
    )


def _bank_transfer_dto(row: BankTransfer) -> BankTransferDTO:
    return BankTransferDTO(
        id=row.id,
        kind=row.kind,
        amount=row.amount,
        transaction_id=row.transaction_id,
        bank_name=row.bank_name,
        bank_reference=row.bank_reference,
        carried_by=row.carried_by,
        transfer_date=row.transfer_date,
        safe_balance_before=row.safe_balance_before,
        safe_balance_after=row.safe_balance_after,
        bank_balance_before=row.bank_balance_before,
        bank_balance_after=row.bank_balance_after,
    )


class ReportSelector(BaseSelector[TreasuryTransaction]):
    """Dashboard and daily report queries."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self.clock = clock or SystemClock()

    def _day_summary(self, day: date) -> DaySummary:
        start, end = day_bounds(day)
        rows = self.session.execute(
            select(
                TreasuryTransaction.direction,
                func.coalesce(func.sum(TreasuryTransaction.amount), 0),
                func.count(TreasuryTransaction.id),
            )
            .where(TreasuryTransaction.recorded_at >= start, TreasuryTransaction.recorded_at < end)
            .group_by(TreasuryTransaction.direction)
        ).all()
        totals = {Direction(direction): (int(total), int(count)) for direction, total, count in rows}
        total_in, count_in = totals.get(Direction.IN, (0, 0))
        total_out, count_out = totals.get(Direction.OUT, (0, 0))
        return DaySummary(total_in=total_in, total_out=total_out, transaction_count=count_in + count_out)

    def _verification_on(self, day: date) -> VerificationDTO | None:
        row = self.session.execute(
            select(DailyVerification).where(DailyVerification.verification_date == day)
        ).scalar_one_or_none()
        return _verification_dto(row) if row is not None else None

    def balance_overview(
        self,
        safe_threshold_min: int = DEFAULT_SAFE_THRESHOLD_MIN,
        safe_threshold_max: int = DEFAULT_SAFE_THRESHOLD_MAX,
    ) -> BalanceOverview:
        snapshot = self.session.execute(
            select(BalanceSnapshot).where(BalanceSnapshot.ledger_key == DEFAULT_LEDGER_KEY)
        ).scalar_one_or_none()
        balances = snapshot.balances if snapshot is not None else Balances.zero()
        today = self.clock.today()

        return BalanceOverview(
            balances=balances,
            registry_float_amount=snapshot.registry_float_amount if snapshot else 0,
            safe_status=classify_safe_status(balances.safe, safe_threshold_min, safe_threshold_max),
            safe_threshold_min=safe_threshold_min,
            safe_threshold_max=safe_threshold_max,
            today=self._day_summary(today),
            today_verification=self._verification_on(today),
            last_verified_at=snapshot.last_verified_at if snapshot else None,
            last_verified_by_id=snapshot.last_verified_by_id if snapshot else None,
            updated_at=snapshot.updated_at if snapshot else None,
        )

    def daily_report(self, day: date) -> DailyReport:
        """Everything that happened to the treasury on ``day`` (UTC)."""
        start, end = day_bounds(day)

        before = self.session.execute(
            select(TreasuryTransaction.safe_balance_after)
            .where(TreasuryTransaction.recorded_at < start)
            .order_by(TreasuryTransaction.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        last_of_day = self.session.execute(
            select(TreasuryTransaction.safe_balance_after)
            .where(TreasuryTransaction.recorded_at >= start, TreasuryTransaction.recorded_at < end)
            .order_by(TreasuryTransaction.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        opening = before or 0

        by_type = self.session.execute(
            select(TreasuryTransaction.type, func.sum(TreasuryTransaction.amount))
            .where(TreasuryTransaction.recorded_at >= start, TreasuryTransaction.recorded_at < end)
            .group_by(TreasuryTransaction.type)
            .order_by(TreasuryTransaction.type)
        ).all()

        transfers = self.session.execute(
            select(BankTransfer)
            .where(BankTransfer.transfer_date >= start, BankTransfer.transfer_date < end)
            .order_by(BankTransfer.transfer_date)
        ).scalars()

        return DailyReport(
            day=day,
            opening_safe_balance=opening,
            closing_safe_balance=last_of_day if last_of_day is not None else opening,
            summary=self._day_summary(day),
            totals_by_type={tx_type: int(total) for tx_type, total in by_type},
            bank_transfers=[_bank_transfer_dto(row) for row in transfers],
            verification=self._verification_on(day),
        )
