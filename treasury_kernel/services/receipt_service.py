"""
ReceiptService -- receipt number allocation via locked counter rows.

Responsibility:
    Issues receipt numbers ``{prefix}-{YYYYMMDD}-{REC|DEP}-{NNNN}`` for
    recorded transactions.  The counter restarts every business day and is
    kept separately for receipts (money in) and disbursements (money out).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TransactionRecorder and ReversalService (corrections).

Invariants enforced:
    - Numbers are strictly increasing per (day, kind).  The locked counter
      row is the sole source of truth; SELECT MAX(...) + 1 is never used.
    - The increment is transactional: a rolled back write gives its
      number back.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from treasury_kernel.domain.effects import Direction, receipt_kind
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.receipt_counter import ReceiptCounter

logger = get_logger("services.receipt")

DEFAULT_RECEIPT_PREFIX = "CAISSE"


class ReceiptService:
    """
    Service for generating receipt numbers.

    Usage:
        number = ReceiptService(session).next_receipt_number(day, Direction.IN)
        # "CAISSE-20240101-REC-0001"
    """

    def __init__(self, session: Session, prefix: str = DEFAULT_RECEIPT_PREFIX):
        self._session = session
        self._prefix = prefix

    def _counter_name(self, day: date, kind: str) -> str:
        return f"{self._prefix}-{day:%Y%m%d}-{kind}"

    def _locked_counter(self, name: str) -> ReceiptCounter | None:
        return self._session.execute(
            select(ReceiptCounter)
            .where(ReceiptCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, day: date, direction: Direction) -> int:
        """
        Allocate the next counter value for ``day`` and ``direction``.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for the same day and kind.
            - The counter row stays locked until the transaction completes.
        """
        name = self._counter_name(day, receipt_kind(direction))

        counter = self._locked_counter(name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = ReceiptCounter(name=name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug("receipt_allocated", extra={"counter": name, "value": 1})
                return 1
            except IntegrityError:
                logger.debug("receipt_counter_race_retry", extra={"counter": name})
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "receipt_allocated",
            extra={"counter": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_receipt_number(self, day: date, direction: Direction) -> str:
        """Allocate and format the next receipt number."""
        value = self.next_value(day, direction)
        return f"{self._counter_name(day, receipt_kind(direction))}-{value:04d}"

    def current_value(self, day: date, direction: Direction) -> int | None:
        """Current counter value without incrementing, or None if unused."""
        counter = self._session.execute(
            select(ReceiptCounter).where(
                ReceiptCounter.name == self._counter_name(day, receipt_kind(direction))
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
