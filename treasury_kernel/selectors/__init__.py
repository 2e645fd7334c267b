"""Selectors for the treasury kernel (read side)."""

from treasury_kernel.selectors.report_selector import (
    BalanceOverview,
    DailyReport,
    ReportSelector,
    SafeStatus,
)
from treasury_kernel.selectors.transaction_selector import (
    ConsistencyReport,
    ReversalHistory,
    TransactionDTO,
    TransactionFilter,
    TransactionPage,
    TransactionSelector,
)

__all__ = [
    "BalanceOverview",
    "ConsistencyReport",
    "DailyReport",
    "ReportSelector",
    "ReversalHistory",
    "SafeStatus",
    "TransactionDTO",
    "TransactionFilter",
    "TransactionPage",
    "TransactionSelector",
]
