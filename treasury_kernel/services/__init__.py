"""Services for the treasury kernel (write side)."""

from treasury_kernel.services.balance_admin_service import AdjustmentResult, BalanceAdminService
from treasury_kernel.services.daily_closing_service import ClosingResult, DailyClosingService
from treasury_kernel.services.daily_opening_service import (
    DailyOpeningService,
    DiscrepancySeverity,
    OpeningPreview,
    OpeningResult,
)
from treasury_kernel.services.ledger_store import LedgerStore
from treasury_kernel.services.receipt_service import ReceiptService
from treasury_kernel.services.reversal_service import ReversalResult, ReversalService
from treasury_kernel.services.transaction_recorder import RecordResult, TransactionRecorder
from treasury_kernel.services.transfer_service import TransferResult, TransferService
from treasury_kernel.services.verification_service import VerificationResult, VerificationService

__all__ = [
    "AdjustmentResult",
    "BalanceAdminService",
    "ClosingResult",
    "DailyClosingService",
    "DailyOpeningService",
    "DiscrepancySeverity",
    "LedgerStore",
    "OpeningPreview",
    "OpeningResult",
    "ReceiptService",
    "RecordResult",
    "ReversalResult",
    "ReversalService",
    "TransactionRecorder",
    "TransferResult",
    "TransferService",
    "VerificationResult",
    "VerificationService",
]
