"""ORM models for the treasury ledger."""

from treasury_kernel.models.balance import DEFAULT_LEDGER_KEY, BalanceSnapshot
from treasury_kernel.models.bank_transfer import BankTransfer
from treasury_kernel.models.receipt_counter import ReceiptCounter
from treasury_kernel.models.transaction import TreasuryTransaction
from treasury_kernel.models.verification import DailyVerification, VerificationStatus

__all__ = [
    "BalanceSnapshot",
    "BankTransfer",
    "DEFAULT_LEDGER_KEY",
    "DailyVerification",
    "ReceiptCounter",
    "TreasuryTransaction",
    "VerificationStatus",
]
