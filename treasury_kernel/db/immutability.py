"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

A cash ledger must be tamper-proof.  A recorded transaction is never edited
and never deleted; a mistake is undone with a reversal row that leaves a
visible trail.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL and SQLite triggers)
    - Catches raw SQL, bulk UPDATE statements, direct database access
    - Fires AT the database level, independent of application code

Both layers enforce the SAME rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | UPDATE          | DELETE
---------------------|-----------------|-----------------
TreasuryTransaction  | blocked         | blocked
BankTransfer         | blocked         | blocked
DailyVerification    | blocked         | blocked
BalanceSnapshot      | allowed (*)     | blocked

(*) The snapshot is the single mutable aggregate; LedgerStore is its only
    writer and updates it in the same flush as each transaction insert.

===============================================================================
USAGE
===============================================================================

Called once at startup (init_engine_from_url() does it):

    from treasury_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from treasury_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event

from treasury_kernel.exceptions import ImmutabilityViolationError
from treasury_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_transaction_update(mapper, connection, target):
    """Ledger transactions are immutable from creation."""
    _block(
        "TreasuryTransaction",
        target,
        "UPDATE",
        "Ledger transactions cannot be modified; record a reversal instead",
    )


def _check_transaction_delete(mapper, connection, target):
    _block(
        "TreasuryTransaction",
        target,
        "DELETE",
        "Ledger transactions cannot be deleted; record a reversal instead",
    )


def _check_bank_transfer_update(mapper, connection, target):
    _block("BankTransfer", target, "UPDATE", "Bank transfer records cannot be modified")


def _check_bank_transfer_delete(mapper, connection, target):
    _block("BankTransfer", target, "DELETE", "Bank transfer records cannot be deleted")


def _check_verification_update(mapper, connection, target):
    _block("DailyVerification", target, "UPDATE", "Safe verifications cannot be modified")


def _check_verification_delete(mapper, connection, target):
    _block("DailyVerification", target, "DELETE", "Safe verifications cannot be deleted")


def _check_snapshot_delete(mapper, connection, target):
    """The balance snapshot can be updated by LedgerStore but never removed."""
    _block("BalanceSnapshot", target, "DELETE", "The balance snapshot cannot be deleted")


def _listeners():
    from treasury_kernel.models.balance import BalanceSnapshot
    from treasury_kernel.models.bank_transfer import BankTransfer
    from treasury_kernel.models.transaction import TreasuryTransaction
    from treasury_kernel.models.verification import DailyVerification

    return (
        (TreasuryTransaction, "before_update", _check_transaction_update),
        (TreasuryTransaction, "before_delete", _check_transaction_delete),
        (BankTransfer, "before_update", _check_bank_transfer_update),
        (BankTransfer, "before_delete", _check_bank_transfer_delete),
        (DailyVerification, "before_update", _check_verification_update),
        (DailyVerification, "before_delete", _check_verification_delete),
        (BalanceSnapshot, "before_delete", _check_snapshot_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)


def listeners_registered() -> bool:
    """Check that every immutability listener is active."""
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )
