"""
Ledger Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger
store, the writer services and the database constraints/triggers. No
TreasuryConfig value, role table or policy may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across LedgerStore, the immutability
listeners and triggers, ReversalService and the CHECK constraints on
the snapshot and transaction tables.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the treasury kernel.

    Each value names one structural guarantee that the kernel provides
    unconditionally. Configuration may influence *how much* validation
    input needs (minimum reason length, thresholds), but never *whether*
    these rules apply.
    """

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """No cash location balance may go below zero. Enforced by
    Balances.require_non_negative() before every write and by CHECK
    constraints on treasury_balance_snapshots."""

    SNAPSHOT_CONSISTENCY = "snapshot_consistency"
    """The snapshot balances equal the *_balance_after fields of the most
    recent transaction. Enforced by LedgerStore.append_transaction(),
    the only code path that writes balances."""

    SERIALIZED_WRITES = "serialized_writes"
    """Writers lock the snapshot row before reading balances; the
    version column detects any write that slipped past the lock.
    Enforced by LedgerStore.lock_balances()."""

    IMMUTABILITY = "immutability"
    """Transactions, bank transfer records and verifications are
    append-only. Enforced by ORM listeners and DB triggers
    (treasury_kernel.db.immutability, treasury_kernel.db.triggers)."""

    SINGLE_REVERSAL = "single_reversal"
    """A transaction is reversed at most once and a reversal is never
    reversed. Enforced by ReversalService and a partial unique index on
    original_transaction_id."""

    ATOMIC_UNIT = "atomic_unit"
    """A multi-row operation (reversal + correction, opening adjustment +
    float transfer) commits as one unit or not at all. Enforced by the
    orchestrator's unit of work."""


# All invariants as a frozenset for programmatic checks.
ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "treasury_services",
    "treasury_config",
)
