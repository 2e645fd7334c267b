"""
Typed Exception Hierarchy for the Treasury Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Cash-accounting errors must never fail silently, and callers must be able to
tell them apart without parsing message strings. Every error in this module:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (location, shortfall, transaction id, ...)

Example - WRONG way to handle errors:
    try:
        recorder.record(...)
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        recorder.record(...)
    except InsufficientFundsError as e:
        show(f"{e.location} is short by {e.shortfall}")
        api_response(code=e.code, location=e.location, shortfall=e.shortfall)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TreasuryKernelError:

    TreasuryKernelError (base)
    |
    +-- TreasuryValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidChoiceError
    |   +-- BalanceLimitExceededError
    |   +-- ReasonTooShortError
    |   +-- NotesTooShortError
    |   +-- InvalidTransactionTypeError
    |   +-- CorrectionNotAllowedError
    |   +-- BalancesAlreadyInitializedError
    |
    +-- InsufficientFundsError
    |   +-- InsufficientFundsForFloatError
    |
    +-- NotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- ReversalError
    |   +-- TransactionAlreadyReversedError
    |   +-- CannotReverseReversalError
    |
    +-- DailyCycleError
    |   +-- DayAlreadyOpenedError
    |   +-- DayNotOpenedError
    |   +-- VerificationAlreadyRecordedError
    |   +-- DiscrepancyExplanationRequiredError
    |   +-- DiscrepancyApprovalRequiredError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- LedgerBusyError
    |
    +-- AuthorizationError
    |   +-- NotAuthorizedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|----------------------------------
Validation      | INVALID_AMOUNT                  | Amount not a positive integer
                | REASON_TOO_SHORT                | Reversal/adjustment reason short
                | NOTES_TOO_SHORT                 | Transfer notes missing or short
                | INVALID_TRANSACTION_TYPE        | Type not allowed on this path
                | CORRECTION_NOT_ALLOWED          | Correction of a transfer row
                | BALANCES_ALREADY_INITIALIZED    | Ledger already has history
----------------|---------------------------------|----------------------------------
Funds           | INSUFFICIENT_FUNDS              | A balance would go negative
                | INSUFFICIENT_FUNDS_FOR_FLOAT    | Counted safe < requested float
----------------|---------------------------------|----------------------------------
Lookup          | TRANSACTION_NOT_FOUND           | Transaction id does not exist
----------------|---------------------------------|----------------------------------
Reversal        | TRANSACTION_ALREADY_REVERSED    | Original already has a reversal
                | CANNOT_REVERSE_REVERSAL         | Original is itself a reversal
----------------|---------------------------------|----------------------------------
Daily cycle     | DAY_ALREADY_OPENED              | Registry balance > 0 at opening
                | DAY_NOT_OPENED                  | Registry balance = 0 at closing
                | VERIFICATION_ALREADY_RECORDED   | Second safe count on one day
                | DISCREPANCY_EXPLANATION_REQUIRED| Count mismatch, no explanation
                | DISCREPANCY_APPROVAL_REQUIRED   | Major discrepancy, no approver
----------------|---------------------------------|----------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT        | Snapshot changed under a writer
                | LEDGER_BUSY                     | Retries exhausted (transient)
----------------|---------------------------------|----------------------------------
Authorization   | NOT_AUTHORIZED                  | Actor lacks the treasury action
----------------|---------------------------------|----------------------------------
Immutability    | IMMUTABILITY_VIOLATION          | UPDATE/DELETE of an append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Business-rule failures (validation, funds, lookup, reversal, daily
   cycle, authorization) are raised BEFORE any write. They are never
   retried automatically.

2. OptimisticLockError is internal: the orchestrator catches it, rolls
   back and retries. After the bounded number of attempts it raises
   LedgerBusyError, which callers present as "try again".

3. ImmutabilityViolationError signals a programming error or tampering.
   Log it and investigate.

===============================================================================
"""


class TreasuryKernelError(Exception):
    """
    Base exception for all treasury kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "TREASURY_KERNEL_ERROR"


# Validation exceptions


class TreasuryValidationError(TreasuryKernelError):
    """Malformed input. Recoverable by the caller correcting the input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(TreasuryValidationError):
    """Amount is not a positive integer in minor currency units."""

    code: str = "INVALID_AMOUNT"

    def __init__(
        self,
        amount: object,
        field: str = "amount",
        allow_zero: bool = False,
        maximum: int | None = None,
    ):
        self.amount = amount
        self.maximum = maximum
        expected = "a non-negative integer" if allow_zero else "a positive integer"
        if maximum is not None:
            expected += f" no greater than {maximum}"
        super().__init__(f"{field} must be {expected}, got {amount!r}", field=field)


class InvalidChoiceError(TreasuryValidationError):
    """A value is not one of the accepted options for its field."""

    code: str = "INVALID_CHOICE"

    def __init__(self, field: str, value: object, allowed: tuple[str, ...]):
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"{field} must be one of {', '.join(allowed)}; got {value!r}",
            field=field,
        )


class BalanceLimitExceededError(TreasuryValidationError):
    """An operation would push a location balance past the storable maximum."""

    code: str = "BALANCE_LIMIT_EXCEEDED"

    def __init__(self, location: str, balance: int, limit: int):
        self.location = location
        self.balance = balance
        self.limit = limit
        super().__init__(
            f"{location} balance would reach {balance}, above the limit of {limit}",
            field=location,
        )


class ReasonTooShortError(TreasuryValidationError):
    """A required reason is missing or shorter than the configured minimum."""

    code: str = "REASON_TOO_SHORT"

    def __init__(self, min_length: int, actual_length: int, field: str = "reason"):
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"{field} must be at least {min_length} characters "
            f"(got {actual_length})",
            field=field,
        )


class NotesTooShortError(TreasuryValidationError):
    """Transfer notes are missing or shorter than the configured minimum."""

    code: str = "NOTES_TOO_SHORT"

    def __init__(self, min_length: int, actual_length: int):
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"notes must be at least {min_length} characters (got {actual_length})",
            field="notes",
        )


class InvalidTransactionTypeError(TreasuryValidationError):
    """The transaction type cannot be written through this operation."""

    code: str = "INVALID_TRANSACTION_TYPE"

    def __init__(self, transaction_type: str, reason: str):
        self.transaction_type = transaction_type
        self.reason = reason
        super().__init__(
            f"Transaction type '{transaction_type}' not allowed: {reason}",
            field="type",
        )


class CorrectionNotAllowedError(TreasuryValidationError):
    """A correction was requested for a transaction that cannot carry one."""

    code: str = "CORRECTION_NOT_ALLOWED"

    def __init__(self, transaction_id: str, transaction_type: str):
        self.transaction_id = transaction_id
        self.transaction_type = transaction_type
        super().__init__(
            f"Transaction {transaction_id} of type '{transaction_type}' "
            "cannot be corrected; reverse it and record a new movement instead",
            field="correction",
        )


class BalancesAlreadyInitializedError(TreasuryValidationError):
    """Starting balances can only be set on a ledger without history."""

    code: str = "BALANCES_ALREADY_INITIALIZED"

    def __init__(self, transaction_count: int):
        self.transaction_count = transaction_count
        super().__init__(
            f"Ledger already holds {transaction_count} transaction(s); "
            "use a balance adjustment instead"
        )


# Funds exceptions


class InsufficientFundsError(TreasuryKernelError):
    """A computed post-transaction balance would go negative."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, location: str, available: int, required: int):
        self.location = location
        self.available = available
        self.required = required
        self.shortfall = required - available
        super().__init__(
            f"Insufficient funds in {location}: available {available}, "
            f"required {required} (short by {self.shortfall})"
        )


class InsufficientFundsForFloatError(InsufficientFundsError):
    """The counted safe balance cannot cover the requested opening float."""

    code: str = "INSUFFICIENT_FUNDS_FOR_FLOAT"

    def __init__(self, counted_safe_balance: int, float_amount: int):
        self.counted_safe_balance = counted_safe_balance
        self.float_amount = float_amount
        super().__init__(
            location="safe",
            available=counted_safe_balance,
            required=float_amount,
        )


# Lookup exceptions


class NotFoundError(TreasuryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Reversal exceptions


class ReversalError(TreasuryKernelError):
    """Base exception for reversal state-precondition errors."""

    code: str = "REVERSAL_ERROR"


class TransactionAlreadyReversedError(ReversalError):
    """Transaction has already been reversed."""

    code: str = "TRANSACTION_ALREADY_REVERSED"

    def __init__(self, transaction_id: str, reversal_id: str | None = None):
        self.transaction_id = transaction_id
        self.reversal_id = reversal_id
        super().__init__(f"Transaction {transaction_id} has already been reversed")


class CannotReverseReversalError(ReversalError):
    """A reversal transaction can never itself be reversed."""

    code: str = "CANNOT_REVERSE_REVERSAL"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} is a reversal and cannot be reversed"
        )


# Daily cycle exceptions


class DailyCycleError(TreasuryKernelError):
    """Base exception for daily opening / closing / verification preconditions."""

    code: str = "DAILY_CYCLE_ERROR"


class DayAlreadyOpenedError(DailyCycleError):
    """The registry still holds cash, so the day is already open."""

    code: str = "DAY_ALREADY_OPENED"

    def __init__(self, registry_balance: int):
        self.registry_balance = registry_balance
        super().__init__(
            f"Day already opened: registry balance is {registry_balance}, expected 0"
        )


class DayNotOpenedError(DailyCycleError):
    """The registry is empty, so there is no open day to close."""

    code: str = "DAY_NOT_OPENED"

    def __init__(self):
        self.registry_balance = 0
        super().__init__("Day not opened: registry balance is already 0")


class VerificationAlreadyRecordedError(DailyCycleError):
    """The safe has already been verified for this business day."""

    code: str = "VERIFICATION_ALREADY_RECORDED"

    def __init__(self, verification_date: str, verification_id: str):
        self.verification_date = verification_date
        self.verification_id = verification_id
        super().__init__(
            f"Safe already verified on {verification_date} ({verification_id})"
        )


class DiscrepancyExplanationRequiredError(DailyCycleError):
    """A safe count that differs from the ledger needs an explanation."""

    code: str = "DISCREPANCY_EXPLANATION_REQUIRED"

    def __init__(self, discrepancy: int):
        self.discrepancy = discrepancy
        super().__init__(
            f"An explanation is required when the count differs by {discrepancy}"
        )


class DiscrepancyApprovalRequiredError(DailyCycleError):
    """A major opening discrepancy needs an authorized approver."""

    code: str = "DISCREPANCY_APPROVAL_REQUIRED"

    def __init__(self, discrepancy: int, threshold: int):
        self.discrepancy = discrepancy
        self.threshold = threshold
        super().__init__(
            f"Discrepancy {discrepancy} exceeds {threshold} and requires approval"
        )


# Concurrency exceptions


class ConcurrencyError(TreasuryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class LedgerBusyError(ConcurrencyError):
    """Concurrent writers kept conflicting; the caller may retry later."""

    code: str = "LEDGER_BUSY"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Ledger busy: {operation} did not complete after {attempts} attempt(s)"
        )


# Authorization exceptions


class AuthorizationError(TreasuryKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class NotAuthorizedError(AuthorizationError):
    """Actor is not authorized for the requested treasury action."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Actor {actor_id} is not authorized for {action}")


# Immutability exceptions


class ImmutabilityError(TreasuryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Transactions, bank transfer records and safe verifications are
    immutable from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
