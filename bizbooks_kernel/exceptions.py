"""
Typed exception hierarchy for the bizbooks packages.

Every rejected operation raises a typed exception that carries:
  1. a ``code`` class attribute (machine-readable, API-safe),
  2. structured attributes describing what failed,
  3. a message naming the invariant that was violated.

Callers catch by type and read attributes; they never parse messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BizbooksError (base)
    |
    +-- ValidationError
    |   +-- InvalidJournalLineError
    |
    +-- LedgerError
    |   +-- UnbalancedEntryError
    |   +-- JournalEntryNotFoundError
    |   +-- InvalidStateTransitionError
    |       +-- EntryNotDraftError
    |       +-- EntryNotPostedError
    |       +-- EntryAlreadyVoidError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- DuplicateAccountCodeError
    |   +-- AccountTypeMismatchError
    |   +-- AccountCycleError
    |   +-- SystemAccountError
    |   +-- AccountReferencedError
    |   +-- InactiveAccountError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- ProductNotFoundError
    |   +-- StockLotNotFoundError
    |   +-- StockLotInUseError
    |   +-- ConsumptionAlreadyRestoredError
    |
    +-- SubledgerError
    |   +-- CounterpartyNotFoundError
    |   +-- ReconciliationBreakError
    |
    +-- PosSessionError
    |   +-- PosSessionAlreadyOpenError
    |   +-- PosSessionNotOpenError
    |
    +-- ImmutabilityViolationError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|------------------------------------
Validation   | VALIDATION_ERROR             | Malformed input, before mutation
             | INVALID_JOURNAL_LINE         | Line has both/neither side, or < 0
-------------|------------------------------|------------------------------------
Ledger       | UNBALANCED_ENTRY             | Debits != credits beyond 0.01
             | JOURNAL_ENTRY_NOT_FOUND      | Entry id unknown in organization
             | ENTRY_NOT_DRAFT              | Post/edit/delete of non-DRAFT entry
             | ENTRY_NOT_POSTED             | Void of an entry that is not POSTED
             | ENTRY_ALREADY_VOID           | Void of a VOID entry
-------------|------------------------------|------------------------------------
Account      | ACCOUNT_NOT_FOUND            | Code or id unknown
             | ACCOUNT_DUPLICATE_CODE       | Code already used in organization
             | ACCOUNT_TYPE_MISMATCH        | Child type differs from parent
             | ACCOUNT_CYCLE                | Re-parent would create a cycle
             | ACCOUNT_SYSTEM_PROTECTED     | Delete/deactivate/retype system acct
             | ACCOUNT_REFERENCED           | Delete with children or lines
             | ACCOUNT_INACTIVE             | Posting to a deactivated account
-------------|------------------------------|------------------------------------
Inventory    | INSUFFICIENT_STOCK           | Requested > available, no mutation
             | PRODUCT_NOT_FOUND            | Product id unknown
             | STOCK_LOT_NOT_FOUND          | Lot id unknown
             | STOCK_LOT_IN_USE             | Delete of a partially consumed lot
             | CONSUMPTION_ALREADY_RESTORED | Restore of a restored consumption
-------------|------------------------------|------------------------------------
Subledger    | COUNTERPARTY_NOT_FOUND       | Counterparty id unknown
             | RECONCILIATION_BREAK         | |GL - subledger| > 0.01
-------------|------------------------------|------------------------------------
POS          | POS_SESSION_ALREADY_OPEN     | Register or user has OPEN session
             | POS_SESSION_NOT_OPEN         | Close of a session that is not OPEN
-------------|------------------------------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION       | ORM write to posted/void records
Config       | CONFIGURATION_ERROR          | Invalid YAML configuration

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        journal.post_entry(org_id, entry_id, actor_id)
    except UnbalancedEntryError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}
    except InvalidStateTransitionError as e:
        return {"error": e.code, "status": e.current_status}

Mutation errors propagate out of ``session_scope()`` which rolls back the
whole unit of work.  ``ReconciliationBreakError`` is never raised by the
reconciliation check itself; callers opt in through
``ReconciliationResult.raise_for_break()``.
"""


class BizbooksError(Exception):
    """
    Base exception for all bizbooks errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "BIZBOOKS_ERROR"


# Validation


class ValidationError(BizbooksError):
    """Malformed input rejected before any mutation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidJournalLineError(ValidationError):
    """A journal line must carry exactly one nonzero, non-negative side."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Journal line {line_index}: {reason}", field="lines")


# Ledger


class LedgerError(BizbooksError):
    """Base exception for journal entry errors."""

    code: str = "LEDGER_ERROR"


class UnbalancedEntryError(LedgerError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, entry_number: str | None = None):
        self.debits = debits
        self.credits = credits
        self.entry_number = entry_number
        label = f" {entry_number}" if entry_number else ""
        super().__init__(
            f"Entry{label} does not balance: debits={debits}, credits={credits}"
        )


class JournalEntryNotFoundError(LedgerError):
    """Journal entry does not exist in the organization."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class InvalidStateTransitionError(LedgerError):
    """Requested lifecycle transition is not allowed from the current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        journal_entry_id: str,
        current_status: str,
        attempted: str,
        message: str | None = None,
    ):
        self.journal_entry_id = journal_entry_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            message
            or f"Cannot {attempted} journal entry {journal_entry_id}: "
            f"status is {current_status}"
        )


class EntryNotDraftError(InvalidStateTransitionError):
    """Only DRAFT entries may be posted, edited or deleted."""

    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, journal_entry_id: str, current_status: str, attempted: str = "post"):
        super().__init__(
            journal_entry_id,
            current_status,
            attempted,
            f"Cannot {attempted} journal entry {journal_entry_id}: "
            f"only DRAFT entries allow this, status is {current_status}",
        )


class EntryNotPostedError(InvalidStateTransitionError):
    """Only POSTED entries may be voided."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, journal_entry_id: str, current_status: str):
        super().__init__(
            journal_entry_id,
            current_status,
            "void",
            f"Cannot void journal entry {journal_entry_id}: "
            f"only POSTED entries can be voided, status is {current_status}",
        )


class EntryAlreadyVoidError(InvalidStateTransitionError):
    """Entry has already been voided."""

    code: str = "ENTRY_ALREADY_VOID"

    def __init__(self, journal_entry_id: str, reversal_entry_id: str | None = None):
        self.reversal_entry_id = reversal_entry_id
        super().__init__(
            journal_entry_id,
            "VOID",
            "void",
            f"Journal entry {journal_entry_id} is already void",
        )


# Accounts


class AccountError(BizbooksError):
    """Base exception for account-tree errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class DuplicateAccountCodeError(AccountError):
    """Account code already exists in the organization."""

    code: str = "ACCOUNT_DUPLICATE_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class AccountTypeMismatchError(AccountError):
    """A child account's type must equal its parent's type."""

    code: str = "ACCOUNT_TYPE_MISMATCH"

    def __init__(self, account_code: str, account_type: str, parent_code: str, parent_type: str):
        self.account_code = account_code
        self.account_type = account_type
        self.parent_code = parent_code
        self.parent_type = parent_type
        super().__init__(
            f"Account {account_code} of type {account_type} cannot sit under "
            f"{parent_code} of type {parent_type}"
        )


class AccountCycleError(AccountError):
    """Re-parenting would make the account its own ancestor."""

    code: str = "ACCOUNT_CYCLE"

    def __init__(self, account_code: str, parent_code: str):
        self.account_code = account_code
        self.parent_code = parent_code
        super().__init__(
            f"Cannot move account {account_code} under {parent_code}: "
            "parent chain would contain a cycle"
        )


class SystemAccountError(AccountError):
    """System accounts cannot be deleted, deactivated, retyped or re-parented."""

    code: str = "ACCOUNT_SYSTEM_PROTECTED"

    def __init__(self, account_code: str, operation: str):
        self.account_code = account_code
        self.operation = operation
        super().__init__(f"Cannot {operation} system account {account_code}")


class AccountReferencedError(AccountError):
    """Account has child accounts or ledger lines and cannot be deleted."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Cannot delete account {account_code}: {reason}")


class InactiveAccountError(AccountError):
    """Account is deactivated and cannot receive new lines."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


# Inventory


class InventoryError(BizbooksError):
    """Base exception for stock and costing errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds the quantity remaining across all lots."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested_quantity: str, available_quantity: str):
        self.product_id = product_id
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        super().__init__(
            f"Insufficient stock to fulfill quantity {requested_quantity} "
            f"for product {product_id}: only {available_quantity} available"
        )


class ProductNotFoundError(InventoryError):
    """Product does not exist in the organization."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class StockLotNotFoundError(InventoryError):
    """Stock lot does not exist."""

    code: str = "STOCK_LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Stock lot not found: {lot_id}")


class StockLotInUseError(InventoryError):
    """A lot that has been consumed from is part of the audit trail."""

    code: str = "STOCK_LOT_IN_USE"

    def __init__(self, lot_id: str, remaining_quantity: str, initial_quantity: str):
        self.lot_id = lot_id
        self.remaining_quantity = remaining_quantity
        self.initial_quantity = initial_quantity
        super().__init__(
            f"Cannot delete stock lot {lot_id}: {remaining_quantity} of "
            f"{initial_quantity} remaining"
        )


class ConsumptionAlreadyRestoredError(InventoryError):
    """Consumption record was already returned to its lot."""

    code: str = "CONSUMPTION_ALREADY_RESTORED"

    def __init__(self, consumption_id: str):
        self.consumption_id = consumption_id
        super().__init__(f"Consumption {consumption_id} was already restored")


# Subledger


class SubledgerError(BizbooksError):
    """Base exception for counterparty subledger errors."""

    code: str = "SUBLEDGER_ERROR"


class CounterpartyNotFoundError(SubledgerError):
    """Counterparty does not exist in the organization."""

    code: str = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: str):
        self.counterparty_id = counterparty_id
        super().__init__(f"Counterparty not found: {counterparty_id}")


class ReconciliationBreakError(SubledgerError):
    """Control account and subledger total disagree beyond tolerance."""

    code: str = "RECONCILIATION_BREAK"

    def __init__(
        self,
        control_account_code: str,
        ledger_balance: str,
        subledger_total: str,
        difference: str,
    ):
        self.control_account_code = control_account_code
        self.ledger_balance = ledger_balance
        self.subledger_total = subledger_total
        self.difference = difference
        super().__init__(
            f"Control account {control_account_code} does not reconcile: "
            f"ledger={ledger_balance}, subledger={subledger_total}, "
            f"difference={difference}"
        )


# POS


class PosSessionError(BizbooksError):
    """Base exception for point-of-sale session errors."""

    code: str = "POS_SESSION_ERROR"


class PosSessionAlreadyOpenError(PosSessionError):
    """Register or user already has an OPEN session."""

    code: str = "POS_SESSION_ALREADY_OPEN"

    def __init__(self, session_number: str, register_id: str, user_id: str):
        self.session_number = session_number
        self.register_id = register_id
        self.user_id = user_id
        super().__init__(
            f"Session {session_number} is already open for "
            f"register {register_id} / user {user_id}"
        )


class PosSessionNotOpenError(PosSessionError):
    """Session is not OPEN."""

    code: str = "POS_SESSION_NOT_OPEN"

    def __init__(self, pos_session_id: str, current_status: str):
        self.pos_session_id = pos_session_id
        self.current_status = current_status
        super().__init__(
            f"POS session {pos_session_id} is not open: status is {current_status}"
        )


# Immutability


class ImmutabilityViolationError(BizbooksError):
    """Attempted direct mutation of a posted or void ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(BizbooksError):
    """Configuration document is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message if source is None else f"{source}: {message}")
