"""
Typed exception hierarchy for the ledger kernel.

Every error raised by the kernel is a ``LedgerKernelError`` subclass with:

  1. a stable ``code`` class attribute (machine-readable, API-safe),
  2. a ``retryable`` class attribute telling the caller whether repeating
     the same call in a new transaction can succeed,
  3. structured instance attributes (never parse the message).

Hierarchy::

    LedgerKernelError
    +-- ValidationError
    |   +-- InvalidDateError
    |   +-- UnsupportedDocumentTypeError
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |   +-- JournalNotFoundError
    |   +-- LegalEntityNotFoundError
    |   +-- CounterpartyNotFoundError
    |   +-- PaymentTermNotFoundError
    |   +-- BookNotFoundError
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- NoPeriodFoundError
    +-- FxError
    |   +-- FxRateLockedError
    |   +-- MissingFxRateError
    |   +-- ParityRateMismatchError
    +-- AccountError
    |   +-- PostingAccountsNotConfiguredError
    |   +-- InvalidPostingAccountError
    +-- StateError
    |   +-- AlreadyPostedError
    |   +-- AlreadyReversedError
    |   +-- InvalidDocumentStateError
    +-- IntegrityFaultError
    |   +-- ControlOffsetAccountCollisionError
    |   +-- EmptyJournalError
    |   +-- UnbalancedJournalError
    +-- AccessDeniedError
    +-- TransientDatabaseError          (retryable)

Handling patterns:

    try:
        orchestrator.post(tenant_id, document_id, user_id)
    except AlreadyPostedError:
        pass                       # already done; idempotent in effect
    except PeriodError as e:
        respond(e.code, str(e))    # user picks another date
    except TransientDatabaseError:
        retry()                    # no partial commit is possible

``IntegrityFaultError`` subclasses are data-integrity faults: alert an
operator, never retry.
"""

from datetime import date
from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"
    retryable: bool = False


def to_error_payload(exc: LedgerKernelError) -> dict[str, Any]:
    """Render an error for a transport layer.

    Infrastructure errors get a generic message so internal detail does not
    leak to the end user.
    """
    if isinstance(exc, TransientDatabaseError):
        message = "Temporary database error, please retry"
    else:
        message = str(exc)
    return {"code": exc.code, "message": message, "retryable": exc.retryable}


# Validation


class ValidationError(LedgerKernelError):
    """Malformed input. Always raised before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidDateError(ValidationError):
    """A date is missing, malformed, or has no usable fiscal year."""

    code: str = "INVALID_DATE"

    def __init__(self, value: Any, field: str = "date"):
        self.value = value
        super().__init__(f"Invalid date for {field}: {value!r}", field=field)


class UnsupportedDocumentTypeError(ValidationError):
    """Direction / document type combination has no posting rule."""

    code: str = "UNSUPPORTED_DOCUMENT_TYPE"

    def __init__(self, direction: str, document_type: str):
        self.direction = direction
        self.document_type = document_type
        super().__init__(
            f"Unsupported document type {document_type} for direction {direction}",
            field="documentType",
        )


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"
    resource: str = "resource"

    def __init__(self, resource_id: Any):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} not found: {resource_id}")


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"
    resource = "Document"


class JournalNotFoundError(NotFoundError):
    code: str = "JOURNAL_NOT_FOUND"
    resource = "Journal entry"


class LegalEntityNotFoundError(NotFoundError):
    code: str = "LEGAL_ENTITY_NOT_FOUND"
    resource = "Legal entity"


class CounterpartyNotFoundError(NotFoundError):
    code: str = "COUNTERPARTY_NOT_FOUND"
    resource = "Counterparty"


class PaymentTermNotFoundError(NotFoundError):
    code: str = "PAYMENT_TERM_NOT_FOUND"
    resource = "Payment term"


class BookNotFoundError(NotFoundError):
    code: str = "BOOK_NOT_FOUND"
    resource = "Book"


# Period


class PeriodError(LedgerKernelError):
    """Base exception for fiscal period errors."""

    code: str = "PERIOD_ERROR"


class PeriodLockedError(PeriodError):
    """Target period is SOFT_CLOSED or HARD_CLOSED for the book."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, book_id: Any, fiscal_period_id: Any, status: str):
        self.book_id = book_id
        self.fiscal_period_id = fiscal_period_id
        self.status = status
        super().__init__(
            f"Period {fiscal_period_id} is {status} for book {book_id}"
        )


class NoPeriodFoundError(PeriodError):
    """No fiscal period in the book's calendar contains the date."""

    code: str = "NO_PERIOD_FOUND"

    def __init__(self, book_id: Any, on_date: date):
        self.book_id = book_id
        self.on_date = on_date
        super().__init__(f"No fiscal period found for book {book_id} on {on_date}")


# FX


class FxError(LedgerKernelError):
    """Base exception for FX policy violations."""

    code: str = "FX_ERROR"


class FxRateLockedError(FxError):
    """Effective rate differs from a locked reference rate without override."""

    code: str = "FX_RATE_LOCKED"

    def __init__(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        reference_rate: Decimal,
        effective_rate: Decimal,
    ):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.rate_date = rate_date
        self.reference_rate = reference_rate
        self.effective_rate = effective_rate
        super().__init__(
            f"FX rate {from_currency}->{to_currency} on {rate_date} is locked at "
            f"{reference_rate}; rate {effective_rate} requires an authorized override"
        )


class MissingFxRateError(FxError):
    """Neither a document rate nor a reference rate is available."""

    code: str = "MISSING_FX_RATE"

    def __init__(self, from_currency: str, to_currency: str, rate_date: date):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.rate_date = rate_date
        super().__init__(
            f"No FX rate for {from_currency}->{to_currency} on {rate_date}"
        )


class ParityRateMismatchError(FxError):
    """A non-1 rate was supplied for a same-currency document."""

    code: str = "PARITY_RATE_MISMATCH"

    def __init__(self, currency: str, rate: Decimal):
        self.currency = currency
        self.rate = rate
        super().__init__(
            f"Rate must be 1 when document currency equals functional currency "
            f"({currency}), got {rate}"
        )


# Accounts


class AccountError(LedgerKernelError):
    """Base exception for GL account configuration errors."""

    code: str = "ACCOUNT_ERROR"


class PostingAccountsNotConfiguredError(AccountError):
    """The control or offset purpose has no mapped account."""

    code: str = "POSTING_ACCOUNTS_NOT_CONFIGURED"

    def __init__(self, legal_entity_id: Any, purpose_codes: list[str]):
        self.legal_entity_id = legal_entity_id
        self.purpose_codes = purpose_codes
        super().__init__(
            f"Posting accounts not configured for legal entity {legal_entity_id}: "
            f"{', '.join(purpose_codes)}"
        )


class InvalidPostingAccountError(AccountError):
    """A resolved account has the wrong type, scope, or state."""

    code: str = "INVALID_POSTING_ACCOUNT"

    def __init__(self, account_id: Any, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Account {account_id} cannot be used: {reason}")


# State transitions


class StateError(LedgerKernelError):
    """Base exception for lifecycle state conflicts."""

    code: str = "STATE_ERROR"


class AlreadyPostedError(StateError):
    """The document or journal is no longer DRAFT.

    Idempotent in effect: the caller should treat this as already done.
    """

    code: str = "ALREADY_POSTED"

    def __init__(self, resource_id: Any, status: str):
        self.resource_id = resource_id
        self.status = status
        super().__init__(f"{resource_id} is already {status}")


class AlreadyReversedError(StateError):
    """A reversal already exists for the document or journal."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, resource_id: Any):
        self.resource_id = resource_id
        super().__init__(f"{resource_id} has already been reversed")


class InvalidDocumentStateError(StateError):
    """The operation is not allowed from the current status."""

    code: str = "INVALID_DOCUMENT_STATE"

    def __init__(self, resource_id: Any, status: str, expected: str):
        self.resource_id = resource_id
        self.status = status
        self.expected = expected
        super().__init__(f"{resource_id} is {status}; expected {expected}")


# Data-integrity faults


class IntegrityFaultError(LedgerKernelError):
    """Base exception for data-integrity faults. Fatal, never retried."""

    code: str = "INTEGRITY_FAULT"


class ControlOffsetAccountCollisionError(IntegrityFaultError):
    code: str = "CONTROL_OFFSET_ACCOUNT_COLLISION"

    def __init__(self, account_id: Any):
        self.account_id = account_id
        super().__init__(
            f"Control and offset accounts resolve to the same account {account_id}"
        )


class EmptyJournalError(IntegrityFaultError):
    code: str = "EMPTY_JOURNAL"

    def __init__(self, journal_entry_id: Any):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry {journal_entry_id} has no lines")


class UnbalancedJournalError(IntegrityFaultError):
    code: str = "UNBALANCED_JOURNAL"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Journal is unbalanced: debits {total_debit} != credits {total_credit}"
        )


# Access


class AccessDeniedError(LedgerKernelError):
    """Raised by scope guards when the caller may not touch the scope."""

    code: str = "SCOPE_ACCESS_DENIED"

    def __init__(self, scope_type: str, scope_id: Any, field: str | None = None):
        self.scope_type = scope_type
        self.scope_id = scope_id
        self.field = field
        super().__init__(f"Access denied to {scope_type} {scope_id}")


# Infrastructure


class TransientDatabaseError(LedgerKernelError):
    """Lock timeout, deadlock, serialization failure, or lost connection.

    Safe to retry: the failed transaction was rolled back in full.
    """

    code: str = "TRANSIENT_DATABASE_ERROR"
    retryable: bool = True

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Transient database error: {reason}")
