"""ORM models.  Importing this package registers every table on Base.metadata."""

from ledger_kernel.models.account import Account, AccountType, JournalPurposeAccount
from ledger_kernel.models.audit_log import AuditLog
from ledger_kernel.models.counterparty import Counterparty, PaymentTerm
from ledger_kernel.models.document import (
    DocumentStatus,
    LedgerDocument,
    OpenItem,
    OpenItemStatus,
)
from ledger_kernel.models.exchange_rate import FxRate, FxRateType
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    JournalSourceType,
)
from ledger_kernel.models.organization import (
    Book,
    BookType,
    FiscalCalendar,
    FiscalPeriod,
    LegalEntity,
    PeriodStatus,
    PeriodStatusCode,
)
from ledger_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "AuditLog",
    "Book",
    "BookType",
    "Counterparty",
    "DocumentStatus",
    "FiscalCalendar",
    "FiscalPeriod",
    "FxRate",
    "FxRateType",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "JournalPurposeAccount",
    "JournalSourceType",
    "LedgerDocument",
    "LegalEntity",
    "OpenItem",
    "OpenItemStatus",
    "PaymentTerm",
    "PeriodStatus",
    "PeriodStatusCode",
    "SequenceCounter",
]
