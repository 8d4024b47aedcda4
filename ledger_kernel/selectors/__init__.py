"""Read-only selectors for the ledger kernel."""

from ledger_kernel.selectors.document_selector import DocumentDTO, DocumentSelector, OpenItemDTO
from ledger_kernel.selectors.journal_selector import (
    AccountBalance,
    JournalEntryDTO,
    JournalLineDTO,
    JournalSelector,
)

__all__ = [
    "AccountBalance",
    "DocumentDTO",
    "DocumentSelector",
    "JournalEntryDTO",
    "JournalLineDTO",
    "JournalSelector",
    "OpenItemDTO",
]
