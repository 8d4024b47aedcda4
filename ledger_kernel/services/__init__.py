"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.audit_service import AuditLogWriter, AuditRecord
from ledger_kernel.services.calendar_resolver import CalendarResolver
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.document_validator import DocumentPostingValidator
from ledger_kernel.services.fx_policy import FxPolicyResolver
from ledger_kernel.services.journal_service import ManualJournalService
from ledger_kernel.services.journal_writer import JournalHeader, JournalWriter
from ledger_kernel.services.posting_accounts import PostingAccountResolver
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator, PostingResult
from ledger_kernel.services.retry import run_with_retry
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService
from ledger_kernel.services.sequence_service import SequenceAllocator

__all__ = [
    "AuditLogWriter",
    "AuditRecord",
    "CalendarResolver",
    "DocumentPostingValidator",
    "DocumentService",
    "FxPolicyResolver",
    "JournalHeader",
    "JournalWriter",
    "ManualJournalService",
    "PostingAccountResolver",
    "PostingOrchestrator",
    "PostingResult",
    "ReversalResult",
    "ReversalService",
    "SequenceAllocator",
    "run_with_retry",
]
