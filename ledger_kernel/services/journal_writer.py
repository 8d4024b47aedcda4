"""
JournalWriter -- persists balanced journal entries and guards reversals.

Responsibility:
    Shared write path for every journal in the kernel: numbers the entry
    through SequenceAllocator, re-checks balance, inserts the header with
    its lines in one flush, and performs the guarded POSTED -> REVERSED
    transition on an original entry.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PostingOrchestrator,
    ReversalService and ManualJournalService; never commits.

Invariants enforced:
    - No entry is inserted unless Sum(debit_base) == Sum(credit_base)
      within the balance epsilon; header totals equal the line totals.
    - Journal numbers are gapless per (entity, prefix, fiscal year).
    - ``mark_reversed`` only touches a row that is POSTED and has no
      reversal yet; a racing second reversal updates zero rows.

Failure modes:
    - UnbalancedJournalError / EmptyJournalError from the line checks.
    - AlreadyReversedError when the guarded update affects no row.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import update

from ledger_kernel.domain.dtos import LineDraft, SequenceScope
from ledger_kernel.domain.line_builder import ensure_balanced
from ledger_kernel.domain.numbering import JOURNAL_DIRECTION, format_journal_no
from ledger_kernel.exceptions import AlreadyReversedError, EmptyJournalError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    JournalSourceType,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceAllocator

logger = get_logger("services.journal_writer")


@dataclass(frozen=True)
class JournalHeader:
    """Header fields of an entry about to be written."""

    tenant_id: UUID
    legal_entity_id: UUID
    book_id: UUID
    fiscal_period_id: UUID
    journal_no: str
    entry_date: date
    currency_code: str
    created_by_id: UUID
    document_date: date | None = None
    source_type: str = JournalSourceType.SYSTEM.value
    status: str = JournalEntryStatus.POSTED.value
    description: str | None = None
    reference_no: str | None = None
    posted_by_id: UUID | None = None
    posted_at: datetime | None = None
    reversal_of_id: UUID | None = None


class JournalWriter(BaseService):
    """
    Insert journal entries and flip originals to REVERSED.

    Non-goals:
        - Does NOT resolve periods or accounts; callers pass resolved ids.
    """

    def next_journal_no(
        self, tenant_id: UUID, legal_entity_id: UUID, prefix: str, fiscal_year: int
    ) -> str:
        scope = SequenceScope(
            tenant_id=tenant_id,
            legal_entity_id=legal_entity_id,
            direction=JOURNAL_DIRECTION,
            namespace=prefix,
        )
        seq = SequenceAllocator(self.session, self.settings, self.clock).allocate(
            scope, fiscal_year
        )
        return format_journal_no(
            prefix, fiscal_year, seq, self.settings.journal_no_max_length
        )

    def write(self, header: JournalHeader, lines: Sequence[LineDraft]) -> JournalEntry:
        """Insert ``header`` with ``lines``; returns the flushed entry."""
        if not lines:
            raise EmptyJournalError(header.journal_no)
        total_debit, total_credit = ensure_balanced(lines, self.settings.balance_epsilon)

        entry = JournalEntry(
            tenant_id=header.tenant_id,
            legal_entity_id=header.legal_entity_id,
            book_id=header.book_id,
            fiscal_period_id=header.fiscal_period_id,
            journal_no=header.journal_no,
            source_type=header.source_type,
            status=header.status,
            entry_date=header.entry_date,
            document_date=header.document_date or header.entry_date,
            currency_code=header.currency_code,
            description=header.description,
            reference_no=header.reference_no,
            total_debit_base=total_debit,
            total_credit_base=total_credit,
            posted_by_id=header.posted_by_id,
            posted_at=header.posted_at,
            reversal_of_id=header.reversal_of_id,
            created_by_id=header.created_by_id,
        )
        entry.lines = [
            JournalLine(
                line_no=line.line_no,
                account_id=line.account_id,
                description=line.description,
                subledger_reference_no=line.subledger_reference_no,
                currency_code=line.currency_code,
                amount_txn=line.amount_txn,
                debit_base=line.debit_base,
                credit_base=line.credit_base,
            )
            for line in lines
        ]
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_written",
            extra={
                "entry_id": str(entry.id),
                "journal_no": entry.journal_no,
                "status": entry.status,
                "line_count": len(lines),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
        )
        return entry

    def mark_reversed(
        self,
        original: JournalEntry,
        reversal_entry_id: UUID,
        user_id: UUID,
        reason: str | None,
        reversed_at: datetime,
    ) -> None:
        """Guarded POSTED -> REVERSED transition of ``original``.

        Raises:
            AlreadyReversedError: another transaction reversed it first.
        """
        result = self.session.execute(
            update(JournalEntry)
            .where(
                JournalEntry.id == original.id,
                JournalEntry.status == JournalEntryStatus.POSTED.value,
                JournalEntry.reversal_journal_entry_id.is_(None),
            )
            .values(
                status=JournalEntryStatus.REVERSED.value,
                reversal_journal_entry_id=reversal_entry_id,
                reversed_by_id=user_id,
                reversed_at=reversed_at,
                reverse_reason=(reason[:255] if reason else None),
                updated_by_id=user_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyReversedError(original.id)
        self.session.refresh(original)
