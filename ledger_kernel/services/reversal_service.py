"""
ReversalService -- POSTED -> REVERSED for one subledger document.

Responsibility:
    Mirrors the document's posted journal into the open period of the
    reversal date, creates the mirror document, zeroes the original's open
    amounts and cancels its open item.

Architecture position:
    Kernel > Services -- imperative shell.  Reuses CalendarResolver,
    SequenceAllocator, JournalWriter and the inverted line builder.

Invariants enforced:
    - A document is reversed at most once.  Three independent guards:
      the reversal-document lookup under the row lock, the guarded journal
      update (``WHERE status='POSTED' AND reversal_journal_entry_id IS
      NULL``), and the unique constraint on reversal_of_document_id.
    - Reversal lines mirror the original line for line: debit and credit
      swapped, amount_txn negated, accounts and line numbers kept.
    - The reversal targets the period of the reversal date, never the
      original (possibly closed) period.

Failure modes:
    - InvalidDocumentStateError: the document is not POSTED.
    - AlreadyReversedError: from any of the three guards.
    - JournalNotFoundError: the posted journal link is missing.
    - EmptyJournalError: the original journal has no lines (data fault).
    - PeriodError from the calendar resolver.

Audit relevance:
    ``ledger.document.reverse`` with both journal ids and the reason.
"""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.engine import violates_constraint
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.document_rules import fiscal_year_from_date, parse_optional_date
from ledger_kernel.domain.dtos import LineDraft, RequestContext, SequenceScope
from ledger_kernel.domain.line_builder import build_reversal_lines
from ledger_kernel.domain.numbering import (
    REVERSAL_JOURNAL_PREFIX,
    format_posted_document_no,
    reversal_subledger_reference,
)
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    EmptyJournalError,
    InvalidDocumentStateError,
    JournalNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.document import (
    SINGLE_REVERSAL_CONSTRAINT,
    DocumentStatus,
    LedgerDocument,
    OpenItem,
    OpenItemStatus,
)
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalSourceType
from ledger_kernel.services.audit_service import RESOURCE_DOCUMENT, AuditLogWriter, AuditRecord
from ledger_kernel.services.base import GuardedService
from ledger_kernel.services.calendar_resolver import CalendarResolver
from ledger_kernel.services.document_service import fetch_document
from ledger_kernel.services.journal_writer import JournalHeader, JournalWriter
from ledger_kernel.services.sequence_service import SequenceAllocator

logger = get_logger("services.reversal")

DEFAULT_REVERSE_REASON = "Manual reversal"


@dataclass(frozen=True)
class ReversalResult:
    original_document_id: UUID
    reversal_document_id: UUID
    reversal_document_no: str
    original_journal_entry_id: UUID
    reversal_journal_entry_id: UUID
    reversal_date: date


class ReversalService(GuardedService):
    """
    Reverse POSTED documents.

    Contract:
        ``reverse`` succeeds at most once per document; every later call,
        sequential or concurrent, raises AlreadyReversedError.
    """

    def reverse(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        reason: str | None = None,
        reversal_date: date | str | None = None,
        request: RequestContext | None = None,
    ) -> ReversalResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=user_id, document_id=document_id):
            return self._reverse(
                tenant_id, document_id, user_id, reason, reversal_date, request
            )

    def _existing_reversal_id(self, tenant_id: UUID, document_id: UUID) -> UUID | None:
        return self.session.execute(
            select(LedgerDocument.id).where(
                LedgerDocument.tenant_id == tenant_id,
                LedgerDocument.reversal_of_document_id == document_id,
            )
        ).scalar_one_or_none()

    def _reverse(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        reason: str | None,
        reversal_date: date | str | None,
        request: RequestContext | None,
    ) -> ReversalResult:
        original = fetch_document(self.session, tenant_id, document_id, for_update=True)
        self.check_scope(request, original.legal_entity_id, "documentId")

        if self._existing_reversal_id(tenant_id, original.id) is not None:
            raise AlreadyReversedError(original.id)
        if original.status != DocumentStatus.POSTED.value:
            raise InvalidDocumentStateError(
                original.id, original.status, DocumentStatus.POSTED.value
            )
        if original.posted_journal_entry_id is None:
            raise JournalNotFoundError(None)

        journal = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.id == original.posted_journal_entry_id,
                JournalEntry.tenant_id == tenant_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if journal is None:
            raise JournalNotFoundError(original.posted_journal_entry_id)
        if journal.reversal_journal_entry_id is not None:
            raise AlreadyReversedError(original.id)
        if journal.status != JournalEntryStatus.POSTED.value:
            raise InvalidDocumentStateError(
                journal.id, journal.status, JournalEntryStatus.POSTED.value
            )
        if not journal.lines:
            logger.error(
                "reversal_empty_journal",
                extra={"document_id": str(original.id), "entry_id": str(journal.id)},
            )
            raise EmptyJournalError(journal.id)

        on_date = parse_optional_date(reversal_date, "reversalDate") or self.clock.today()
        book_period = CalendarResolver(
            self.session, self.settings, self.clock
        ).resolve_book_and_period(
            tenant_id, original.legal_entity_id, on_date, preferred_book_id=journal.book_id
        )

        label = f"Reversal of {original.document_no}"
        mirrored = build_reversal_lines(
            [LineDraft.from_model(line) for line in journal.lines],
            journal_entry_id=journal.id,
            fallback_description=label,
            subledger_reference_no=reversal_subledger_reference(original.id),
            epsilon=self.settings.balance_epsilon,
        )

        now = self.clock.now()
        writer = JournalWriter(self.session, self.settings, self.clock)
        reversal_journal = writer.write(
            JournalHeader(
                tenant_id=tenant_id,
                legal_entity_id=original.legal_entity_id,
                book_id=book_period.book_id,
                fiscal_period_id=book_period.fiscal_period_id,
                journal_no=writer.next_journal_no(
                    tenant_id,
                    original.legal_entity_id,
                    REVERSAL_JOURNAL_PREFIX,
                    book_period.fiscal_year,
                ),
                entry_date=on_date,
                document_date=on_date,
                currency_code=original.currency_code,
                created_by_id=user_id,
                source_type=JournalSourceType.SYSTEM.value,
                description=label,
                reference_no=f"REV:{original.document_no}"[:100],
                posted_by_id=user_id,
                posted_at=now,
                reversal_of_id=journal.id,
            ),
            mirrored,
        )
        writer.mark_reversed(
            journal,
            reversal_journal.id,
            user_id,
            (reason or "").strip() or DEFAULT_REVERSE_REASON,
            now,
        )

        reversal_document = self._insert_reversal_document(
            original, reversal_journal.id, on_date, user_id, now
        )

        original.status = DocumentStatus.REVERSED.value
        original.open_amount_txn = ZERO
        original.open_amount_base = ZERO
        original.reversed_at = now
        original.updated_by_id = user_id
        self.session.flush()

        self.session.execute(
            update(OpenItem)
            .where(
                OpenItem.tenant_id == tenant_id,
                OpenItem.legal_entity_id == original.legal_entity_id,
                OpenItem.document_id == original.id,
            )
            .values(
                status=OpenItemStatus.CANCELLED.value,
                residual_amount_txn=ZERO,
                residual_amount_base=ZERO,
                settled_amount_txn=ZERO,
                settled_amount_base=ZERO,
            )
            .execution_options(synchronize_session="fetch")
        )

        AuditLogWriter(self.session, self.clock).record(
            AuditRecord(
                tenant_id=tenant_id,
                user_id=user_id,
                action="ledger.document.reverse",
                resource_type=RESOURCE_DOCUMENT,
                resource_id=original.id,
                scope_id=original.legal_entity_id,
                payload={
                    "reason": (reason or "").strip() or None,
                    "originalDocumentId": original.id,
                    "reversalDocumentId": reversal_document.id,
                    "originalPostedJournalEntryId": journal.id,
                    "reversalPostedJournalEntryId": reversal_journal.id,
                    "reversalDate": on_date,
                },
                request=request,
            )
        )
        logger.info(
            "reversal_completed",
            extra={
                "document_id": str(original.id),
                "reversal_document_id": str(reversal_document.id),
                "entry_id": str(journal.id),
                "reversal_entry_id": str(reversal_journal.id),
                "reversal_date": on_date.isoformat(),
            },
        )
        return ReversalResult(
            original_document_id=original.id,
            reversal_document_id=reversal_document.id,
            reversal_document_no=reversal_document.document_no,
            original_journal_entry_id=journal.id,
            reversal_journal_entry_id=reversal_journal.id,
            reversal_date=on_date,
        )

    def _insert_reversal_document(
        self,
        original: LedgerDocument,
        reversal_journal_id: UUID,
        on_date: date,
        user_id: UUID,
        now: datetime,
    ) -> LedgerDocument:
        fiscal_year = fiscal_year_from_date(on_date, "reversalDate")
        scope = SequenceScope(
            tenant_id=original.tenant_id,
            legal_entity_id=original.legal_entity_id,
            direction=original.direction,
            namespace=original.document_type,
        )
        sequence_no = SequenceAllocator(self.session, self.settings, self.clock).allocate(
            scope, fiscal_year
        )
        reversal = LedgerDocument(
            tenant_id=original.tenant_id,
            legal_entity_id=original.legal_entity_id,
            counterparty_id=original.counterparty_id,
            payment_term_id=original.payment_term_id,
            direction=original.direction,
            document_type=original.document_type,
            sequence_namespace=original.document_type,
            fiscal_year=fiscal_year,
            sequence_no=sequence_no,
            document_no=format_posted_document_no(
                original.direction, original.document_type, fiscal_year, sequence_no
            ),
            status=DocumentStatus.REVERSED.value,
            document_date=on_date,
            due_date=on_date,
            description=f"Reversal of {original.document_no}",
            amount_txn=original.amount_txn,
            amount_base=original.amount_base,
            open_amount_txn=ZERO,
            open_amount_base=ZERO,
            currency_code=original.currency_code,
            fx_rate=original.fx_rate,
            counterparty_code_snapshot=original.counterparty_code_snapshot,
            counterparty_name_snapshot=original.counterparty_name_snapshot,
            payment_term_snapshot=original.payment_term_snapshot,
            due_date_snapshot=on_date,
            currency_code_snapshot=original.currency_code_snapshot or original.currency_code,
            fx_rate_snapshot=original.fx_rate_snapshot,
            posted_journal_entry_id=reversal_journal_id,
            reversal_of_document_id=original.id,
            posted_at=now,
            reversed_at=now,
            created_by_id=user_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(reversal)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            if violates_constraint(
                exc, SINGLE_REVERSAL_CONSTRAINT, "ledger_documents.reversal_of_document_id"
            ):
                raise AlreadyReversedError(original.id) from exc
            raise
        return reversal
