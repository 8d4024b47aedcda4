"""
PostingOrchestrator -- DRAFT -> POSTED for one subledger document.

Responsibility:
    Runs the posting protocol inside the caller's transaction:

        1.  lock the document row and re-check DRAFT under the lock
        2.  validate counterparty, payment term and due date
        3.  resolve (book, period) for the document date; period must be OPEN
        4.  resolve the FX rate against the entity's functional currency
        5.  resolve control / offset accounts
        6.  allocate the final number (namespace = document type)
        7.  build balanced lines and insert the POSTED journal
        8.  update the document (number, status, journal link, snapshots)
        9.  insert the open item
        10. audit the posting, plus a second row when an FX override was used

Architecture position:
    Kernel > Services -- imperative shell.  Composes CalendarResolver,
    SequenceAllocator, FxPolicyResolver, PostingAccountResolver and the
    pure line builder.  Never commits.

Invariants enforced:
    - A document is posted at most once: the DRAFT check happens after
      ``SELECT ... FOR UPDATE``, so a second concurrent call waits for the
      first and then fails with AlreadyPostedError.
    - Journal totals equal the document's base amount.
    - No write happens before every validation step has passed.

Failure modes:
    - AlreadyPostedError: the document is no longer DRAFT.
    - Any ValidationError, PeriodError, FxError, AccountError raised by the
      collaborators; the caller's transaction rolls back in full.

Audit relevance:
    ``ledger.document.post`` always; ``ledger.document.post.fx_override``
    with the reason and both rates when the locked rate was overridden.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.engine import violates_constraint
from ledger_kernel.db.types import ZERO, amounts_equal, round_money
from ledger_kernel.domain.document_rules import fiscal_year_from_date
from ledger_kernel.domain.dtos import (
    DocumentPostingParams,
    FxResolution,
    RequestContext,
    SequenceScope,
)
from ledger_kernel.domain.line_builder import build_document_lines
from ledger_kernel.domain.numbering import (
    POSTING_JOURNAL_PREFIX,
    format_posted_document_no,
    subledger_reference,
)
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    TransientDatabaseError,
    UnbalancedJournalError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.document import (
    SEQUENCE_CONSTRAINT,
    DocumentStatus,
    LedgerDocument,
    OpenItem,
    OpenItemStatus,
)
from ledger_kernel.models.journal import JournalSourceType
from ledger_kernel.services.audit_service import RESOURCE_DOCUMENT, AuditLogWriter, AuditRecord
from ledger_kernel.services.base import GuardedService
from ledger_kernel.services.calendar_resolver import CalendarResolver
from ledger_kernel.services.document_service import term_snapshot, fetch_document
from ledger_kernel.services.document_validator import DocumentPostingValidator
from ledger_kernel.services.fx_policy import FxPolicyResolver
from ledger_kernel.services.journal_writer import JournalHeader, JournalWriter
from ledger_kernel.services.posting_accounts import PostingAccountResolver
from ledger_kernel.services.sequence_service import SequenceAllocator

logger = get_logger("services.posting")


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a successful posting."""

    document_id: UUID
    document_no: str
    sequence_no: int
    journal_entry_id: UUID
    journal_no: str
    open_item_id: UUID
    fx: FxResolution


class PostingOrchestrator(GuardedService):
    """
    Post DRAFT documents to the general ledger.

    Contract:
        ``post`` either completes every step or raises, leaving the
        session's transaction to be rolled back by the caller.

    Usage:
        with session_scope() as session:
            result = PostingOrchestrator(session, settings, clock).post(
                tenant_id, document_id, user_id
            )
    """

    def post(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        use_fx_override: bool = False,
        override_reason: str | None = None,
        request: RequestContext | None = None,
    ) -> PostingResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=user_id, document_id=document_id):
            return self._post(
                tenant_id, document_id, user_id, use_fx_override, override_reason, request
            )

    def _post(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        use_fx_override: bool,
        override_reason: str | None,
        request: RequestContext | None,
    ) -> PostingResult:
        document = fetch_document(self.session, tenant_id, document_id, for_update=True)
        self.check_scope(request, document.legal_entity_id, "documentId")
        if document.status != DocumentStatus.DRAFT.value:
            logger.info(
                "post_rejected_not_draft",
                extra={"document_id": str(document.id), "status": document.status},
            )
            raise AlreadyPostedError(document.id, document.status)

        # 2. business rules
        validator = DocumentPostingValidator(self.session, self.settings, self.clock)
        entity = validator.legal_entity(tenant_id, document.legal_entity_id)
        checked = validator.validate(
            tenant_id,
            entity.id,
            document.direction,
            document.document_type,
            document.counterparty_id,
            document.payment_term_id,
            document.document_date,
            document.due_date,
        )
        direction = checked.rule.direction.value
        document_type = checked.rule.document_type.value

        # 3. period
        book_period = CalendarResolver(
            self.session, self.settings, self.clock
        ).resolve_book_and_period(tenant_id, entity.id, document.document_date)

        # 4. FX
        fx = FxPolicyResolver(self.session, self.settings, self.clock).resolve(
            tenant_id,
            document.document_date,
            document.currency_code,
            entity.functional_currency_code,
            draft_rate=document.fx_rate,
            use_override=use_fx_override,
            override_reason=override_reason,
        )

        # 5. accounts
        accounts = PostingAccountResolver(self.session, self.settings, self.clock).resolve(
            tenant_id, entity.id, direction, checked.counterparty
        )

        # 6. final number
        fiscal_year = fiscal_year_from_date(document.document_date)
        scope = SequenceScope(
            tenant_id=tenant_id,
            legal_entity_id=entity.id,
            direction=direction,
            namespace=document_type,
        )
        sequence_no = SequenceAllocator(self.session, self.settings, self.clock).allocate(
            scope, fiscal_year
        )
        document_no = format_posted_document_no(
            direction, document_type, fiscal_year, sequence_no
        )

        # 7. lines and journal
        amount_txn = round_money(document.amount_txn)
        amount_base = round_money(amount_txn * fx.effective_rate)
        description = f"{direction} {document_type} {document_no}"
        reference = subledger_reference(document.id)
        lines = build_document_lines(
            DocumentPostingParams(
                direction=direction,
                document_type=document_type,
                amount_txn=amount_txn,
                amount_base=amount_base,
                control_account_id=accounts.control_account_id,
                offset_account_id=accounts.offset_account_id,
                currency_code=document.currency_code,
                description=description,
                subledger_reference_no=reference,
            ),
            self.settings.balance_epsilon,
        )

        now = self.clock.now()
        writer = JournalWriter(self.session, self.settings, self.clock)
        journal = writer.write(
            JournalHeader(
                tenant_id=tenant_id,
                legal_entity_id=entity.id,
                book_id=book_period.book_id,
                fiscal_period_id=book_period.fiscal_period_id,
                journal_no=writer.next_journal_no(
                    tenant_id, entity.id, POSTING_JOURNAL_PREFIX, book_period.fiscal_year
                ),
                entry_date=document.document_date,
                document_date=document.document_date,
                currency_code=document.currency_code,
                created_by_id=user_id,
                source_type=JournalSourceType.SYSTEM.value,
                description=description,
                reference_no=document_no,
                posted_by_id=user_id,
                posted_at=now,
            ),
            lines,
        )
        if not amounts_equal(
            journal.total_debit_base, amount_base, self.settings.balance_epsilon
        ):
            raise UnbalancedJournalError(journal.total_debit_base, amount_base)

        # 8. document
        document.sequence_namespace = document_type
        document.fiscal_year = fiscal_year
        document.sequence_no = sequence_no
        document.document_no = document_no
        document.status = DocumentStatus.POSTED.value
        document.due_date = checked.due_date
        document.amount_txn = amount_txn
        document.amount_base = amount_base
        document.open_amount_txn = amount_txn
        document.open_amount_base = amount_base
        document.fx_rate = fx.effective_rate
        document.counterparty_code_snapshot = checked.counterparty.code
        document.counterparty_name_snapshot = checked.counterparty.name
        document.payment_term_snapshot = term_snapshot(checked.payment_term)
        document.due_date_snapshot = checked.due_date
        document.currency_code_snapshot = document.currency_code
        document.fx_rate_snapshot = fx.effective_rate
        document.posted_journal_entry_id = journal.id
        document.posted_at = now
        document.updated_by_id = user_id
        try:
            self.session.flush()
        except IntegrityError as exc:
            if violates_constraint(exc, SEQUENCE_CONSTRAINT, "ledger_documents.sequence_no"):
                raise TransientDatabaseError("document sequence collision") from exc
            raise

        # 9. open item
        open_item = OpenItem(
            tenant_id=tenant_id,
            legal_entity_id=entity.id,
            counterparty_id=document.counterparty_id,
            document_id=document.id,
            item_no=1,
            status=OpenItemStatus.OPEN.value,
            document_date=document.document_date,
            due_date=checked.due_date or document.document_date,
            original_amount_txn=amount_txn,
            original_amount_base=amount_base,
            residual_amount_txn=amount_txn,
            residual_amount_base=amount_base,
            settled_amount_txn=ZERO,
            settled_amount_base=ZERO,
            currency_code=document.currency_code,
        )
        self.session.add(open_item)
        self.session.flush()

        # 10. audit
        self._audit_posting(document, journal.id, reference, fx, user_id, override_reason, request)

        logger.info(
            "document_posted",
            extra={
                "document_id": str(document.id),
                "document_no": document_no,
                "entry_id": str(journal.id),
                "journal_no": journal.journal_no,
                "amount_base": str(amount_base),
                "fx_source": fx.source,
            },
        )
        return PostingResult(
            document_id=document.id,
            document_no=document_no,
            sequence_no=sequence_no,
            journal_entry_id=journal.id,
            journal_no=journal.journal_no,
            open_item_id=open_item.id,
            fx=fx,
        )

    def _audit_posting(
        self,
        document: LedgerDocument,
        journal_entry_id: UUID,
        reference: str,
        fx: FxResolution,
        user_id: UUID,
        override_reason: str | None,
        request: RequestContext | None,
    ) -> None:
        audit = AuditLogWriter(self.session, self.clock)
        audit.record(
            AuditRecord(
                tenant_id=document.tenant_id,
                user_id=user_id,
                action="ledger.document.post",
                resource_type=RESOURCE_DOCUMENT,
                resource_id=document.id,
                scope_id=document.legal_entity_id,
                payload={
                    "status": document.status,
                    "sequenceNamespace": document.sequence_namespace,
                    "fiscalYear": document.fiscal_year,
                    "sequenceNo": document.sequence_no,
                    "documentNo": document.document_no,
                    "postedJournalEntryId": journal_entry_id,
                    "subledgerReferenceNo": reference,
                    "fxRate": fx.effective_rate,
                    "fxSource": fx.source,
                },
                request=request,
            )
        )
        if not fx.override_used:
            return

        audit.record(
            AuditRecord(
                tenant_id=document.tenant_id,
                user_id=user_id,
                action="ledger.document.post.fx_override",
                resource_type=RESOURCE_DOCUMENT,
                resource_id=document.id,
                scope_id=document.legal_entity_id,
                payload={
                    "reason": (override_reason or "").strip(),
                    "documentDate": document.document_date,
                    "documentCurrencyCode": fx.from_currency,
                    "functionalCurrencyCode": fx.to_currency,
                    "referenceFxRate": fx.reference_rate,
                    "overriddenFxRate": fx.effective_rate,
                    "fxRateDate": fx.rate_date,
                },
                request=request,
            )
        )
        logger.warning(
            "fx_override_applied",
            extra={
                "document_id": str(document.id),
                "reference_rate": str(fx.reference_rate),
                "effective_rate": str(fx.effective_rate),
                "reason": (override_reason or "").strip(),
            },
        )
