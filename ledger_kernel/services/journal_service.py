"""
ManualJournalService -- manual journals: DRAFT -> POSTED -> REVERSED.

Responsibility:
    Creates balanced multi-line DRAFT journals, posts them after re-checking
    the period, and reverses posted journals with an N-line mirror entry.

Architecture position:
    Kernel > Services -- imperative shell.  Shares JournalWriter,
    CalendarResolver and the line builder with the document pipeline.

Invariants enforced:
    - At least two lines, each with exactly one positive side, balanced
      within the balance epsilon.
    - Lines post only to active, postable accounts of the entity.
    - DRAFT -> POSTED and POSTED -> REVERSED are guarded updates; a racing
      second call changes nothing and fails.
    - Posting and reversal target OPEN periods only.

Failure modes:
    - ValidationError, InvalidPostingAccountError for bad input.
    - JournalNotFoundError, AlreadyPostedError, AlreadyReversedError,
      InvalidDocumentStateError, PeriodLockedError.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.engine import violates_constraint
from ledger_kernel.db.types import ZERO, amounts_equal, round_money, to_decimal
from ledger_kernel.domain.document_rules import parse_date, parse_optional_date
from ledger_kernel.domain.dtos import (
    LineDraft,
    ManualJournalInput,
    ManualJournalLineInput,
    RequestContext,
)
from ledger_kernel.domain.line_builder import build_reversal_lines, journal_totals
from ledger_kernel.domain.numbering import (
    MANUAL_JOURNAL_PREFIX,
    format_manual_reversal_journal_no,
)
from ledger_kernel.domain.posting_rules import enum_value
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    AlreadyReversedError,
    EmptyJournalError,
    InvalidDocumentStateError,
    InvalidPostingAccountError,
    JournalNotFoundError,
    PeriodLockedError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalSourceType
from ledger_kernel.models.organization import PeriodStatusCode
from ledger_kernel.services.audit_service import RESOURCE_JOURNAL, AuditLogWriter, AuditRecord
from ledger_kernel.services.base import GuardedService
from ledger_kernel.services.calendar_resolver import CalendarResolver
from ledger_kernel.services.document_service import parse_currency
from ledger_kernel.services.document_validator import DocumentPostingValidator
from ledger_kernel.services.journal_writer import JournalHeader, JournalWriter
from ledger_kernel.services.reversal_service import DEFAULT_REVERSE_REASON

logger = get_logger("services.manual_journal")

MIN_LINES = 2


def _money(value: Any, field: str) -> Decimal:
    if value is None:
        return ZERO
    try:
        amount = round_money(to_decimal(value, field))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from None
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return amount


class ManualJournalService(GuardedService):
    """Manual and adjustment journals outside the document pipeline."""

    def _load(self, tenant_id: UUID, journal_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == journal_id, JournalEntry.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalNotFoundError(journal_id)
        return entry

    def _audit(
        self,
        action: str,
        entry: JournalEntry,
        user_id: UUID,
        payload: dict[str, Any],
        request: RequestContext | None,
    ) -> None:
        AuditLogWriter(self.session, self.clock).record(
            AuditRecord(
                tenant_id=entry.tenant_id,
                user_id=user_id,
                action=action,
                resource_type=RESOURCE_JOURNAL,
                resource_id=entry.id,
                scope_id=entry.legal_entity_id,
                payload=payload,
                request=request,
            )
        )

    def _build_lines(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        currency: str,
        lines: tuple[ManualJournalLineInput, ...],
    ) -> list[LineDraft]:
        if len(lines) < MIN_LINES:
            raise ValidationError(
                f"At least {MIN_LINES} journal lines are required", field="lines"
            )

        account_ids = {line.account_id for line in lines}
        accounts = {
            account.id: account
            for account in self.session.execute(
                select(Account).where(
                    Account.id.in_(account_ids), Account.tenant_id == tenant_id
                )
            ).scalars()
        }

        drafts: list[LineDraft] = []
        for line_no, line in enumerate(lines, start=1):
            field = f"lines[{line_no}]"
            debit = _money(line.debit_base, f"{field}.debitBase")
            credit = _money(line.credit_base, f"{field}.creditBase")
            if (debit > ZERO) == (credit > ZERO):
                raise ValidationError(
                    f"{field}: exactly one of debitBase / creditBase must be positive",
                    field=field,
                )

            account = accounts.get(line.account_id)
            if account is None or account.legal_entity_id != legal_entity_id:
                raise InvalidPostingAccountError(
                    line.account_id, "account must belong to legalEntityId"
                )
            if not account.is_active or not account.allow_posting:
                raise InvalidPostingAccountError(
                    line.account_id, "account must be ACTIVE and allow posting"
                )

            if line.amount_txn is None:
                amount_txn = debit - credit
            else:
                try:
                    amount_txn = round_money(to_decimal(line.amount_txn, f"{field}.amountTxn"))
                except ValueError as exc:
                    raise ValidationError(str(exc), field=field) from None

            drafts.append(
                LineDraft(
                    line_no=line_no,
                    account_id=account.id,
                    debit_base=debit,
                    credit_base=credit,
                    amount_txn=amount_txn,
                    currency_code=parse_currency(line.currency_code or currency),
                    description=(line.description or None) and line.description[:255],
                    subledger_reference_no=(line.subledger_reference_no or None)
                    and line.subledger_reference_no[:100],
                )
            )

        total_debit, total_credit = journal_totals(drafts)
        if not amounts_equal(total_debit, total_credit, self.settings.balance_epsilon):
            raise ValidationError(
                f"Journal is not balanced: debits {total_debit} != credits {total_credit}",
                field="lines",
            )
        return drafts

    def create_draft_journal(
        self,
        tenant_id: UUID,
        user_id: UUID,
        data: ManualJournalInput,
        request: RequestContext | None = None,
    ) -> JournalEntry:
        """Validate and insert a DRAFT journal in an OPEN period."""
        entity = DocumentPostingValidator(
            self.session, self.settings, self.clock
        ).legal_entity(tenant_id, data.legal_entity_id)
        self.check_scope(request, entity.id)

        entry_date = parse_date(data.entry_date, "entryDate")
        document_date = parse_optional_date(data.document_date, "documentDate") or entry_date
        currency = parse_currency(data.currency_code)
        try:
            source_type = JournalSourceType(enum_value(data.source_type)).value
        except ValueError:
            raise ValidationError(
                f"Unsupported sourceType {data.source_type!r}", field="sourceType"
            ) from None

        lines = self._build_lines(tenant_id, entity.id, currency, tuple(data.lines))
        book_period = CalendarResolver(
            self.session, self.settings, self.clock
        ).resolve_book_and_period(
            tenant_id, entity.id, entry_date, preferred_book_id=data.book_id
        )

        writer = JournalWriter(self.session, self.settings, self.clock)
        entry = writer.write(
            JournalHeader(
                tenant_id=tenant_id,
                legal_entity_id=entity.id,
                book_id=book_period.book_id,
                fiscal_period_id=book_period.fiscal_period_id,
                journal_no=writer.next_journal_no(
                    tenant_id, entity.id, MANUAL_JOURNAL_PREFIX, book_period.fiscal_year
                ),
                entry_date=entry_date,
                document_date=document_date,
                currency_code=currency,
                created_by_id=user_id,
                source_type=source_type,
                status=JournalEntryStatus.DRAFT.value,
                description=(data.description or None) and data.description[:500],
                reference_no=(data.reference_no or None) and data.reference_no[:100],
            ),
            lines,
        )
        self._audit(
            "ledger.journal.create",
            entry,
            user_id,
            {
                "journalNo": entry.journal_no,
                "bookId": entry.book_id,
                "fiscalPeriodId": entry.fiscal_period_id,
                "lineCount": len(lines),
                "totalDebit": entry.total_debit_base,
                "totalCredit": entry.total_credit_base,
            },
            request,
        )
        return entry

    def post_journal(
        self,
        tenant_id: UUID,
        journal_id: UUID,
        user_id: UUID,
        request: RequestContext | None = None,
    ) -> JournalEntry:
        """DRAFT -> POSTED after re-checking the entry's period."""
        with LogContext.bind(tenant_id=tenant_id, actor_id=user_id, entry_id=journal_id):
            entry = self._load(tenant_id, journal_id)
            self.check_scope(request, entry.legal_entity_id, "journalId")
            if entry.status != JournalEntryStatus.DRAFT.value:
                raise AlreadyPostedError(entry.id, entry.status)

            status = CalendarResolver(
                self.session, self.settings, self.clock
            ).period_status(entry.book_id, entry.fiscal_period_id)
            if status is not PeriodStatusCode.OPEN:
                logger.warning(
                    "period_locked_rejection",
                    extra={
                        "book_id": str(entry.book_id),
                        "fiscal_period_id": str(entry.fiscal_period_id),
                        "status": status.value,
                    },
                )
                raise PeriodLockedError(entry.book_id, entry.fiscal_period_id, status.value)

            result = self.session.execute(
                update(JournalEntry)
                .where(
                    JournalEntry.id == entry.id,
                    JournalEntry.status == JournalEntryStatus.DRAFT.value,
                )
                .values(
                    status=JournalEntryStatus.POSTED.value,
                    posted_by_id=user_id,
                    posted_at=self.clock.now(),
                    updated_by_id=user_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyPostedError(entry.id, JournalEntryStatus.POSTED.value)
            self.session.refresh(entry)

            self._audit(
                "ledger.journal.post",
                entry,
                user_id,
                {"journalNo": entry.journal_no, "status": entry.status},
                request,
            )
            logger.info(
                "journal_posted",
                extra={"entry_id": str(entry.id), "journal_no": entry.journal_no},
            )
            return entry

    def reverse_journal(
        self,
        tenant_id: UUID,
        journal_id: UUID,
        user_id: UUID,
        reason: str | None = None,
        reversal_date: date | str | None = None,
        request: RequestContext | None = None,
    ) -> JournalEntry:
        """Mirror a POSTED journal into the open period of ``reversal_date``.

        Returns the new reversal entry.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=user_id, entry_id=journal_id):
            entry = self._load(tenant_id, journal_id)
            self.check_scope(request, entry.legal_entity_id, "journalId")
            if entry.reversal_journal_entry_id is not None:
                raise AlreadyReversedError(entry.id)
            if entry.status != JournalEntryStatus.POSTED.value:
                raise InvalidDocumentStateError(
                    entry.id, entry.status, JournalEntryStatus.POSTED.value
                )
            if not entry.lines:
                raise EmptyJournalError(entry.id)

            on_date = parse_optional_date(reversal_date, "reversalDate") or self.clock.today()
            book_period = CalendarResolver(
                self.session, self.settings, self.clock
            ).resolve_book_and_period(
                tenant_id, entry.legal_entity_id, on_date, preferred_book_id=entry.book_id
            )
            label = f"Reversal of {entry.journal_no}"
            mirrored = build_reversal_lines(
                [LineDraft.from_model(line) for line in entry.lines],
                journal_entry_id=entry.id,
                fallback_description=label,
                epsilon=self.settings.balance_epsilon,
            )
            reason = (reason or "").strip() or DEFAULT_REVERSE_REASON
            now = self.clock.now()

            writer = JournalWriter(self.session, self.settings, self.clock)
            savepoint = self.session.begin_nested()
            try:
                reversal = writer.write(
                    JournalHeader(
                        tenant_id=tenant_id,
                        legal_entity_id=entry.legal_entity_id,
                        book_id=book_period.book_id,
                        fiscal_period_id=book_period.fiscal_period_id,
                        journal_no=format_manual_reversal_journal_no(
                            entry.journal_no, self.settings.journal_no_max_length
                        ),
                        entry_date=on_date,
                        document_date=on_date,
                        currency_code=entry.currency_code,
                        created_by_id=user_id,
                        source_type=entry.source_type,
                        description=label,
                        reference_no=f"REV:{entry.journal_no}"[:100],
                        posted_by_id=user_id,
                        posted_at=now,
                        reversal_of_id=entry.id,
                    ),
                    mirrored,
                )
                savepoint.commit()
            except IntegrityError as exc:
                savepoint.rollback()
                if violates_constraint(
                    exc, "uq_journal_reversal_of", "journal_entries.reversal_of_id"
                ):
                    raise AlreadyReversedError(entry.id) from exc
                raise
            writer.mark_reversed(entry, reversal.id, user_id, reason, now)

            self._audit(
                "ledger.journal.reverse",
                entry,
                user_id,
                {
                    "reason": reason,
                    "originalJournalEntryId": entry.id,
                    "reversalJournalEntryId": reversal.id,
                    "reversalDate": on_date,
                },
                request,
            )
            logger.info(
                "journal_reversed",
                extra={
                    "entry_id": str(entry.id),
                    "reversal_entry_id": str(reversal.id),
                    "reversal_date": on_date.isoformat(),
                },
            )
            return reversal
