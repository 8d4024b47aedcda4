"""
DocumentService -- DRAFT lifecycle of subledger documents.

Responsibility:
    Creates, edits and cancels DRAFT documents.  Drafts carry a provisional
    number from the DRAFT namespace; the final number is assigned only by
    PostingOrchestrator.

Architecture position:
    Kernel > Services -- imperative shell.  Runs inside the caller's
    transaction; every operation appends one audit row.

Invariants enforced:
    - Only DRAFT documents are edited or cancelled; the row is locked first.
    - The provisional number is reassigned only when the document is still
      in the DRAFT namespace and its direction or fiscal year changes.
    - A draft's open amounts equal its amounts; a cancelled draft has zero
      open amounts.

Failure modes:
    - ValidationError and subclasses for malformed input.
    - DocumentNotFoundError, InvalidDocumentStateError.
    - Everything DocumentPostingValidator raises.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ONE, ZERO, normalize_currency, round_money, round_rate, to_decimal
from ledger_kernel.domain.document_rules import (
    fiscal_year_from_date,
    parse_date,
    parse_optional_date,
    payment_term_snapshot,
)
from ledger_kernel.domain.dtos import (
    DraftDocumentInput,
    DraftDocumentPatch,
    RequestContext,
    SequenceScope,
)
from ledger_kernel.domain.numbering import format_draft_document_no
from ledger_kernel.domain.posting_rules import enum_value
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidDocumentStateError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.counterparty import PaymentTerm
from ledger_kernel.models.document import DocumentStatus, LedgerDocument
from ledger_kernel.services.audit_service import RESOURCE_DOCUMENT, AuditLogWriter, AuditRecord
from ledger_kernel.services.base import GuardedService
from ledger_kernel.services.document_validator import DocumentPostingValidator
from ledger_kernel.services.sequence_service import SequenceAllocator

logger = get_logger("services.document")


def fetch_document(
    session: Session, tenant_id: UUID, document_id: UUID, *, for_update: bool = False
) -> LedgerDocument:
    """Load a document of the tenant, optionally with a row lock.

    Raises:
        DocumentNotFoundError
    """
    stmt = select(LedgerDocument).where(
        LedgerDocument.id == document_id, LedgerDocument.tenant_id == tenant_id
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    document = session.execute(stmt).scalar_one_or_none()
    if document is None:
        raise DocumentNotFoundError(document_id)
    return document


def parse_amount(value: Any, field: str) -> Decimal:
    """Positive money amount rounded to column precision."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    try:
        amount = round_money(to_decimal(value, field))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from None
    if amount <= ZERO:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    return amount


def parse_optional_rate(value: Any, field: str = "fxRate") -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        rate = round_rate(to_decimal(value, field))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from None
    if rate <= ZERO:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    return rate


def parse_currency(value: Any, field: str = "currencyCode") -> str:
    try:
        return normalize_currency(value)
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from None


def term_snapshot(term: PaymentTerm | None) -> str | None:
    if term is None:
        return None
    return payment_term_snapshot(
        term.code, term.name, term.due_days, term.grace_days, term.is_end_of_month, term.status
    )


def _summary(document: LedgerDocument) -> dict[str, Any]:
    return {
        "documentNo": document.document_no,
        "direction": document.direction,
        "documentType": document.document_type,
        "status": document.status,
        "documentDate": document.document_date,
        "dueDate": document.due_date,
        "amountTxn": document.amount_txn,
        "amountBase": document.amount_base,
        "currencyCode": document.currency_code,
    }


class DocumentService(GuardedService):
    """
    Draft document lifecycle.

    Usage:
        with session_scope() as session:
            doc = DocumentService(session, clock=clock).create_draft(
                tenant_id, user_id, DraftDocumentInput(...)
            )
    """

    @property
    def _validator(self) -> DocumentPostingValidator:
        return DocumentPostingValidator(self.session, self.settings, self.clock)

    def _allocate_draft_number(
        self, tenant_id: UUID, legal_entity_id: UUID, direction: str, fiscal_year: int
    ) -> tuple[int, str]:
        scope = SequenceScope(
            tenant_id=tenant_id,
            legal_entity_id=legal_entity_id,
            direction=direction,
            namespace=self.settings.draft_namespace,
        )
        seq = SequenceAllocator(self.session, self.settings, self.clock).allocate(
            scope, fiscal_year
        )
        return seq, format_draft_document_no(direction, fiscal_year, seq)

    def _audit(
        self,
        action: str,
        document: LedgerDocument,
        user_id: UUID,
        payload: dict[str, Any],
        request: RequestContext | None,
    ) -> None:
        AuditLogWriter(self.session, self.clock).record(
            AuditRecord(
                tenant_id=document.tenant_id,
                user_id=user_id,
                action=action,
                resource_type=RESOURCE_DOCUMENT,
                resource_id=document.id,
                scope_id=document.legal_entity_id,
                payload=payload,
                request=request,
            )
        )

    def create_draft(
        self,
        tenant_id: UUID,
        user_id: UUID,
        data: DraftDocumentInput,
        request: RequestContext | None = None,
    ) -> LedgerDocument:
        """Validate ``data`` and insert a DRAFT document."""
        validator = self._validator
        entity = validator.legal_entity(tenant_id, data.legal_entity_id)
        self.check_scope(request, entity.id)

        document_date = parse_date(data.document_date, "documentDate")
        fiscal_year = fiscal_year_from_date(data.document_date)
        amount_txn = parse_amount(data.amount_txn, "amountTxn")
        currency = parse_currency(data.currency_code)
        fx_rate = parse_optional_rate(data.fx_rate)
        checked = validator.validate(
            tenant_id,
            entity.id,
            data.direction,
            data.document_type,
            data.counterparty_id,
            data.payment_term_id,
            document_date,
            parse_optional_date(data.due_date, "dueDate"),
        )
        direction = checked.rule.direction.value
        amount_base = round_money(amount_txn * (fx_rate or ONE))

        seq, document_no = self._allocate_draft_number(
            tenant_id, entity.id, direction, fiscal_year
        )
        document = LedgerDocument(
            tenant_id=tenant_id,
            legal_entity_id=entity.id,
            counterparty_id=checked.counterparty.id,
            payment_term_id=checked.payment_term.id if checked.payment_term else None,
            direction=direction,
            document_type=checked.rule.document_type.value,
            sequence_namespace=self.settings.draft_namespace,
            fiscal_year=fiscal_year,
            sequence_no=seq,
            document_no=document_no,
            status=DocumentStatus.DRAFT.value,
            document_date=document_date,
            due_date=checked.due_date,
            description=(data.description or None) and data.description.strip()[:500],
            amount_txn=amount_txn,
            amount_base=amount_base,
            open_amount_txn=amount_txn,
            open_amount_base=amount_base,
            currency_code=currency,
            fx_rate=fx_rate,
            counterparty_code_snapshot=checked.counterparty.code,
            counterparty_name_snapshot=checked.counterparty.name,
            payment_term_snapshot=term_snapshot(checked.payment_term),
            due_date_snapshot=checked.due_date,
            currency_code_snapshot=currency,
            fx_rate_snapshot=fx_rate,
            created_by_id=user_id,
        )
        self.session.add(document)
        self.session.flush()

        self._audit(
            "ledger.document.draft.create",
            document,
            user_id,
            {
                "documentNo": document.document_no,
                "direction": document.direction,
                "documentType": document.document_type,
                "status": document.status,
            },
            request,
        )
        logger.info(
            "draft_document_created",
            extra={
                "document_id": str(document.id),
                "document_no": document.document_no,
                "direction": direction,
                "document_type": document.document_type,
            },
        )
        return document

    def update_draft(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        patch: DraftDocumentPatch,
        request: RequestContext | None = None,
    ) -> LedgerDocument:
        """Apply ``patch`` to a DRAFT document and re-validate the result."""
        document = fetch_document(self.session, tenant_id, document_id, for_update=True)
        self.check_scope(request, document.legal_entity_id, "documentId")
        if document.status != DocumentStatus.DRAFT.value:
            raise InvalidDocumentStateError(
                document.id, document.status, DocumentStatus.DRAFT.value
            )
        before = _summary(document)

        direction = enum_value(patch.direction or document.direction)
        document_type = enum_value(patch.document_type or document.document_type)
        raw_date = patch.document_date if patch.document_date is not None else document.document_date
        document_date = parse_date(raw_date, "documentDate")
        fiscal_year = fiscal_year_from_date(raw_date)
        amount_txn = parse_amount(
            patch.amount_txn if patch.amount_txn is not None else document.amount_txn,
            "amountTxn",
        )
        currency = parse_currency(patch.currency_code or document.currency_code)
        fx_rate = parse_optional_rate(
            patch.fx_rate if patch.supplied("fx_rate") else document.fx_rate
        )
        due_date = parse_optional_date(
            patch.due_date if patch.supplied("due_date") else document.due_date, "dueDate"
        )
        payment_term_id = (
            patch.payment_term_id if patch.supplied("payment_term_id") else document.payment_term_id
        )
        checked = self._validator.validate(
            tenant_id,
            document.legal_entity_id,
            direction,
            document_type,
            patch.counterparty_id or document.counterparty_id,
            payment_term_id,
            document_date,
            due_date,
        )
        direction = checked.rule.direction.value

        renumber = document.sequence_namespace == self.settings.draft_namespace and (
            direction != document.direction or fiscal_year != document.fiscal_year
        )
        if renumber:
            seq, document_no = self._allocate_draft_number(
                tenant_id, document.legal_entity_id, direction, fiscal_year
            )
            document.sequence_no = seq
            document.document_no = document_no
            document.fiscal_year = fiscal_year

        amount_base = round_money(amount_txn * (fx_rate or ONE))
        document.direction = direction
        document.document_type = checked.rule.document_type.value
        document.counterparty_id = checked.counterparty.id
        document.payment_term_id = checked.payment_term.id if checked.payment_term else None
        document.document_date = document_date
        document.due_date = checked.due_date
        document.amount_txn = amount_txn
        document.amount_base = amount_base
        document.open_amount_txn = amount_txn
        document.open_amount_base = amount_base
        document.currency_code = currency
        document.fx_rate = fx_rate
        if patch.supplied("description"):
            document.description = (patch.description or "").strip()[:500] or None
        document.counterparty_code_snapshot = checked.counterparty.code
        document.counterparty_name_snapshot = checked.counterparty.name
        document.payment_term_snapshot = term_snapshot(checked.payment_term)
        document.due_date_snapshot = checked.due_date
        document.currency_code_snapshot = currency
        document.fx_rate_snapshot = fx_rate
        document.updated_by_id = user_id
        self.session.flush()

        self._audit(
            "ledger.document.draft.update",
            document,
            user_id,
            {"before": before, "after": _summary(document), "renumbered": renumber},
            request,
        )
        logger.info(
            "draft_document_updated",
            extra={
                "document_id": str(document.id),
                "document_no": document.document_no,
                "renumbered": renumber,
            },
        )
        return document

    def cancel_draft(
        self,
        tenant_id: UUID,
        document_id: UUID,
        user_id: UUID,
        request: RequestContext | None = None,
    ) -> LedgerDocument:
        """DRAFT -> CANCELLED with zero open amounts."""
        document = fetch_document(self.session, tenant_id, document_id, for_update=True)
        self.check_scope(request, document.legal_entity_id, "documentId")
        if document.status != DocumentStatus.DRAFT.value:
            raise InvalidDocumentStateError(
                document.id, document.status, DocumentStatus.DRAFT.value
            )

        document.status = DocumentStatus.CANCELLED.value
        document.open_amount_txn = ZERO
        document.open_amount_base = ZERO
        document.updated_by_id = user_id
        self.session.flush()

        self._audit(
            "ledger.document.draft.cancel",
            document,
            user_id,
            {"documentNo": document.document_no, "status": document.status},
            request,
        )
        logger.info(
            "draft_document_cancelled",
            extra={"document_id": str(document.id), "document_no": document.document_no},
        )
        return document
