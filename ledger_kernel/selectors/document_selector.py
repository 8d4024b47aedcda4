"""
Module: ledger_kernel.selectors.document_selector
Responsibility: Read access to subledger documents and their open items.
Architecture position: Kernel > Selectors.

Failure modes:
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.models.document import LedgerDocument, OpenItem
from ledger_kernel.selectors.base import BaseSelector

MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class DocumentDTO:
    id: UUID
    tenant_id: UUID
    legal_entity_id: UUID
    counterparty_id: UUID
    direction: str
    document_type: str
    status: str
    sequence_namespace: str
    fiscal_year: int
    sequence_no: int
    document_no: str
    document_date: date
    due_date: date | None
    amount_txn: Decimal
    amount_base: Decimal
    open_amount_txn: Decimal
    open_amount_base: Decimal
    currency_code: str
    fx_rate: Decimal | None
    posted_journal_entry_id: UUID | None
    reversal_of_document_id: UUID | None
    posted_at: datetime | None
    reversed_at: datetime | None


@dataclass(frozen=True)
class OpenItemDTO:
    id: UUID
    document_id: UUID
    item_no: int
    status: str
    due_date: date
    original_amount_txn: Decimal
    original_amount_base: Decimal
    residual_amount_txn: Decimal
    residual_amount_base: Decimal
    settled_amount_txn: Decimal
    settled_amount_base: Decimal
    currency_code: str


def _document_dto(row: LedgerDocument) -> DocumentDTO:
    return DocumentDTO(
        id=row.id,
        tenant_id=row.tenant_id,
        legal_entity_id=row.legal_entity_id,
        counterparty_id=row.counterparty_id,
        direction=row.direction,
        document_type=row.document_type,
        status=row.status,
        sequence_namespace=row.sequence_namespace,
        fiscal_year=row.fiscal_year,
        sequence_no=row.sequence_no,
        document_no=row.document_no,
        document_date=row.document_date,
        due_date=row.due_date,
        amount_txn=Decimal(row.amount_txn),
        amount_base=Decimal(row.amount_base),
        open_amount_txn=Decimal(row.open_amount_txn),
        open_amount_base=Decimal(row.open_amount_base),
        currency_code=row.currency_code,
        fx_rate=Decimal(row.fx_rate) if row.fx_rate is not None else None,
        posted_journal_entry_id=row.posted_journal_entry_id,
        reversal_of_document_id=row.reversal_of_document_id,
        posted_at=row.posted_at,
        reversed_at=row.reversed_at,
    )


def _open_item_dto(row: OpenItem) -> OpenItemDTO:
    return OpenItemDTO(
        id=row.id,
        document_id=row.document_id,
        item_no=row.item_no,
        status=row.status,
        due_date=row.due_date,
        original_amount_txn=Decimal(row.original_amount_txn),
        original_amount_base=Decimal(row.original_amount_base),
        residual_amount_txn=Decimal(row.residual_amount_txn),
        residual_amount_base=Decimal(row.residual_amount_base),
        settled_amount_txn=Decimal(row.settled_amount_txn),
        settled_amount_base=Decimal(row.settled_amount_base),
        currency_code=row.currency_code,
    )


class DocumentSelector(BaseSelector):
    """Queries over ``ledger_documents`` and ``open_items``."""

    def get(self, tenant_id: UUID, document_id: UUID) -> DocumentDTO | None:
        row = self.session.execute(
            select(LedgerDocument).where(
                LedgerDocument.tenant_id == tenant_id, LedgerDocument.id == document_id
            )
        ).scalar_one_or_none()
        return _document_dto(row) if row is not None else None

    def list(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID | None = None,
        direction: str | None = None,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DocumentDTO]:
        """Newest document date first, then document number."""
        stmt = select(LedgerDocument).where(LedgerDocument.tenant_id == tenant_id)
        if legal_entity_id is not None:
            stmt = stmt.where(LedgerDocument.legal_entity_id == legal_entity_id)
        if direction is not None:
            stmt = stmt.where(LedgerDocument.direction == str(direction).upper())
        if status is not None:
            stmt = stmt.where(LedgerDocument.status == str(status).upper())
        stmt = (
            stmt.order_by(LedgerDocument.document_date.desc(), LedgerDocument.document_no)
            .limit(max(1, min(int(limit), MAX_PAGE_SIZE)))
            .offset(max(0, int(offset)))
        )
        return [_document_dto(row) for row in self.session.execute(stmt).scalars()]

    def open_item_for(self, document_id: UUID) -> OpenItemDTO | None:
        row = self.session.execute(
            select(OpenItem)
            .where(OpenItem.document_id == document_id)
            .order_by(OpenItem.item_no)
            .limit(1)
        ).scalar_one_or_none()
        return _open_item_dto(row) if row is not None else None

    def reversal_of(self, document_id: UUID) -> DocumentDTO | None:
        """The reversal document created for ``document_id``, if any."""
        row = self.session.execute(
            select(LedgerDocument).where(LedgerDocument.reversal_of_document_id == document_id)
        ).scalar_one_or_none()
        return _document_dto(row) if row is not None else None
