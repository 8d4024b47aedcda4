"""
Module: ledger_kernel.models.document
Responsibility: AR/AP subledger documents and the open items they create.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant, entity, direction, namespace, fiscal year, sequence_no) is
      unique: the backstop behind the sequence allocator.
    - A document links to at most one posted journal
      (uq_ledger_doc_posted_journal) and is reversed at most once
      (uq_ledger_doc_single_reversal).
    - Open amounts never exceed the document amounts and are never negative.

Failure modes:
    - IntegrityError on uq_ledger_doc_single_reversal when two reversals
      race; the reversal engine translates it to AlreadyReversedError.

Audit relevance:
    status, sequence_no, document_no and posted_journal_entry_id are written
    only by the draft lifecycle, posting orchestrator and reversal engine.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase, TrackedBase, UUIDString

SINGLE_REVERSAL_CONSTRAINT = "uq_ledger_doc_single_reversal"
SEQUENCE_CONSTRAINT = "uq_ledger_doc_sequence"


class DocumentStatus(str, Enum):
    """Lifecycle of a subledger document.

    DRAFT -> POSTED -> REVERSED, or DRAFT -> CANCELLED.  The settlement
    states are reached by settlement allocation outside this package.
    """

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    PARTIALLY_SETTLED = "PARTIALLY_SETTLED"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"
    REVERSED = "REVERSED"


class OpenItemStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_SETTLED = "PARTIALLY_SETTLED"
    SETTLED = "SETTLED"
    WRITTEN_OFF = "WRITTEN_OFF"
    CANCELLED = "CANCELLED"


class LedgerDocument(TrackedBase):
    """An AR or AP business document in the subledger."""

    __tablename__ = "ledger_documents"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "legal_entity_id",
            "direction",
            "sequence_namespace",
            "fiscal_year",
            "sequence_no",
            name=SEQUENCE_CONSTRAINT,
        ),
        UniqueConstraint(
            "tenant_id",
            "legal_entity_id",
            "direction",
            "sequence_namespace",
            "fiscal_year",
            "document_no",
            name="uq_ledger_doc_document_no",
        ),
        UniqueConstraint("posted_journal_entry_id", name="uq_ledger_doc_posted_journal"),
        UniqueConstraint("reversal_of_document_id", name=SINGLE_REVERSAL_CONSTRAINT),
        CheckConstraint("amount_txn >= 0", name="ck_ledger_doc_amount_txn"),
        CheckConstraint("amount_base >= 0", name="ck_ledger_doc_amount_base"),
        CheckConstraint(
            "open_amount_txn >= 0 AND open_amount_txn <= amount_txn",
            name="ck_ledger_doc_open_txn",
        ),
        CheckConstraint(
            "open_amount_base >= 0 AND open_amount_base <= amount_base",
            name="ck_ledger_doc_open_base",
        ),
        CheckConstraint(
            "due_date IS NULL OR due_date >= document_date",
            name="ck_ledger_doc_due_date",
        ),
        Index("idx_ledger_doc_entity_status", "tenant_id", "legal_entity_id", "status"),
        Index("idx_ledger_doc_counterparty", "tenant_id", "counterparty_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("counterparties.id"), nullable=False
    )
    payment_term_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("payment_terms.id"), nullable=True
    )
    direction: Mapped[str] = mapped_column(String(2), nullable=False)
    document_type: Mapped[str] = mapped_column(String(20), nullable=False)

    sequence_namespace: Mapped[str] = mapped_column(String(40), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    document_no: Mapped[str] = mapped_column(String(80), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentStatus.DRAFT.value
    )
    document_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    amount_txn: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    amount_base: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    open_amount_txn: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    open_amount_base: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    fx_rate: Mapped[Decimal | None] = mapped_column(Numeric(20, 10), nullable=True)

    # Snapshots frozen at posting time
    counterparty_code_snapshot: Mapped[str | None] = mapped_column(String(60), nullable=True)
    counterparty_name_snapshot: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_term_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date_snapshot: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency_code_snapshot: Mapped[str | None] = mapped_column(String(3), nullable=True)
    fx_rate_snapshot: Mapped[Decimal | None] = mapped_column(Numeric(20, 10), nullable=True)

    posted_journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    reversal_of_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_documents.id"), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerDocument {self.document_no} status={self.status}>"


class OpenItem(TimestampedBase):
    """Outstanding balance of a posted document.

    Created with residual == original; cancelled when the document is
    reversed.  Settlement is handled elsewhere.
    """

    __tablename__ = "open_items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_id", "item_no", name="uq_open_item_doc_item"),
        Index("idx_open_item_counterparty", "tenant_id", "counterparty_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("counterparties.id"), nullable=False
    )
    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_documents.id"), nullable=False
    )
    item_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OpenItemStatus.OPEN.value
    )
    document_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    original_amount_txn: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    original_amount_base: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    residual_amount_txn: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    residual_amount_base: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    settled_amount_txn: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )
    settled_amount_base: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
