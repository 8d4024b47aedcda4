"""
Module: ledger_kernel.models.journal
Responsibility: Journal entry headers and their debit/credit lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one of (debit_base, credit_base) is > 0 per line, the other is
      0 (ck_journal_line_one_side).
    - line_no is unique per entry; journal_no is unique per book.
    - A journal is reversed at most once: reversal_journal_entry_id and
      reversal_of_id are both unique.
    - Balance (sum of debits == sum of credits) is enforced by the services
      that write entries, not at the ORM level.

Audit relevance:
    Lines are never updated after insert.  The only mutation a POSTED header
    sees is the guarded POSTED -> REVERSED transition.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TimestampedBase, TrackedBase, UUIDString


class JournalEntryStatus(str, Enum):
    """Lifecycle of a journal entry.

    Transitions are one-way: DRAFT -> POSTED -> REVERSED.  System journals
    are created POSTED.
    """

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    REVERSED = "REVERSED"


class JournalSourceType(str, Enum):
    MANUAL = "MANUAL"
    SYSTEM = "SYSTEM"
    INTERCOMPANY = "INTERCOMPANY"
    ELIMINATION = "ELIMINATION"
    ADJUSTMENT = "ADJUSTMENT"


class JournalEntry(TrackedBase):
    """
    Journal entry header -- one balanced GL posting.

    Contract:
        total_debit_base == total_credit_base for every committed entry.
        Lines are written together with the header and never changed.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("book_id", "journal_no", name="uq_journal_book_no"),
        UniqueConstraint("reversal_journal_entry_id", name="uq_journal_reversal"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_entity_period", "tenant_id", "legal_entity_id", "fiscal_period_id"),
        Index("idx_journal_status", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    book_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("books.id"), nullable=False
    )
    fiscal_period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("fiscal_periods.id"), nullable=False
    )
    journal_no: Mapped[str] = mapped_column(String(40), nullable=False)
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JournalSourceType.MANUAL.value
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=JournalEntryStatus.DRAFT.value
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    document_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    total_debit_base: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )
    total_credit_base: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Set on the original when it is reversed
    reversal_journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reverse_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Set on the mirror entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.journal_no} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED

    @property
    def is_balanced(self) -> bool:
        """Read-side convenience; writers enforce balance before insert."""
        debits = sum((line.debit_base for line in self.lines), Decimal("0"))
        credits = sum((line.credit_base for line in self.lines), Decimal("0"))
        return debits == credits


class JournalLine(TimestampedBase):
    """
    One debit or credit leg.

    amount_txn is signed: positive on debit legs, negative on credit legs,
    so the lines of an entry reconstruct the original signed amount.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_no", name="uq_journal_line_no"),
        CheckConstraint(
            "(debit_base > 0 AND credit_base = 0) OR (credit_base > 0 AND debit_base = 0)",
            name="ck_journal_line_one_side",
        ),
        Index("idx_journal_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    subledger_reference_no: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_txn: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )
    debit_base: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )
    credit_base: Mapped[Decimal] = mapped_column(
        Numeric(20, 6), nullable=False, default=Decimal("0")
    )

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_no} account={self.account_id} "
            f"dr={self.debit_base} cr={self.credit_base}>"
        )
