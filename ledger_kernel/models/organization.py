"""
Module: ledger_kernel.models.organization
Responsibility: Legal entities, books, fiscal calendars, fiscal periods and
    the per-book period lock state.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A period status row is unique per (book, fiscal period); a missing row
      means OPEN.
    - Fiscal periods are unique per (calendar, fiscal year, period no).

Audit relevance:
    PeriodStatus rows decide whether a posting or reversal may write into a
    period.  They are read-only to the posting engine.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase, UUIDString


class BookType(str, Enum):
    LOCAL = "LOCAL"
    GROUP = "GROUP"


class PeriodStatusCode(str, Enum):
    """Lock state of a fiscal period for one book.

    Only OPEN accepts postings and reversals.
    """

    OPEN = "OPEN"
    SOFT_CLOSED = "SOFT_CLOSED"
    HARD_CLOSED = "HARD_CLOSED"


class LegalEntity(TimestampedBase):
    """A legal entity within a tenant; owns books, accounts and documents."""

    __tablename__ = "legal_entities"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_legal_entity_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    functional_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)

    def __repr__(self) -> str:
        return f"<LegalEntity {self.code} ccy={self.functional_currency_code}>"


class FiscalCalendar(TimestampedBase):
    """A named set of fiscal periods shared by one or more books."""

    __tablename__ = "fiscal_calendars"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_fiscal_calendar_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Book(TimestampedBase):
    """
    A ledger instance of a legal entity.

    Contract:
        Each book has its own base currency and fiscal calendar.  Postings
        default to the entity's LOCAL book.
    """

    __tablename__ = "books"

    __table_args__ = (
        UniqueConstraint("tenant_id", "legal_entity_id", "code", name="uq_book_code"),
        Index("idx_book_entity_type", "tenant_id", "legal_entity_id", "book_type"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    calendar_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("fiscal_calendars.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    book_type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=BookType.LOCAL.value
    )
    base_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)


class FiscalPeriod(TimestampedBase):
    """A dated window of a fiscal calendar."""

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint(
            "calendar_id", "fiscal_year", "period_no", name="uq_fiscal_period_no"
        ),
        Index("idx_fiscal_period_dates", "calendar_id", "start_date", "end_date"),
    )

    calendar_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("fiscal_calendars.id"), nullable=False
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_no: Mapped[int] = mapped_column(Integer, nullable=False)
    period_name: Mapped[str] = mapped_column(String(60), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_adjustment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date


class PeriodStatus(TimestampedBase):
    """Lock state of one fiscal period for one book."""

    __tablename__ = "period_statuses"

    __table_args__ = (
        UniqueConstraint("book_id", "fiscal_period_id", name="uq_book_period_status"),
    )

    book_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("books.id"), nullable=False
    )
    fiscal_period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("fiscal_periods.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(12), nullable=False, default=PeriodStatusCode.OPEN.value
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
