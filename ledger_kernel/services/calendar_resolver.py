"""
CalendarResolver -- maps (legal entity, date) to a book and an OPEN period.

Responsibility:
    Picks the book (preferred if valid, else the entity's LOCAL book), finds
    the fiscal period containing the date, and rejects the date unless the
    (book, period) status is OPEN.

Architecture position:
    Kernel > Services.  Read-only.  Must be called inside the same
    transaction as the write that depends on it, so the period cannot be
    closed between the check and the commit going unnoticed.

Invariants enforced:
    - A posting or reversal never targets a period whose status is not OPEN.
    - A missing status row means OPEN.

Failure modes:
    - BookNotFoundError: the entity has no usable book.
    - NoPeriodFoundError: no period in the book's calendar contains the date.
    - PeriodLockedError: the period is SOFT_CLOSED or HARD_CLOSED.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import case, select

from ledger_kernel.domain.dtos import BookPeriod
from ledger_kernel.exceptions import BookNotFoundError, NoPeriodFoundError, PeriodLockedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.organization import (
    Book,
    BookType,
    FiscalPeriod,
    PeriodStatus,
    PeriodStatusCode,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.calendar")


class CalendarResolver(BaseService):
    """
    Resolve accounting dates to (book, fiscal period).

    Contract:
        ``resolve_book_and_period`` returns a BookPeriod whose status is
        OPEN, or raises.

    Non-goals:
        - Does NOT open, close or create periods.
    """

    def resolve_book(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        preferred_book_id: UUID | None = None,
    ) -> Book:
        if preferred_book_id is not None:
            book = self.session.execute(
                select(Book).where(
                    Book.id == preferred_book_id,
                    Book.tenant_id == tenant_id,
                    Book.legal_entity_id == legal_entity_id,
                )
            ).scalar_one_or_none()
            if book is not None:
                return book

        # LOCAL first, then oldest, code as the tie-breaker
        book = self.session.execute(
            select(Book)
            .where(Book.tenant_id == tenant_id, Book.legal_entity_id == legal_entity_id)
            .order_by(
                case((Book.book_type == BookType.LOCAL.value, 0), else_=1),
                Book.created_at,
                Book.code,
            )
            .limit(1)
        ).scalar_one_or_none()
        if book is None:
            raise BookNotFoundError(legal_entity_id)
        return book

    def find_period(self, book: Book, on_date: date) -> FiscalPeriod:
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.calendar_id == book.calendar_id,
                FiscalPeriod.start_date <= on_date,
                FiscalPeriod.end_date >= on_date,
            )
            .order_by(FiscalPeriod.is_adjustment, FiscalPeriod.start_date, FiscalPeriod.period_no)
            .limit(1)
        ).scalar_one_or_none()
        if period is None:
            raise NoPeriodFoundError(book.id, on_date)
        return period

    def period_status(self, book_id: UUID, fiscal_period_id: UUID) -> PeriodStatusCode:
        status = self.session.execute(
            select(PeriodStatus.status).where(
                PeriodStatus.book_id == book_id,
                PeriodStatus.fiscal_period_id == fiscal_period_id,
            )
        ).scalar_one_or_none()
        return PeriodStatusCode(status) if status else PeriodStatusCode.OPEN

    def resolve_book_and_period(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        on_date: date,
        preferred_book_id: UUID | None = None,
    ) -> BookPeriod:
        """
        Resolve the target (book, period) for a write dated ``on_date``.

        Raises:
            BookNotFoundError, NoPeriodFoundError, PeriodLockedError.
        """
        book = self.resolve_book(tenant_id, legal_entity_id, preferred_book_id)
        period = self.find_period(book, on_date)
        status = self.period_status(book.id, period.id)

        if status is not PeriodStatusCode.OPEN:
            logger.warning(
                "period_locked_rejection",
                extra={
                    "book_id": str(book.id),
                    "fiscal_period_id": str(period.id),
                    "status": status.value,
                    "on_date": on_date.isoformat(),
                },
            )
            raise PeriodLockedError(book.id, period.id, status.value)

        return BookPeriod(
            book_id=book.id,
            fiscal_period_id=period.id,
            fiscal_year=period.fiscal_year,
            period_no=period.period_no,
            base_currency_code=book.base_currency_code,
            status=status.value,
        )
