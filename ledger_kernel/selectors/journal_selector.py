"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read access to journal entries, their lines, and account
    balances derived from those lines.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Lines are returned in line_no order.
    - Balances are computed from journal_lines; nothing is stored.  POSTED
      and REVERSED entries both count, DRAFT entries do not, so a posting
      and its reversal net to zero.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.selectors.base import BaseSelector

BALANCE_STATUSES = (JournalEntryStatus.POSTED.value, JournalEntryStatus.REVERSED.value)


@dataclass(frozen=True)
class JournalLineDTO:
    line_no: int
    account_id: UUID
    debit_base: Decimal
    credit_base: Decimal
    amount_txn: Decimal
    currency_code: str
    description: str | None
    subledger_reference_no: str | None


@dataclass(frozen=True)
class JournalEntryDTO:
    id: UUID
    journal_no: str
    book_id: UUID
    fiscal_period_id: UUID
    status: str
    source_type: str
    entry_date: date
    currency_code: str
    description: str | None
    reference_no: str | None
    total_debit_base: Decimal
    total_credit_base: Decimal
    posted_at: datetime | None
    reversal_journal_entry_id: UUID | None
    reversal_of_id: UUID | None
    lines: tuple[JournalLineDTO, ...]

    @property
    def is_balanced(self) -> bool:
        return self.total_debit_base == self.total_credit_base


@dataclass(frozen=True)
class AccountBalance:
    account_id: UUID
    total_debit: Decimal
    total_credit: Decimal

    @property
    def net(self) -> Decimal:
        """Debit minus credit."""
        return self.total_debit - self.total_credit


def _line_dto(line: JournalLine) -> JournalLineDTO:
    return JournalLineDTO(
        line_no=line.line_no,
        account_id=line.account_id,
        debit_base=Decimal(line.debit_base),
        credit_base=Decimal(line.credit_base),
        amount_txn=Decimal(line.amount_txn),
        currency_code=line.currency_code,
        description=line.description,
        subledger_reference_no=line.subledger_reference_no,
    )


class JournalSelector(BaseSelector):
    """Queries over ``journal_entries`` and ``journal_lines``."""

    def get_entry(self, tenant_id: UUID, journal_entry_id: UUID) -> JournalEntryDTO | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id, JournalEntry.id == journal_entry_id
            )
        ).scalar_one_or_none()
        if entry is None:
            return None
        return JournalEntryDTO(
            id=entry.id,
            journal_no=entry.journal_no,
            book_id=entry.book_id,
            fiscal_period_id=entry.fiscal_period_id,
            status=entry.status,
            source_type=entry.source_type,
            entry_date=entry.entry_date,
            currency_code=entry.currency_code,
            description=entry.description,
            reference_no=entry.reference_no,
            total_debit_base=Decimal(entry.total_debit_base),
            total_credit_base=Decimal(entry.total_credit_base),
            posted_at=entry.posted_at,
            reversal_journal_entry_id=entry.reversal_journal_entry_id,
            reversal_of_id=entry.reversal_of_id,
            lines=tuple(_line_dto(line) for line in entry.lines),
        )

    def get_lines(self, journal_entry_id: UUID) -> list[JournalLineDTO]:
        rows = self.session.execute(
            select(JournalLine)
            .where(JournalLine.journal_entry_id == journal_entry_id)
            .order_by(JournalLine.line_no)
        ).scalars()
        return [_line_dto(line) for line in rows]

    def account_balances(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        book_id: UUID | None = None,
    ) -> dict[UUID, AccountBalance]:
        """Per-account debit and credit totals, keyed by account id."""
        stmt = (
            select(
                JournalLine.account_id,
                func.coalesce(func.sum(JournalLine.debit_base), 0),
                func.coalesce(func.sum(JournalLine.credit_base), 0),
            )
            .join(JournalEntry, JournalEntry.id == JournalLine.journal_entry_id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.legal_entity_id == legal_entity_id,
                JournalEntry.status.in_(BALANCE_STATUSES),
            )
            .group_by(JournalLine.account_id)
        )
        if book_id is not None:
            stmt = stmt.where(JournalEntry.book_id == book_id)

        return {
            account_id: AccountBalance(
                account_id=account_id,
                total_debit=Decimal(str(debit)),
                total_credit=Decimal(str(credit)),
            )
            for account_id, debit, credit in self.session.execute(stmt).all()
        }
