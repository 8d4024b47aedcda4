"""
DTOs -- immutable data flowing through the posting pipeline.

Responsibility:
    Input records for draft documents and manual journals, the line drafts
    produced by the line builder, and the resolution records returned by the
    calendar, FX and account resolvers.

Architecture position:
    Kernel > Domain -- pure, no ORM or database access.  ``from_model``
    converters are only called from services.

Data flow:
    DraftDocumentInput -> LedgerDocument row -> DocumentPostingParams
        -> LineDraft tuple -> JournalLine rows
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ledger_kernel.db.types import ZERO

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine as JournalLineModel


@dataclass(frozen=True)
class LineDraft:
    """
    One proposed journal line.

    Guarantees (checked in __post_init__):
        - exactly one of debit_base / credit_base is > 0, the other is 0.
    """

    line_no: int
    account_id: UUID
    debit_base: Decimal
    credit_base: Decimal
    amount_txn: Decimal
    currency_code: str
    description: str | None = None
    subledger_reference_no: str | None = None

    def __post_init__(self) -> None:
        debit_side = self.debit_base > ZERO and self.credit_base == ZERO
        credit_side = self.credit_base > ZERO and self.debit_base == ZERO
        if not (debit_side or credit_side):
            raise ValueError(
                f"Line {self.line_no}: exactly one of debit/credit must be positive "
                f"(debit={self.debit_base}, credit={self.credit_base})"
            )

    @property
    def is_debit(self) -> bool:
        return self.debit_base > ZERO

    @classmethod
    def from_model(cls, line: "JournalLineModel") -> "LineDraft":
        return cls(
            line_no=line.line_no,
            account_id=line.account_id,
            debit_base=Decimal(line.debit_base),
            credit_base=Decimal(line.credit_base),
            amount_txn=Decimal(line.amount_txn),
            currency_code=line.currency_code,
            description=line.description,
            subledger_reference_no=line.subledger_reference_no,
        )


@dataclass(frozen=True)
class DocumentPostingParams:
    """Everything the line builder needs to post one subledger document."""

    direction: str
    document_type: str
    amount_txn: Decimal
    amount_base: Decimal
    control_account_id: UUID
    offset_account_id: UUID
    currency_code: str
    description: str | None = None
    subledger_reference_no: str | None = None


@dataclass(frozen=True)
class SequenceScope:
    """Numbering scope: (tenant, legal entity, direction, namespace)."""

    tenant_id: UUID
    legal_entity_id: UUID
    direction: str
    namespace: str


@dataclass(frozen=True)
class BookPeriod:
    """Result of resolving a date to a book and an OPEN fiscal period."""

    book_id: UUID
    fiscal_period_id: UUID
    fiscal_year: int
    period_no: int
    base_currency_code: str
    status: str


@dataclass(frozen=True)
class FxResolution:
    """
    Effective FX rate for a document.

    source is PARITY (same currency), FX_TABLE (a reference row exists) or
    DOCUMENT (draft rate, no reference row exists).
    """

    effective_rate: Decimal
    locked: bool
    reference_rate: Decimal | None
    override_used: bool
    source: str
    rate_date: date
    from_currency: str
    to_currency: str


@dataclass(frozen=True)
class PostingAccounts:
    control_account_id: UUID
    offset_account_id: UUID
    control_purpose_code: str
    offset_purpose_code: str
    control_overridden: bool = False


@dataclass(frozen=True)
class RequestContext:
    """Transport-level metadata recorded on audit rows.

    ``principal`` is opaque to the kernel and handed to the scope guard.
    """

    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    principal: Any = None


@dataclass(frozen=True)
class DraftDocumentInput:
    legal_entity_id: UUID
    counterparty_id: UUID
    direction: str
    document_type: str
    document_date: date | str
    amount_txn: Decimal | int | str
    currency_code: str
    payment_term_id: UUID | None = None
    due_date: date | str | None = None
    fx_rate: Decimal | int | str | None = None
    description: str | None = None


class _Unset:
    """Marker for a patch field that was not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class DraftDocumentPatch:
    """
    Partial update of a draft.

    Required fields left as None keep their current value.  The nullable
    fields (payment term, due date, FX rate, description) keep their value
    only when left UNSET; an explicit None clears them.
    """

    counterparty_id: UUID | None = None
    direction: str | None = None
    document_type: str | None = None
    document_date: date | str | None = None
    amount_txn: Decimal | int | str | None = None
    currency_code: str | None = None
    payment_term_id: UUID | None = UNSET
    due_date: date | str | None = UNSET
    fx_rate: Decimal | int | str | None = UNSET
    description: str | None = UNSET

    def supplied(self, name: str) -> bool:
        return getattr(self, name) is not UNSET


@dataclass(frozen=True)
class ManualJournalLineInput:
    account_id: UUID
    debit_base: Decimal | int | str = ZERO
    credit_base: Decimal | int | str = ZERO
    amount_txn: Decimal | int | str | None = None
    currency_code: str | None = None
    description: str | None = None
    subledger_reference_no: str | None = None


@dataclass(frozen=True)
class ManualJournalInput:
    legal_entity_id: UUID
    entry_date: date | str
    currency_code: str
    lines: tuple[ManualJournalLineInput, ...] = field(default_factory=tuple)
    book_id: UUID | None = None
    document_date: date | str | None = None
    description: str | None = None
    reference_no: str | None = None
    source_type: str = "MANUAL"
