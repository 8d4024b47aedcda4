"""
Journal line builder -- pure functions from posting inputs to balanced lines.

Responsibility:
    ``build_document_lines`` turns one subledger document into a debit line
    and a credit line using its posting rule.  ``build_reversal_lines``
    mirrors any N-line journal.  Both finish with ``ensure_balanced``.

Architecture position:
    Kernel > Domain -- no I/O.

Invariants enforced:
    - Line 1 is the debit leg, line 2 the credit leg.
    - amount_txn is positive on the debit leg and negative on the credit leg.
    - Sum(debit_base) == Sum(credit_base) within the balance epsilon.

Failure modes:
    - ValidationError: non-positive amount.
    - ControlOffsetAccountCollisionError: control and offset are the same
      account.
    - EmptyJournalError: nothing to reverse.
    - UnbalancedJournalError: totals differ by more than epsilon.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Any

from ledger_kernel.db.types import BALANCE_EPSILON, ZERO, amounts_equal, round_money
from ledger_kernel.domain.dtos import DocumentPostingParams, LineDraft
from ledger_kernel.domain.posting_rules import PostingRuleRegistry, Side
from ledger_kernel.exceptions import (
    ControlOffsetAccountCollisionError,
    EmptyJournalError,
    UnbalancedJournalError,
    ValidationError,
)

LINE_DESCRIPTION_MAX_LENGTH = 255
REFERENCE_MAX_LENGTH = 100


def _clip(value: str | None, length: int) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value[:length] or None


def journal_totals(lines: Iterable[LineDraft]) -> tuple[Decimal, Decimal]:
    """Return ``(total_debit, total_credit)`` rounded to money precision."""
    debit = ZERO
    credit = ZERO
    for line in lines:
        debit += line.debit_base
        credit += line.credit_base
    return round_money(debit), round_money(credit)


def ensure_balanced(
    lines: Sequence[LineDraft], epsilon: Decimal = BALANCE_EPSILON
) -> tuple[Decimal, Decimal]:
    """Raise UnbalancedJournalError unless debits equal credits."""
    total_debit, total_credit = journal_totals(lines)
    if not amounts_equal(total_debit, total_credit, epsilon):
        raise UnbalancedJournalError(total_debit, total_credit)
    return total_debit, total_credit


def build_document_lines(
    params: DocumentPostingParams, epsilon: Decimal = BALANCE_EPSILON
) -> tuple[LineDraft, LineDraft]:
    """Build the two lines posting one subledger document."""
    rule = PostingRuleRegistry.get(params.direction, params.document_type)

    amount_txn = round_money(Decimal(params.amount_txn))
    amount_base = round_money(Decimal(params.amount_base))
    if amount_txn <= ZERO:
        raise ValidationError("amountTxn must be greater than 0", field="amountTxn")
    if amount_base <= ZERO:
        raise ValidationError("amountBase must be greater than 0", field="amountBase")
    if params.control_account_id == params.offset_account_id:
        raise ControlOffsetAccountCollisionError(params.control_account_id)

    if rule.control_side is Side.DEBIT:
        debit_account, credit_account = params.control_account_id, params.offset_account_id
    else:
        debit_account, credit_account = params.offset_account_id, params.control_account_id

    description = _clip(params.description, LINE_DESCRIPTION_MAX_LENGTH)
    reference = _clip(params.subledger_reference_no, REFERENCE_MAX_LENGTH)
    currency = params.currency_code.upper()

    lines = (
        LineDraft(
            line_no=1,
            account_id=debit_account,
            debit_base=amount_base,
            credit_base=ZERO,
            amount_txn=amount_txn,
            currency_code=currency,
            description=description,
            subledger_reference_no=reference,
        ),
        LineDraft(
            line_no=2,
            account_id=credit_account,
            debit_base=ZERO,
            credit_base=amount_base,
            amount_txn=-amount_txn,
            currency_code=currency,
            description=description,
            subledger_reference_no=reference,
        ),
    )
    ensure_balanced(lines, epsilon)
    return lines


def build_reversal_lines(
    lines: Sequence[LineDraft],
    *,
    journal_entry_id: Any = None,
    fallback_description: str | None = None,
    subledger_reference_no: str | None = None,
    epsilon: Decimal = BALANCE_EPSILON,
) -> tuple[LineDraft, ...]:
    """
    Mirror an existing journal.

    Every line keeps its account, currency and line number; debit and credit
    swap and amount_txn changes sign.  A line without a description gets
    ``fallback_description``; ``subledger_reference_no`` replaces the
    original reference when given.
    """
    if not lines:
        raise EmptyJournalError(journal_entry_id)

    mirrored = tuple(
        LineDraft(
            line_no=line.line_no,
            account_id=line.account_id,
            debit_base=line.credit_base,
            credit_base=line.debit_base,
            amount_txn=round_money(-line.amount_txn),
            currency_code=line.currency_code,
            description=_clip(line.description, LINE_DESCRIPTION_MAX_LENGTH)
            or _clip(fallback_description, LINE_DESCRIPTION_MAX_LENGTH),
            subledger_reference_no=_clip(
                subledger_reference_no or line.subledger_reference_no,
                REFERENCE_MAX_LENGTH,
            ),
        )
        for line in sorted(lines, key=lambda item: item.line_no)
    )
    ensure_balanced(mirrored, epsilon)
    return mirrored
