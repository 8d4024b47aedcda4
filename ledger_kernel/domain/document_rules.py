"""
Document rules -- date parsing, fiscal year and due-date derivation.

Pure functions shared by the draft lifecycle and the posting orchestrator,
so a document is validated the same way when it is saved and when it is
posted.
"""

import json
from datetime import date, datetime, timedelta
from typing import Any

from ledger_kernel.domain.posting_rules import PostingRule
from ledger_kernel.exceptions import InvalidDateError, ValidationError

MIN_FISCAL_YEAR = 1900


def parse_date(value: Any, field: str = "date") -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string.

    Raises:
        InvalidDateError: anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise InvalidDateError(value, field) from None
    raise InvalidDateError(value, field)


def parse_optional_date(value: Any, field: str = "date") -> date | None:
    if value is None or value == "":
        return None
    return parse_date(value, field)


def fiscal_year_from_date(value: Any, field: str = "documentDate") -> int:
    """Fiscal year of an accounting date: its 4-digit calendar year, >= 1900."""
    if isinstance(value, str):
        head = value.strip()[:4]
        if len(head) != 4 or not head.isdigit():
            raise InvalidDateError(value, field)
        parse_date(value, field)
        year = int(head)
    else:
        year = parse_date(value, field).year
    if year < MIN_FISCAL_YEAR:
        raise InvalidDateError(value, field)
    return year


def resolve_due_date(
    rule: PostingRule,
    document_date: date,
    due_date: date | None,
    due_days: int | None = None,
    grace_days: int | None = None,
    has_payment_term: bool = False,
) -> date | None:
    """
    Explicit due date wins; otherwise types that need one derive it from the
    payment term as document_date + due_days + grace_days.

    Raises:
        ValidationError: due date required but neither given nor derivable,
            or due date before document date.
    """
    resolved = due_date
    if resolved is None and rule.requires_due_date:
        if not has_payment_term:
            raise ValidationError(
                f"dueDate is required for documentType={rule.document_type.value}",
                field="dueDate",
            )
        resolved = document_date + timedelta(days=int(due_days or 0) + int(grace_days or 0))

    if resolved is not None and resolved < document_date:
        raise ValidationError("dueDate cannot be before documentDate", field="dueDate")
    return resolved


def payment_term_snapshot(
    code: str, name: str, due_days: int, grace_days: int, is_end_of_month: bool, status: str
) -> str:
    """Stable JSON text frozen onto a posted document."""
    return json.dumps(
        {
            "code": code or "",
            "name": name or "",
            "dueDays": int(due_days or 0),
            "graceDays": int(grace_days or 0),
            "isEndOfMonth": bool(is_end_of_month),
            "status": status or "",
        },
        sort_keys=True,
    )
