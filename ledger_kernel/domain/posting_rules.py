"""
Posting rules -- one rule per (direction, document type) variant.

Responsibility:
    Encodes the sign table of the subledger: which side the control account
    takes for every supported combination.  Dispatch goes through
    ``PostingRuleRegistry.get(direction, document_type)``; there is no
    branching on document type strings anywhere else.

Sign table (side of the control account):

    =========== ===================== =====================
    direction   INVOICE, DEBIT_NOTE   CREDIT_NOTE, PAYMENT,
                                      ADJUSTMENT
    =========== ===================== =====================
    AR          DEBIT                 CREDIT
    AP          CREDIT                DEBIT
    =========== ===================== =====================

Invariants enforced:
    - The registry covers every Direction x DocumentType pair; this is
      asserted when the module is imported.
"""

from dataclasses import dataclass
from enum import Enum
from itertools import product
from typing import ClassVar

from ledger_kernel.exceptions import UnsupportedDocumentTypeError


class Direction(str, Enum):
    AR = "AR"
    AP = "AP"


class DocumentType(str, Enum):
    INVOICE = "INVOICE"
    DEBIT_NOTE = "DEBIT_NOTE"
    CREDIT_NOTE = "CREDIT_NOTE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"


class Side(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    @property
    def opposite(self) -> "Side":
        return Side.CREDIT if self is Side.DEBIT else Side.DEBIT


POSITIVE_SIGN_TYPES: frozenset[DocumentType] = frozenset(
    {DocumentType.INVOICE, DocumentType.DEBIT_NOTE}
)
DUE_DATE_REQUIRED_TYPES: frozenset[DocumentType] = POSITIVE_SIGN_TYPES

# Control account polarity for positive-sign types; negative-sign types invert.
_POSITIVE_CONTROL_SIDE = {
    Direction.AR: Side.DEBIT,
    Direction.AP: Side.CREDIT,
}


@dataclass(frozen=True)
class PostingRule:
    """
    How one document variant hits the ledger.

    Contract:
        ``control_side`` is the side of the control account; the offset
        account takes the opposite side.
    """

    direction: Direction
    document_type: DocumentType
    control_side: Side
    requires_due_date: bool

    @property
    def offset_side(self) -> Side:
        return self.control_side.opposite

    @property
    def is_positive_sign(self) -> bool:
        return self.document_type in POSITIVE_SIGN_TYPES


def _rule_for(direction: Direction, document_type: DocumentType) -> PostingRule:
    side = _POSITIVE_CONTROL_SIDE[direction]
    if document_type not in POSITIVE_SIGN_TYPES:
        side = side.opposite
    return PostingRule(
        direction=direction,
        document_type=document_type,
        control_side=side,
        requires_due_date=document_type in DUE_DATE_REQUIRED_TYPES,
    )


def enum_value(value) -> str:
    """Plain string value of an enum member or raw input, upper-cased."""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().upper()


def coerce_direction(value) -> Direction:
    """Raises ValueError for anything but AR / AP."""
    return Direction(enum_value(value))


def coerce_document_type(value) -> DocumentType:
    return DocumentType(enum_value(value))


class PostingRuleRegistry:
    """Closed registry of posting rules keyed by (direction, document type)."""

    _rules: ClassVar[dict[tuple[Direction, DocumentType], PostingRule]] = {}

    @classmethod
    def register(cls, rule: PostingRule) -> None:
        key = (rule.direction, rule.document_type)
        if key in cls._rules:
            raise ValueError(
                f"Posting rule already registered for {rule.direction.value}:"
                f"{rule.document_type.value}"
            )
        cls._rules[key] = rule

    @classmethod
    def get(cls, direction: str, document_type: str) -> PostingRule:
        """Look up a rule; unknown or unsupported values raise.

        Raises:
            UnsupportedDocumentTypeError: no rule for the combination.
        """
        try:
            key = (coerce_direction(direction), coerce_document_type(document_type))
        except ValueError:
            raise UnsupportedDocumentTypeError(
                enum_value(direction), enum_value(document_type)
            ) from None
        rule = cls._rules.get(key)
        if rule is None:
            raise UnsupportedDocumentTypeError(key[0].value, key[1].value)
        return rule

    @classmethod
    def all_rules(cls) -> list[PostingRule]:
        return list(cls._rules.values())

    @classmethod
    def assert_complete(cls) -> None:
        missing = [
            f"{d.value}:{t.value}"
            for d, t in product(Direction, DocumentType)
            if (d, t) not in cls._rules
        ]
        if missing:
            raise RuntimeError(f"Posting rules missing for: {', '.join(missing)}")


for _direction, _document_type in product(Direction, DocumentType):
    PostingRuleRegistry.register(_rule_for(_direction, _document_type))

PostingRuleRegistry.assert_complete()
