"""
Tests for the posting rule registry.

The sign table decides which side the control account takes for every
(direction, document type) pair; everything else in the posting engine
relies on it.
"""

from itertools import product

import pytest

from ledger_kernel.domain.posting_rules import (
    Direction,
    DocumentType,
    PostingRule,
    PostingRuleRegistry,
    Side,
    coerce_direction,
    enum_value,
)
from ledger_kernel.exceptions import UnsupportedDocumentTypeError

EXPECTED_CONTROL_SIDE = {
    ("AR", "INVOICE"): Side.DEBIT,
    ("AR", "DEBIT_NOTE"): Side.DEBIT,
    ("AR", "CREDIT_NOTE"): Side.CREDIT,
    ("AR", "PAYMENT"): Side.CREDIT,
    ("AR", "ADJUSTMENT"): Side.CREDIT,
    ("AP", "INVOICE"): Side.CREDIT,
    ("AP", "DEBIT_NOTE"): Side.CREDIT,
    ("AP", "CREDIT_NOTE"): Side.DEBIT,
    ("AP", "PAYMENT"): Side.DEBIT,
    ("AP", "ADJUSTMENT"): Side.DEBIT,
}


class TestSignTable:

    @pytest.mark.parametrize(("direction", "document_type"), list(EXPECTED_CONTROL_SIDE))
    def test_control_side(self, direction, document_type):
        rule = PostingRuleRegistry.get(direction, document_type)
        assert rule.control_side is EXPECTED_CONTROL_SIDE[(direction, document_type)]
        assert rule.offset_side is rule.control_side.opposite

    def test_registry_is_complete(self):
        PostingRuleRegistry.assert_complete()
        assert len(PostingRuleRegistry.all_rules()) == len(Direction) * len(DocumentType)

    @pytest.mark.parametrize(
        ("direction", "document_type"), list(product(Direction, DocumentType))
    )
    def test_due_date_required_only_for_positive_types(self, direction, document_type):
        rule = PostingRuleRegistry.get(direction, document_type)
        assert rule.requires_due_date is rule.is_positive_sign
        assert rule.is_positive_sign is (
            document_type in (DocumentType.INVOICE, DocumentType.DEBIT_NOTE)
        )


class TestLookup:

    def test_accepts_enum_members(self):
        rule = PostingRuleRegistry.get(Direction.AR, DocumentType.INVOICE)
        assert rule.direction is Direction.AR

    def test_case_and_whitespace_insensitive(self):
        rule = PostingRuleRegistry.get(" ap ", "credit_note")
        assert rule.direction is Direction.AP
        assert rule.document_type is DocumentType.CREDIT_NOTE

    @pytest.mark.parametrize(
        ("direction", "document_type"),
        [("GL", "INVOICE"), ("AR", "RECEIPT"), ("", "")],
    )
    def test_unknown_combination_raises(self, direction, document_type):
        with pytest.raises(UnsupportedDocumentTypeError) as exc_info:
            PostingRuleRegistry.get(direction, document_type)
        assert exc_info.value.field == "documentType"
        assert exc_info.value.code == "UNSUPPORTED_DOCUMENT_TYPE"

    def test_duplicate_registration_rejected(self):
        existing = PostingRuleRegistry.get("AR", "INVOICE")
        with pytest.raises(ValueError, match="already registered"):
            PostingRuleRegistry.register(
                PostingRule(
                    direction=existing.direction,
                    document_type=existing.document_type,
                    control_side=Side.CREDIT,
                    requires_due_date=False,
                )
            )
        assert PostingRuleRegistry.get("AR", "INVOICE").control_side is Side.DEBIT


class TestCoercion:

    def test_enum_value_of_member(self):
        assert enum_value(Direction.AP) == "AP"

    def test_coerce_direction_rejects_unknown(self):
        with pytest.raises(ValueError):
            coerce_direction("XX")
