"""
Tests for DocumentSelector and JournalSelector.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import ManualJournalInput, ManualJournalLineInput


@pytest.fixture
def posted(make_draft, orchestrator, ledger, test_actor_id):
    draft = make_draft()
    return orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)


class TestDocumentSelector:

    def test_get_returns_dto(self, document_selector, posted, ledger):
        dto = document_selector.get(ledger.tenant_id, posted.document_id)
        assert dto.document_no == "AR-INVOICE-2024-000001"
        assert dto.status == "POSTED"
        assert dto.amount_base == Decimal("1000.00")
        assert dto.posted_journal_entry_id == posted.journal_entry_id

    def test_get_is_tenant_scoped(self, document_selector, posted):
        assert document_selector.get(uuid4(), posted.document_id) is None

    def test_list_filters(self, document_selector, make_draft, posted, ledger):
        make_draft(direction="AP", document_date=date(2024, 3, 1), due_date=date(2024, 3, 31))

        everything = document_selector.list(ledger.tenant_id)
        assert [d.direction for d in everything] == ["AP", "AR"]

        drafts = document_selector.list(ledger.tenant_id, status="draft")
        assert [d.document_no for d in drafts] == ["DRAFT-AP-2024-000001"]

        ar_only = document_selector.list(
            ledger.tenant_id, legal_entity_id=ledger.legal_entity_id, direction="AR"
        )
        assert [d.id for d in ar_only] == [posted.document_id]

    def test_list_paging(self, document_selector, make_draft, ledger):
        for _ in range(3):
            make_draft()
        page = document_selector.list(ledger.tenant_id, limit=2, offset=1)
        assert [d.document_no for d in page] == [
            "DRAFT-AR-2024-000002",
            "DRAFT-AR-2024-000003",
        ]

    def test_open_item_for(self, document_selector, posted):
        item = document_selector.open_item_for(posted.document_id)
        assert item.id == posted.open_item_id
        assert item.status == "OPEN"
        assert item.residual_amount_base == Decimal("1000.00")

    def test_open_item_absent_for_draft(self, document_selector, make_draft):
        assert document_selector.open_item_for(make_draft().id) is None

    def test_reversal_of_absent_before_reversal(self, document_selector, posted):
        assert document_selector.reversal_of(posted.document_id) is None


class TestJournalSelector:

    def test_get_entry(self, journal_selector, posted, ledger):
        entry = journal_selector.get_entry(ledger.tenant_id, posted.journal_entry_id)
        assert entry.journal_no == "CARI-2024-000001"
        assert entry.is_balanced
        assert [line.line_no for line in entry.lines] == [1, 2]
        assert entry.reversal_journal_entry_id is None

    def test_get_entry_other_tenant(self, journal_selector, posted):
        assert journal_selector.get_entry(uuid4(), posted.journal_entry_id) is None

    def test_get_lines(self, journal_selector, posted, ledger):
        lines = journal_selector.get_lines(posted.journal_entry_id)
        assert [(l.account_id, l.debit_base, l.credit_base) for l in lines] == [
            (ledger.ar_control_id, Decimal("1000.00"), Decimal("0")),
            (ledger.ar_offset_id, Decimal("0"), Decimal("1000.00")),
        ]

    def test_account_balances(self, journal_selector, posted, ledger):
        balances = journal_selector.account_balances(
            ledger.tenant_id, ledger.legal_entity_id, book_id=ledger.book_id
        )
        assert balances[ledger.ar_control_id].net == Decimal("1000.00")
        assert balances[ledger.ar_offset_id].net == Decimal("-1000.00")

    def test_draft_journals_excluded_from_balances(
        self, journal_selector, journal_service, ledger, test_actor_id
    ):
        journal_service.create_draft_journal(
            ledger.tenant_id,
            test_actor_id,
            ManualJournalInput(
                legal_entity_id=ledger.legal_entity_id,
                entry_date="2024-01-10",
                currency_code="USD",
                lines=(
                    ManualJournalLineInput(account_id=ledger.ap_offset_id, debit_base="5"),
                    ManualJournalLineInput(account_id=ledger.ap_control_id, credit_base="5"),
                ),
            ),
        )
        assert journal_selector.account_balances(ledger.tenant_id, ledger.legal_entity_id) == {}
