"""
End-to-end tests for PostingOrchestrator.post.

Verifies:
- Final numbering, balanced two-line journal, open item and audit row
- Sign table per direction
- Period lock, FX policy and account failures leave no partial writes
- FX override is audited separately
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import SequenceScope
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    DocumentNotFoundError,
    FxRateLockedError,
    MissingFxRateError,
    PeriodLockedError,
    PostingAccountsNotConfiguredError,
    ValidationError,
)
from ledger_kernel.models import (
    Account,
    AccountType,
    AuditLog,
    Counterparty,
    DocumentStatus,
    JournalEntry,
    JournalPurposeAccount,
    LedgerDocument,
    OpenItem,
)
from ledger_kernel.services import SequenceAllocator


def _count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def _actions(session, document_id):
    return sorted(
        session.execute(
            select(AuditLog.action).where(AuditLog.resource_id == str(document_id))
        ).scalars()
    )


def _assert_nothing_posted(session, document):
    session.refresh(document)
    assert document.status == DocumentStatus.DRAFT.value
    assert document.posted_journal_entry_id is None
    assert _count(session, JournalEntry) == 0
    assert _count(session, OpenItem) == 0
    assert "ledger.document.post" not in _actions(session, document.id)


class TestPostArInvoice:

    @pytest.fixture
    def posted(self, make_draft, orchestrator, ledger, test_actor_id):
        draft = make_draft()
        result = orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        return draft, result

    def test_document_numbered_and_posted(self, posted):
        document, result = posted
        assert result.document_no == "AR-INVOICE-2024-000001"
        assert result.sequence_no == 1
        assert document.status == DocumentStatus.POSTED.value
        assert document.sequence_namespace == "INVOICE"
        assert document.document_no == result.document_no
        assert document.posted_journal_entry_id == result.journal_entry_id
        assert document.fx_rate == Decimal("1")
        assert document.amount_base == Decimal("1000.00")
        assert document.open_amount_base == Decimal("1000.00")
        assert document.due_date == date(2024, 2, 14)
        assert document.posted_at is not None

    def test_journal_balanced_with_control_debited(self, session, posted, ledger, test_actor_id):
        document, result = posted
        entry = session.get(JournalEntry, result.journal_entry_id)
        assert entry.journal_no == "CARI-2024-000001"
        assert entry.is_posted
        assert entry.source_type == "SYSTEM"
        assert entry.book_id == ledger.book_id
        assert entry.fiscal_period_id == ledger.periods[1]
        assert entry.reference_no == "AR-INVOICE-2024-000001"
        assert entry.posted_by_id == test_actor_id
        assert entry.total_debit_base == entry.total_credit_base == Decimal("1000.00")

        debit, credit = entry.lines
        assert (debit.account_id, debit.debit_base) == (ledger.ar_control_id, Decimal("1000.00"))
        assert (credit.account_id, credit.credit_base) == (ledger.ar_offset_id, Decimal("1000.00"))
        assert credit.amount_txn == Decimal("-1000.00")
        assert debit.description == "AR INVOICE AR-INVOICE-2024-000001"
        assert debit.subledger_reference_no == f"CARI_DOC:{document.id}"

    def test_open_item_created(self, session, posted, ledger):
        document, result = posted
        item = session.get(OpenItem, result.open_item_id)
        assert item.document_id == document.id
        assert item.counterparty_id == ledger.counterparty_id
        assert item.status == "OPEN"
        assert item.item_no == 1
        assert item.due_date == date(2024, 2, 14)
        assert item.residual_amount_base == Decimal("1000.00")
        assert item.settled_amount_base == Decimal("0")

    def test_audited_and_logged(self, session, make_draft, orchestrator, ledger, test_actor_id, captured_logs):
        draft = make_draft()
        orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)

        row = session.execute(
            select(AuditLog).where(AuditLog.action == "ledger.document.post")
        ).scalar_one()
        assert row.resource_type == "ledger_document"
        assert row.scope_type == "LEGAL_ENTITY"
        assert row.scope_id == str(ledger.legal_entity_id)
        assert row.payload_json["documentNo"] == "AR-INVOICE-2024-000001"
        assert row.payload_json["fxSource"] == "PARITY"

        posted_logs = [r for r in captured_logs() if r["message"] == "document_posted"]
        assert len(posted_logs) == 1
        assert posted_logs[0]["document_id"] == str(draft.id)
        assert posted_logs[0]["tenant_id"] == str(ledger.tenant_id)

    def test_second_post_rejected(self, session, posted, orchestrator, ledger, test_actor_id):
        document, _ = posted
        with pytest.raises(AlreadyPostedError) as exc_info:
            orchestrator.post(ledger.tenant_id, document.id, test_actor_id)
        assert exc_info.value.status == "POSTED"
        assert _count(session, JournalEntry) == 1

    def test_numbers_continue(self, posted, make_draft, orchestrator, ledger, test_actor_id):
        second = orchestrator.post(ledger.tenant_id, make_draft().id, test_actor_id)
        assert second.document_no == "AR-INVOICE-2024-000002"
        assert second.journal_no == "CARI-2024-000002"


class TestSignTable:

    @pytest.mark.parametrize(
        ("direction", "document_type", "control_side"),
        [
            ("AR", "CREDIT_NOTE", "credit"),
            ("AR", "DEBIT_NOTE", "debit"),
            ("AP", "INVOICE", "credit"),
            ("AP", "PAYMENT", "debit"),
        ],
    )
    def test_control_account_side(
        self, session, make_draft, orchestrator, ledger, test_actor_id,
        direction, document_type, control_side,
    ):
        draft = make_draft(direction=direction, document_type=document_type)
        result = orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        entry = session.get(JournalEntry, result.journal_entry_id)

        control_id = ledger.ar_control_id if direction == "AR" else ledger.ap_control_id
        control_line = next(line for line in entry.lines if line.account_id == control_id)
        assert getattr(control_line, f"{control_side}_base") == Decimal("1000.00")
        assert result.document_no == f"{direction}-{document_type}-2024-000001"

    def test_payment_open_item_due_on_document_date(
        self, session, make_draft, orchestrator, ledger, test_actor_id
    ):
        draft = make_draft(document_type="PAYMENT", payment_term_id=None)
        result = orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        assert session.get(OpenItem, result.open_item_id).due_date == date(2024, 1, 15)


class TestNoPartialWrites:

    def test_hard_closed_period(
        self, session, make_draft, orchestrator, ledger, set_period_status, test_actor_id
    ):
        draft = make_draft()
        set_period_status(ledger, date(2024, 1, 15), "HARD_CLOSED")

        with pytest.raises(PeriodLockedError):
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)

        _assert_nothing_posted(session, draft)
        scope = SequenceScope(ledger.tenant_id, ledger.legal_entity_id, "AR", "INVOICE")
        assert SequenceAllocator(session).current_value(scope, 2024) is None

    def test_missing_fx_rate(self, session, make_draft, orchestrator, ledger, test_actor_id):
        draft = make_draft(currency_code="EUR")
        with pytest.raises(MissingFxRateError):
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        _assert_nothing_posted(session, draft)

    def test_accounts_not_configured(self, session, make_draft, orchestrator, ledger, test_actor_id):
        draft = make_draft()
        session.query(JournalPurposeAccount).filter_by(
            tenant_id=ledger.tenant_id, purpose_code="CARI_AR_CONTROL"
        ).delete()
        with pytest.raises(PostingAccountsNotConfiguredError):
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        _assert_nothing_posted(session, draft)

    def test_counterparty_role_revoked_after_draft(
        self, session, make_draft, orchestrator, ledger, test_actor_id
    ):
        draft = make_draft()
        session.get(Counterparty, ledger.counterparty_id).is_customer = False
        session.flush()
        with pytest.raises(ValidationError):
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        _assert_nothing_posted(session, draft)

    def test_unknown_document(self, orchestrator, ledger, test_actor_id):
        with pytest.raises(DocumentNotFoundError):
            orchestrator.post(ledger.tenant_id, uuid4(), test_actor_id)

    def test_cancelled_document_not_postable(
        self, make_draft, document_service, orchestrator, ledger, test_actor_id
    ):
        draft = make_draft()
        document_service.cancel_draft(ledger.tenant_id, draft.id, test_actor_id)
        with pytest.raises(AlreadyPostedError) as exc_info:
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        assert exc_info.value.status == "CANCELLED"


class TestForeignCurrency:

    def test_reference_rate_converts_base(
        self, session, make_draft, orchestrator, ledger, add_fx_rate, test_actor_id
    ):
        add_fx_rate(ledger, date(2024, 1, 15), "EUR", "USD", "1.0850000000")
        draft = make_draft(currency_code="EUR", amount_txn="200.00")
        result = orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)

        assert result.fx.source == "FX_TABLE"
        assert draft.amount_base == Decimal("217.000000")
        entry = session.get(JournalEntry, result.journal_entry_id)
        assert entry.currency_code == "EUR"
        assert entry.total_debit_base == Decimal("217.000000")
        assert {line.amount_txn for line in entry.lines} == {Decimal("200"), Decimal("-200")}

    def test_locked_rate_deviation_rejected(
        self, session, make_draft, orchestrator, ledger, add_fx_rate, test_actor_id
    ):
        add_fx_rate(ledger, date(2024, 1, 15), "EUR", "USD", "1.08", is_locked=True)
        draft = make_draft(currency_code="EUR", fx_rate="1.12")
        with pytest.raises(FxRateLockedError):
            orchestrator.post(ledger.tenant_id, draft.id, test_actor_id)
        _assert_nothing_posted(session, draft)

    def test_override_writes_second_audit_row(
        self, session, make_draft, orchestrator, ledger, add_fx_rate, test_actor_id, captured_logs
    ):
        add_fx_rate(ledger, date(2024, 1, 15), "EUR", "USD", "1.08", is_locked=True)
        draft = make_draft(currency_code="EUR", fx_rate="1.12", amount_txn="100")

        result = orchestrator.post(
            ledger.tenant_id,
            draft.id,
            test_actor_id,
            use_fx_override=True,
            override_reason="Contract rate",
        )

        assert result.fx.override_used is True
        assert draft.amount_base == Decimal("112.000000")
        assert _actions(session, draft.id) == [
            "ledger.document.draft.create",
            "ledger.document.post",
            "ledger.document.post.fx_override",
        ]
        override = session.execute(
            select(AuditLog).where(AuditLog.action == "ledger.document.post.fx_override")
        ).scalar_one()
        assert override.payload_json["reason"] == "Contract rate"
        assert Decimal(override.payload_json["referenceFxRate"]) == Decimal("1.08")
        assert Decimal(override.payload_json["overriddenFxRate"]) == Decimal("1.12")
        assert override.payload_json["fxRateDate"] == "2024-01-15"
        assert any(r["message"] == "fx_override_applied" for r in captured_logs())


class TestCounterpartyControlOverride:

    def test_override_account_debited(
        self, session, make_draft, orchestrator, ledger, test_actor_id
    ):
        special = Account(
            tenant_id=ledger.tenant_id,
            legal_entity_id=ledger.legal_entity_id,
            code="1250",
            name="Receivables - related parties",
            account_type=AccountType.ASSET.value,
        )
        session.add(special)
        session.flush()
        session.get(Counterparty, ledger.counterparty_id).ar_account_id = special.id
        session.flush()

        result = orchestrator.post(ledger.tenant_id, make_draft().id, test_actor_id)
        entry = session.get(JournalEntry, result.journal_entry_id)
        assert entry.lines[0].account_id == special.id
        assert session.get(LedgerDocument, result.document_id).status == "POSTED"
