"""
Concurrent number allocation.

Many threads create drafts and post documents of the same scope at once,
each in its own transaction.  Numbers must come out unique and gapless.

On SQLite writers are serialized by ``BEGIN IMMEDIATE``; run against
PostgreSQL (``DATABASE_URL=postgresql://...``) to exercise the row locks.

Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import select

from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import DraftDocumentInput
from ledger_kernel.models import JournalEntry, LedgerDocument, SequenceCounter
from ledger_kernel.services import DocumentService, PostingOrchestrator, run_with_retry

pytestmark = pytest.mark.slow_locks

THREADS = 8


def _draft_input(ledger):
    return DraftDocumentInput(
        legal_entity_id=ledger.legal_entity_id,
        counterparty_id=ledger.counterparty_id,
        direction="AR",
        document_type="INVOICE",
        document_date=date(2024, 1, 15),
        amount_txn=Decimal("100.00"),
        currency_code="USD",
        payment_term_id=ledger.payment_term_id,
    )


def _run_concurrently(count, work):
    barrier = Barrier(count, timeout=30)

    def _task(index):
        barrier.wait()
        return work(index)

    with ThreadPoolExecutor(max_workers=count) as executor:
        return list(executor.map(_task, range(count)))


class TestConcurrentDraftNumbering:

    def test_draft_numbers_unique_and_gapless(self, session_factory, committed_ledger, test_actor_id):
        ledger = committed_ledger

        def create(_):
            return run_with_retry(
                session_factory,
                lambda s: DocumentService(s, clock=DeterministicClock()).create_draft(
                    ledger.tenant_id, test_actor_id, _draft_input(ledger)
                ).sequence_no,
            )

        numbers = _run_concurrently(THREADS, create)
        assert sorted(numbers) == list(range(1, THREADS + 1))

        check = session_factory()
        counter = check.execute(
            select(SequenceCounter).where(
                SequenceCounter.tenant_id == ledger.tenant_id,
                SequenceCounter.namespace == "DRAFT",
            )
        ).scalar_one()
        assert counter.current_value == THREADS


class TestConcurrentPostingNumbering:

    def test_posted_numbers_unique_and_gapless(self, session_factory, committed_ledger, test_actor_id):
        ledger = committed_ledger
        setup = session_factory()
        service = DocumentService(setup, clock=DeterministicClock())
        draft_ids = [
            service.create_draft(ledger.tenant_id, test_actor_id, _draft_input(ledger)).id
            for _ in range(THREADS)
        ]
        setup.commit()

        def post(index):
            return run_with_retry(
                session_factory,
                lambda s: PostingOrchestrator(s, clock=DeterministicClock()).post(
                    ledger.tenant_id, draft_ids[index], test_actor_id
                ),
            )

        results = _run_concurrently(THREADS, post)
        assert sorted(r.sequence_no for r in results) == list(range(1, THREADS + 1))
        assert len({r.journal_no for r in results}) == THREADS

        check = session_factory()
        posted = check.execute(
            select(LedgerDocument.document_no).where(
                LedgerDocument.tenant_id == ledger.tenant_id,
                LedgerDocument.status == "POSTED",
            )
        ).scalars().all()
        assert sorted(posted) == [f"AR-INVOICE-2024-{n:06d}" for n in range(1, THREADS + 1)]
        journals = check.execute(
            select(JournalEntry.journal_no).where(JournalEntry.tenant_id == ledger.tenant_id)
        ).scalars().all()
        assert sorted(journals) == [f"CARI-2024-{n:06d}" for n in range(1, THREADS + 1)]
