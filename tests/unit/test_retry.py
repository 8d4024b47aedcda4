"""
Tests for run_with_retry.

Uses a fake session factory so the retry loop can be exercised without a
database: each "session" records whether it was committed or rolled back.
"""

import pytest
from sqlalchemy.exc import OperationalError

from ledger_kernel.exceptions import AlreadyPostedError, TransientDatabaseError
from ledger_kernel.services import run_with_retry


class FakeSession:
    def __init__(self):
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeFactory:
    def __init__(self):
        self.sessions = []

    def __call__(self):
        session = FakeSession()
        self.sessions.append(session)
        return session


class Flaky:
    """Raise TransientDatabaseError for the first ``failures`` calls."""

    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self, session):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientDatabaseError("lock timeout")
        return self.result


class TestRunWithRetry:

    def test_first_attempt_succeeds(self):
        factory = FakeFactory()
        assert run_with_retry(factory, lambda session: 42, sleep=lambda _: None) == 42
        assert len(factory.sessions) == 1
        assert factory.sessions[0].committed
        assert factory.sessions[0].closed

    def test_transient_failures_retried_in_fresh_sessions(self):
        factory = FakeFactory()
        operation = Flaky(failures=2)
        delays = []

        result = run_with_retry(
            factory, operation, attempts=3, backoff=0.01, sleep=delays.append
        )

        assert result == "ok"
        assert operation.calls == 3
        assert delays == [0.01, 0.02]
        assert [s.rolled_back for s in factory.sessions] == [True, True, False]
        assert factory.sessions[-1].committed

    def test_exhausted_attempts_reraise(self, captured_logs):
        factory = FakeFactory()
        with pytest.raises(TransientDatabaseError):
            run_with_retry(factory, Flaky(failures=5), attempts=2, sleep=lambda _: None)
        assert len(factory.sessions) == 2
        messages = [r["message"] for r in captured_logs()]
        assert "transient_failure_retrying" in messages
        assert "retry_exhausted" in messages

    def test_domain_errors_not_retried(self):
        factory = FakeFactory()
        calls = []

        def operation(session):
            calls.append(session)
            raise AlreadyPostedError("doc-1", "POSTED")

        with pytest.raises(AlreadyPostedError):
            run_with_retry(factory, operation, attempts=5, sleep=lambda _: None)
        assert len(calls) == 1
        assert factory.sessions[0].rolled_back

    def test_locked_database_retried(self):
        factory = FakeFactory()
        calls = []

        def operation(session):
            calls.append(session)
            if len(calls) == 1:
                raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
            return "ok"

        assert run_with_retry(factory, operation, sleep=lambda _: None) == "ok"
        assert len(calls) == 2

    def test_missing_table_not_retried(self):
        factory = FakeFactory()
        calls = []

        def operation(session):
            calls.append(session)
            raise OperationalError("SELECT ...", {}, Exception("no such table: ledger_documents"))

        with pytest.raises(OperationalError):
            run_with_retry(factory, operation, attempts=5, sleep=lambda _: None)
        assert len(calls) == 1

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            run_with_retry(FakeFactory(), lambda session: None, attempts=0)
