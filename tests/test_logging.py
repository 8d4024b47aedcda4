"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("posted", extra={"sequence_no": 42, "status": "POSTED"})

        record = _parse_log(stream)
        assert record["sequence_no"] == 42
        assert record["status"] == "POSTED"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", document_id="doc-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["document_id"] == "doc-456"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from ledger_kernel.exceptions import PeriodLockedError

        book_id, period_id = uuid4(), uuid4()
        try:
            raise PeriodLockedError(book_id, period_id, "HARD_CLOSED")
        except PeriodLockedError:
            logger.error("period_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "PERIOD_LOCKED"
        assert record["exc_type"] == "PeriodLockedError"
        assert record["exc_status"] == "HARD_CLOSED"
        assert record["exc_book_id"] == str(book_id)

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "document_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "with_values", extra={"entry_id": uid, "amount": Decimal("10.500000")}
        )

        record = _parse_log(stream)
        assert record["entry_id"] == str(uid)
        assert record["amount"] == "10.500000"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", entry_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "entry_id": "y"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(producer="p")

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(tenant_id="outer")
        with LogContext.bind(tenant_id="inner"):
            assert LogContext.get_all()["tenant_id"] == "inner"
        assert LogContext.get_all()["tenant_id"] == "outer"

    def test_bind_restores_none(self):
        assert "actor_id" not in LogContext.get_all()
        with LogContext.bind(actor_id="temp"):
            assert LogContext.get_all()["actor_id"] == "temp"
        assert "actor_id" not in LogContext.get_all()

    def test_bind_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            with LogContext.bind(producer="p"):
                pass
        assert LogContext.get_all() == {}

    def test_bind_stringifies_uuid(self):
        uid = uuid4()
        with LogContext.bind(document_id=uid):
            assert LogContext.get_all()["document_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            tenant_id="t",
            actor_id="a",
            document_id="d",
            entry_id="e",
            request_id="r",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["request_id"] == "r"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        # pytest may attach its own capture handlers to the logger
        root = logging.getLogger("ledger_kernel")
        assert h1 in root.handlers
        assert h2 not in root.handlers
        assert sum(isinstance(h.formatter, StructuredFormatter) for h in root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.posting")
        assert logger.name == "ledger_kernel.services.posting"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "ledger_kernel.deep.nested.module"
