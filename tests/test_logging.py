"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import RequestStatus
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state around each test, then restore the suite setup."""
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
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "vote", extra={"pending": 2, "status": RequestStatus.PENDING},
        )

        record = _parse_log(stream)
        assert record["pending"] == 2
        assert record["status"] == "pending"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", request_id="req-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["request_id"] == "req-456"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(actor_id="mgmt-1"):
            get_logger("test").info("msg", extra={"actor_id": "spoofed"})

        assert _parse_log(stream)["actor_id"] == "mgmt-1"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from approval_kernel.exceptions import AlreadyDecidedError

        try:
            raise AlreadyDecidedError("req-1", "mgmt-1", "approved")
        except AlreadyDecidedError:
            get_logger("test").error("vote_refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "ALREADY_DECIDED"
        assert record["exc_type"] == "AlreadyDecidedError"
        assert record["exc_approver_id"] == "mgmt-1"
        assert record["exc_status"] == "approved"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "request_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed", extra={"entity": uid, "delta": Decimal("15000.00")},
        )

        record = _parse_log(stream)
        assert record["entity"] == str(uid)
        assert record["delta"] == "15000.00"

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", rule_id="budget-high")
        assert LogContext.get_all() == {"correlation_id": "x", "rule_id": "budget-high"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner"):
            assert LogContext.get_all()["request_id"] == "inner"
        assert LogContext.get_all()["request_id"] == "outer"

    def test_bind_restores_none(self):
        assert "actor_id" not in LogContext.get_all()
        with LogContext.bind(actor_id="exec-1"):
            assert LogContext.get_all()["actor_id"] == "exec-1"
        assert "actor_id" not in LogContext.get_all()

    def test_bind_stringifies_values(self):
        uid = uuid4()
        with LogContext.bind(request_id=uid):
            assert LogContext.get_all()["request_id"] == str(uid)

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(tenant="acme", actor_id="a"):
            assert LogContext.get_all() == {"actor_id": "a"}

    def test_all_fields(self):
        LogContext.set(correlation_id="c", request_id="r", actor_id="a", rule_id="x")
        assert len(LogContext.get_all()) == 4


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
        assert len(logging.getLogger("approval_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.approval").name == "approval_kernel.services.approval"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "approval_kernel.deep.nested.module"
