"""Tests for the structured logging system (garment_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from garment_kernel.domain.lifecycle import BatchStatus
from garment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
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
        assert record["logger"] == "garment_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("allocated", extra={"line_count": 2, "stage": "CUTTING"})

        record = _parse_log(stream)
        assert record["line_count"] == 2
        assert record["stage"] == "CUTTING"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", batch_id="batch-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["batch_id"] == "batch-1"

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

    def test_kernel_exception_code_and_kind_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from garment_kernel.exceptions import InsufficientStockError

        try:
            raise InsufficientStockError("m-1", "FAB-01", "500", "250")
        except InsufficientStockError:
            get_logger("test").warning("allocation_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_kind"] == "INSUFFICIENT_STOCK"
        assert record["exc_material_code"] == "FAB-01"
        assert record["exc_available"] == "250"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "batch_id" not in record

    def test_uuid_decimal_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={"entry_id": uid, "qty": Decimal("2.5"), "to_status": BatchStatus.COMPLETED},
        )

        record = _parse_log(stream)
        assert record["entry_id"] == str(uid)
        assert record["qty"] == "2.5"
        assert record["to_status"] == "COMPLETED"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="nope")

    def test_bind_context_manager(self):
        LogContext.set(batch_id="outer")
        with LogContext.bind(batch_id="inner"):
            assert LogContext.get_all()["batch_id"] == "inner"
        assert LogContext.get_all()["batch_id"] == "outer"

    def test_bind_restores_none(self):
        assert "task_id" not in LogContext.get_all()
        with LogContext.bind(task_id="temp"):
            assert LogContext.get_all()["task_id"] == "temp"
        assert "task_id" not in LogContext.get_all()

    def test_bind_stringifies_uuids(self):
        uid = uuid4()
        with LogContext.bind(material_id=uid):
            assert LogContext.get_all()["material_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            batch_id="b",
            material_id="m",
            task_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["task_id"] == "t"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("garment_kernel").handlers) == 1

    def test_level_accepts_name(self):
        h, _ = _make_handler()
        configure_logging(handler=h, level="warning")
        assert logging.getLogger("garment_kernel").level == logging.WARNING

    def test_get_logger_returns_child(self):
        assert get_logger("services.stock_ledger").name == "garment_kernel.services.stock_ledger"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "garment_kernel.deep.nested.module"
