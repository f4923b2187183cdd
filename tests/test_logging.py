"""Tests for the structured logging system (gtn_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from gtn_kernel.exceptions import NegativeNetError
from gtn_kernel.logging_config import (
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
        assert record["logger"] == "gtn_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("priced", extra={"entry_count": 3, "customer": "wh-a"})

        record = _parse_log(stream)
        assert record["entry_count"] == 3
        assert record["customer"] == "wh-a"

    def test_decimal_and_date_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("values", extra={"pct": Decimal("12.50"), "as_of": date(2025, 3, 1)})

        record = _parse_log(stream)
        assert record["pct"] == "12.50"
        assert record["as_of"] == "2025-03-01"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(run_id="abc-123", customer_id="wh-a")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["run_id"] == "abc-123"
        assert record["customer_id"] == "wh-a"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "run_id" not in record
        assert "customer_id" not in record

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NegativeNetError("Other Rebates", "-10.00", "wh-a")
        except NegativeNetError:
            get_logger("test").error("bridge_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NEGATIVE_NET"
        assert record["exc_type"] == "NegativeNetError"
        assert record["exc_step_name"] == "Other Rebates"
        assert record["exc_customer_id"] == "wh-a"
        assert "traceback" in record

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

    def test_set_and_get(self):
        LogContext.set(run_id="x", as_of_date=date(2025, 3, 1))
        assert LogContext.get_all() == {"run_id": "x", "as_of_date": "2025-03-01"}

    def test_clear(self):
        LogContext.set(run_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(customer_id="outer")
        with LogContext.bind(customer_id="inner"):
            assert LogContext.get_all()["customer_id"] == "inner"
        assert LogContext.get_all()["customer_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(customer_id="temp"):
            assert LogContext.get_all()["customer_id"] == "temp"
        assert "customer_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.set(correlation_id="x")
        with pytest.raises(ValueError):
            with LogContext.bind(batch=1):
                pass
        assert LogContext.get_all() == {}

    def test_service_binds_customer(self, products, discounts):
        from gtn_services import PricingService

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        service = PricingService(products, discounts)
        service.generate_price_list("wh-a", date(2025, 3, 1))

        completed = [r for r in _parse_all_logs(stream) if r["message"] == "price_list_completed"]
        assert completed[0]["customer_id"] == "wh-a"
        assert completed[0]["as_of_date"] == "2025-03-01"
        assert "customer_id" not in LogContext.get_all()


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("gtn_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("engines.waterfall").name == "gtn_kernel.engines.waterfall"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "gtn_kernel.deep.nested.module"
