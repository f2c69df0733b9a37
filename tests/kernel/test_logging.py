"""
JSON log output, request context and handler installation.

Each test gets the billing_kernel logger freshly configured onto an
in-memory stream; ``read_logs()`` returns the parsed lines.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import PaymentStatus
from billing_kernel.exceptions import InsufficientStockError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _structured_handlers() -> list[logging.Handler]:
    root = logging.getLogger("billing_kernel")
    return [h for h in root.handlers if isinstance(h.formatter, StructuredFormatter)]


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def read_logs():
    stream = StringIO()
    configure_logging(stream=stream, level="debug")

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


class TestRecordShape:

    def test_core_keys(self, read_logs):
        get_logger("modules.invoicing").info("invoice_created")

        (entry,) = read_logs()
        assert entry["message"] == "invoice_created"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "billing_kernel.modules.invoicing"
        assert entry["ts"].endswith("+00:00")

    def test_extras_are_flattened(self, read_logs):
        get_logger("test").info("line_added", extra={"line_count": 3, "status": "DRAFT"})

        entry = read_logs()[0]
        assert (entry["line_count"], entry["status"]) == (3, "DRAFT")

    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("150.00"), "150.00"),
            (PaymentStatus.PARTIALLY_PAID, "PARTIALLY_PAID"),
        ],
    )
    def test_ledger_values_serialize(self, read_logs, value, expected):
        get_logger("test").info("value_logged", extra={"value": value})

        assert read_logs()[0]["value"] == expected

    def test_uuid_serializes_as_text(self, read_logs):
        product_id = uuid4()
        get_logger("test").info("product_created", extra={"product_id": product_id})

        assert read_logs()[0]["product_id"] == str(product_id)

    def test_billing_error_attributes(self, read_logs):
        product_id = uuid4()
        try:
            raise InsufficientStockError(product_id, "Steel Tumbler", Decimal("5"), Decimal("6"))
        except InsufficientStockError:
            get_logger("test").warning("stock_rejected", exc_info=True)

        entry = read_logs()[0]
        assert entry["exc_type"] == "InsufficientStockError"
        assert entry["exc_code"] == "INSUFFICIENT_STOCK"
        assert entry["exc_product_id"] == str(product_id)
        assert (entry["exc_available"], entry["exc_requested"]) == ("5", "6")
        assert "Traceback" in entry["traceback"]

    def test_plain_exception_has_no_code(self, read_logs):
        try:
            raise KeyError("missing")
        except KeyError:
            get_logger("test").error("lookup_failed", exc_info=True)

        entry = read_logs()[0]
        assert entry["exc_type"] == "KeyError"
        assert "exc_code" not in entry


class TestRequestContext:

    def test_bound_fields_appear_on_records(self, read_logs):
        LogContext.set(correlation_id="req-1", tenant_id="t-9")
        get_logger("test").info("with_context")
        LogContext.clear()
        get_logger("test").info("without_context")

        with_ctx, without_ctx = read_logs()
        assert (with_ctx["correlation_id"], with_ctx["tenant_id"]) == ("req-1", "t-9")
        assert "correlation_id" not in without_ctx

    def test_bind_overlays_and_restores(self):
        LogContext.set(tenant_id="outer", actor_id="a")

        with LogContext.bind(tenant_id="inner", actor_id=None, document_id="d"):
            assert LogContext.get_all() == {"tenant_id": "inner", "actor_id": "a", "document_id": "d"}

        assert LogContext.get_all() == {"tenant_id": "outer", "actor_id": "a"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(correlation_id="temp"):
                raise RuntimeError("boom")

        assert LogContext.get_all() == {}

    def test_values_are_stringified(self):
        tenant_id = uuid4()
        LogContext.set(tenant_id=tenant_id)

        assert LogContext.get_all() == {"tenant_id": str(tenant_id)}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="invoice_number"):
            LogContext.set(invoice_number="INV-2024-0001")


class TestConfigureLogging:

    def test_second_call_keeps_first_handler(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())

        configure_logging(handler=first)
        configure_logging(handler=second)

        assert _structured_handlers() == [first]
        assert second not in logging.getLogger("billing_kernel").handlers

    def test_reset_allows_reconfiguring(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=first)

        reset_logging()
        configure_logging(handler=second)

        assert _structured_handlers() == [second]

    def test_level_name_accepted(self):
        configure_logging(stream=StringIO(), level="warning")

        assert logging.getLogger("billing_kernel").level == logging.WARNING

    def test_debug_suppressed_at_info(self):
        stream = StringIO()
        configure_logging(stream=stream)
        logger = get_logger("services.sequence")
        logger.debug("sequence_allocated")
        logger.info("invoice_created")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["invoice_created"]
