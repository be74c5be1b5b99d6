"""Tests for the structured logging system (registration_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from registration_kernel.exceptions import NoPendingApprovalError
from registration_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from tests.fakes import REQUESTER, make_level, make_workflow


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


@pytest.fixture
def fresh_logging():
    """Start from an unconfigured logger; restore the suite's setup after."""
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG)


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("fresh_logging")
class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "registration_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("approved", extra={"approval_level": 2, "status": "IN_APPROVAL"})

        record = _parse_log(stream)
        assert record["approval_level"] == 2
        assert record["status"] == "IN_APPROVAL"

    def test_extra_cannot_shadow_log_level(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").warning("shadow", extra={"level": 3})

        record = _parse_log(stream)
        assert record["level"] == "WARNING"
        assert record["extra_level"] == 3

    def test_extra_cannot_shadow_context(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(actor_id="alice"):
            get_logger("test").info("shadow", extra={"actor_id": "mallory"})

        record = _parse_log(stream)
        assert record["actor_id"] == "alice"
        assert record["extra_actor_id"] == "mallory"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", registration_id="reg-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["registration_id"] == "reg-456"

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
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NoPendingApprovalError("reg-1", "alice", 2)
        except NoPendingApprovalError:
            get_logger("test").error("approval_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NO_PENDING_APPROVAL"
        assert record["exc_type"] == "NoPendingApprovalError"
        assert record["exc_approver_id"] == "alice"
        assert record["exc_level"] == 2

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"approval_id": uid})

        assert _parse_log(stream)["approval_id"] == str(uid)

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(registration_id="outer")
        with LogContext.bind(registration_id="inner"):
            assert LogContext.get_all()["registration_id"] == "inner"
        assert LogContext.get_all()["registration_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(template_id="temp"):
            assert LogContext.get_all()["template_id"] == "temp"
        assert "template_id" not in LogContext.get_all()

    def test_all_fields(self):
        LogContext.set(correlation_id="c", registration_id="r", actor_id="a", template_id="t")
        assert len(LogContext.get_all()) == 4

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="tenant_id"):
            LogContext.set(tenant_id="t1")
        with pytest.raises(TypeError, match="tenant_id"):
            LogContext.bind(tenant_id="t1")

    def test_nested_binds_unwind_in_order(self):
        with LogContext.bind(actor_id="outer"):
            with LogContext.bind(actor_id="inner", registration_id="r"):
                assert LogContext.get_all() == {"actor_id": "inner", "registration_id": "r"}
            assert LogContext.get_all() == {"actor_id": "outer"}
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("fresh_logging")
class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        attached = logging.getLogger("registration_kernel").handlers
        assert h1 in attached
        assert h2 not in attached

    def test_get_logger_returns_child(self):
        assert get_logger("services.registration").name == (
            "registration_kernel.services.registration"
        )

    def test_level_by_name(self):
        configure_logging(level="debug", handler=_make_handler()[0])
        assert logging.getLogger("registration_kernel").level == logging.DEBUG

    def test_unknown_level_name_leaves_logging_unconfigured(self):
        with pytest.raises(ValueError, match="verbose"):
            configure_logging(level="verbose", handler=_make_handler()[0])

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("after_bad_level")

        assert _parse_log(stream)["message"] == "after_bad_level"


# ---------------------------------------------------------------------------
# Service log records
# ---------------------------------------------------------------------------


class TestServiceLogs:

    def test_operations_log_registration_and_actor(
        self, registration_service, create_draft, workflows, captured_logs,
    ):
        workflows.put(make_workflow("customer", make_level(1, approvers=("alice", "bob"))))
        reg = create_draft()
        registration_service.submit(reg.request_id, REQUESTER)
        registration_service.approve(reg.request_id, "alice")

        by_message = {r["message"]: r for r in captured_logs()}
        submitted = by_message["registration_submitted"]
        assert submitted["registration_id"] == str(reg.request_id)
        assert submitted["actor_id"] == REQUESTER
        assert submitted["template_id"] == "customer"
        approved = by_message["registration_approved_by"]
        assert approved["actor_id"] == "alice"
        assert approved["approval_level"] == 1
        assert by_message["approval_level_waiting"]["pending_count"] == 1

    def test_context_released_after_operation(self, registration_service, create_draft):
        create_draft()
        assert LogContext.get_all() == {}
