"""Tests for the structured logging system (credit_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from credit_kernel.exceptions import InsufficientCreditsError, InvalidTransitionError
from credit_kernel.logging_config import (
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


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_envelope(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("ledger").info("course_recorded")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "course_recorded"
        assert record["logger"] == "credit_kernel.ledger"
        assert "ts" in record

    def test_extra_fields_and_context(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="corr-1", claim_id="claim-9")
        get_logger("workflow").info(
            "claim_transition", extra={"from_status": "pending", "to_status": "poc_approved"}
        )

        record = _parse_log(stream)
        assert record["correlation_id"] == "corr-1"
        assert record["claim_id"] == "claim-9"
        assert record["to_status"] == "poc_approved"

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        course_id = uuid4()
        get_logger("ledger").info(
            "credits_reserved", extra={"course_id": course_id, "amount": Decimal("2.50")}
        )

        record = _parse_log(stream)
        assert record["course_id"] == str(course_id)
        assert record["amount"] == "2.50"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidTransitionError("claim-1", "poc_declined", "admin_approve")
        except InvalidTransitionError:
            get_logger("workflow").error("transition_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InvalidTransitionError"
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_current_status"] == "poc_declined"
        assert "traceback" in record

    def test_decimal_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientCreditsError(
                required=Decimal("10"), available=Decimal("8"), umbrella_key="criminology"
            )
        except InsufficientCreditsError:
            get_logger("allocator").warning("allocation_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_required"] == "10"
        assert record["exc_available"] == "8"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("locks")
        logger.info("first")
        logger.warning("second")
        logger.debug("hidden")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_is_additive(self):
        LogContext.set(correlation_id="a")
        LogContext.set(student_id="S-1")
        assert LogContext.get_all() == {"correlation_id": "a", "student_id": "S-1"}

    def test_clear(self):
        LogContext.set(actor_id="poc-alice")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="submit_claim", course_id="c-1"):
            assert LogContext.get_all()["operation"] == "submit_claim"
            assert LogContext.get_all()["course_id"] == "c-1"
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(actor_id=None, claim_id="k"):
            assert "actor_id" not in LogContext.get_all()


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        handlers = logging.getLogger("credit_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_child_loggers_inherit(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.claim_allocator").debug("fifo_plan")

        record = _parse_log(stream)
        assert record["logger"] == "credit_kernel.services.claim_allocator"
