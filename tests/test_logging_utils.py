"""
Tests for structured logging utilities module.

Tests cover JSON formatting, request and event ID correlation,
email masking and the standardized request/webhook log helpers.
"""

import json
import logging
import uuid
from unittest.mock import MagicMock

from shared.logging_utils import (
    StructuredFormatter,
    configure_structured_logging,
    log_api_request,
    log_webhook_outcome,
    mask_email,
    request_id_var,
    set_event_id,
    set_request_id,
)


def _record(msg="Test message", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter class."""

    def test_format_includes_required_fields(self):
        parsed = json.loads(StructuredFormatter().format(_record("Warning message", logging.WARNING)))

        assert "timestamp" in parsed
        assert parsed["level"] == "WARNING"
        assert parsed["logger"] == "test.logger"
        assert parsed["message"] == "Warning message"

    def test_format_includes_request_id_from_context(self):
        token = request_id_var.set("req-123")
        try:
            parsed = json.loads(StructuredFormatter().format(_record()))
        finally:
            request_id_var.reset(token)

        assert parsed["request_id"] == "req-123"

    def test_event_id_only_when_set(self):
        set_event_id("evt_1")
        try:
            with_event = json.loads(StructuredFormatter().format(_record()))
        finally:
            set_event_id(None)
        without_event = json.loads(StructuredFormatter().format(_record()))

        assert with_event["event_id"] == "evt_1"
        assert "event_id" not in without_event

    def test_extra_fields_are_included(self):
        parsed = json.loads(StructuredFormatter().format(_record(account_id="acct_1", outcome="processed")))

        assert parsed["account_id"] == "acct_1"
        assert parsed["outcome"] == "processed"

    def test_non_serializable_extras_use_str(self):
        parsed = json.loads(StructuredFormatter().format(_record(when=object())))
        assert parsed["when"].startswith("<object")


class TestConfigureStructuredLogging:
    def test_replaces_root_handlers(self):
        root = configure_structured_logging()

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)


class TestSetRequestId:
    def test_uses_api_gateway_request_id(self):
        assert set_request_id({"requestContext": {"requestId": "gw-1"}}) == "gw-1"
        assert request_id_var.get() == "gw-1"

    def test_uses_header(self):
        assert set_request_id({"headers": {"x-request-id": "hdr-1"}}) == "hdr-1"

    def test_generates_uuid(self):
        request_id = set_request_id({})
        uuid.UUID(request_id)


class TestMaskEmail:
    def test_masks_local_part(self):
        assert mask_email("alice@example.com") == "ali***@example.com"

    def test_empty(self):
        assert mask_email(None) == ""

    def test_without_domain(self):
        assert mask_email("alice") == "ali***"


class TestLogHelpers:
    def test_log_api_request(self):
        logger = MagicMock()

        log_api_request(logger, "GET", "/credits", 200, 12.5)

        args, kwargs = logger.info.call_args
        assert args[0] == "GET /credits -> 200"
        assert kwargs["extra"]["account_id"] == "anonymous"
        assert kwargs["extra"]["latency_ms"] == 12.5

    def test_webhook_outcome_levels(self):
        logger = MagicMock()

        log_webhook_outcome(logger, "whop", "payment.succeeded", "processed")
        log_webhook_outcome(logger, "whop", "payment.failed", "dropped", "no account")

        first, second = logger.log.call_args_list
        assert first[0][0] == logging.INFO
        assert second[0][0] == logging.WARNING
        assert second[1]["extra"]["detail"] == "no account"
