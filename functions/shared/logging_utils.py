"""
Structured logging utilities for CloudWatch Logs Insights.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variables for request and webhook-event correlation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
event_id_var: ContextVar[str] = ContextVar("event_id", default="")

_RESERVED_ATTRS = (
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
            "function_name": os.environ.get("AWS_LAMBDA_FUNCTION_NAME", ""),
        }

        event_id = event_id_var.get("")
        if event_id:
            log_entry["event_id"] = event_id

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        # Add exception info
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure structured JSON logging for Lambda.

    Call this at the start of your handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Add structured handler
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)

    return root_logger


def set_request_id(event: dict) -> str:
    """
    Extract or generate request ID and set in context.

    Args:
        event: Lambda event

    Returns:
        Request ID string
    """
    # Try API Gateway request ID
    request_id = (event.get("requestContext") or {}).get("requestId")

    # Try X-Request-Id header
    if not request_id:
        headers = event.get("headers") or {}
        request_id = headers.get("x-request-id") or headers.get("X-Request-Id")

    # Generate if not present
    if not request_id:
        request_id = str(uuid.uuid4())

    request_id_var.set(request_id)
    return request_id


def set_event_id(event_id: Optional[str]) -> None:
    """Tag subsequent log lines with the webhook event being reconciled."""
    event_id_var.set(event_id or "")


def mask_email(email: Optional[str]) -> str:
    """Mask an email for log lines: 'alice@example.com' -> 'ali***@example.com'."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}" if domain else f"{local[:3]}***"


def log_api_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    latency_ms: float,
    account_id: Optional[str] = None,
) -> None:
    """Log API request with standard fields."""
    logger.info(
        f"{method} {path} -> {status_code}",
        extra={
            "http_method": method,
            "path": path,
            "status_code": status_code,
            "latency_ms": latency_ms,
            "account_id": account_id or "anonymous",
        }
    )


def log_webhook_outcome(
    logger: logging.Logger,
    provider: str,
    event_type: str,
    outcome: str,
    detail: Optional[str] = None,
) -> None:
    """Log the final outcome of one webhook delivery."""
    level = logging.INFO if outcome in ("processed", "ignored") else logging.WARNING
    logger.log(
        level,
        f"Webhook {provider}:{event_type} -> {outcome}",
        extra={
            "provider": provider,
            "event_type": event_type,
            "outcome": outcome,
            "detail": detail,
        }
    )
