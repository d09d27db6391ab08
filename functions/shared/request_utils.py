"""Shared request utilities for API handlers."""

import base64
import json
import logging
import re
from typing import Optional

from shared.errors import InvalidRequestError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_raw_body(event: dict) -> str:
    """Request body as text, decoding base64 when API Gateway encoded it."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded") and body:
        body = base64.b64decode(body).decode("utf-8")
    return body


def parse_json_body(event: dict) -> dict:
    """
    Parse a JSON object body.

    Raises:
        InvalidRequestError: body is not valid JSON or not an object
    """
    try:
        body = json.loads(get_raw_body(event) or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        raise InvalidRequestError("Invalid JSON in request body", code="invalid_json")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json")
    return body


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None
