"""
Tests for response utilities, request parsing and authorizer identity.
"""

import base64
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from shared.auth import get_authenticated_account, require_account
from shared.errors import InsufficientCreditsError, InvalidRequestError, UnauthorizedError
from shared.request_utils import get_header, is_valid_email, parse_json_body
from shared.response_utils import (
    ALLOWED_ORIGINS,
    acknowledge_response,
    api_error_response,
    error_response,
    get_cors_headers,
    success_response,
)


class TestResponses:
    def test_success_response_serializes_decimals_and_datetimes(self):
        result = success_response(
            {"credits": Decimal("5"), "ratio": Decimal("0.5"), "at": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        )

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"credits": 5, "ratio": 0.5, "at": "2026-01-01T00:00:00+00:00"}

    def test_error_response_shape(self):
        result = error_response(400, "invalid_json", "Invalid JSON", details={"field": "body"})

        body = json.loads(result["body"])
        assert result["statusCode"] == 400
        assert body == {"error": {"code": "invalid_json", "message": "Invalid JSON", "details": {"field": "body"}}}

    def test_api_error_response(self):
        result = api_error_response(InsufficientCreditsError("Not enough credits", remaining=1, required=3))

        body = json.loads(result["body"])
        assert result["statusCode"] == 402
        assert body["error"]["details"] == {"remaining": 1, "required": 3}

    def test_cors_only_for_allowed_origins(self):
        allowed = ALLOWED_ORIGINS[0]
        assert get_cors_headers(allowed)["Access-Control-Allow-Origin"] == allowed
        assert get_cors_headers("https://evil.example.net") == {}
        assert get_cors_headers(None) == {}

    def test_acknowledge_response_is_always_200(self):
        result = acknowledge_response("failed", eventType="payment.succeeded")

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"received": True, "outcome": "failed", "eventType": "payment.succeeded"}


class TestRequestParsing:
    def test_parse_json_body(self):
        assert parse_json_body({"body": '{"planId": "p"}'}) == {"planId": "p"}

    def test_empty_body_is_empty_object(self):
        assert parse_json_body({"body": None}) == {}

    def test_base64_body(self):
        encoded = base64.b64encode(b'{"a": 1}').decode()
        assert parse_json_body({"body": encoded, "isBase64Encoded": True}) == {"a": 1}

    def test_invalid_json(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_json_body({"body": "{nope"})
        assert exc_info.value.code == "invalid_json"

    def test_non_object_json(self):
        with pytest.raises(InvalidRequestError):
            parse_json_body({"body": "[1]"})

    def test_email_validation(self):
        assert is_valid_email("buyer@example.com")
        assert not is_valid_email("buyer@example")
        assert not is_valid_email("buyer example.com")
        assert not is_valid_email(None)

    def test_header_lookup_is_case_insensitive(self):
        assert get_header({"headers": {"Stripe-Signature": "t=1"}}, "stripe-signature") == "t=1"
        assert get_header({"headers": None}, "x") is None


class TestAuthenticatedAccount:
    def test_http_api_jwt_claims(self):
        event = {"requestContext": {"authorizer": {"jwt": {"claims": {"sub": "acct_1", "email": "a@example.com"}}}}}
        account = get_authenticated_account(event)
        assert account.account_id == "acct_1"
        assert account.email == "a@example.com"

    def test_rest_api_claims(self):
        event = {"requestContext": {"authorizer": {"claims": {"sub": "acct_2"}}}}
        assert get_authenticated_account(event).account_id == "acct_2"

    def test_lambda_authorizer_principal(self):
        event = {"requestContext": {"authorizer": {"principalId": "acct_3", "email": "c@example.com"}}}
        assert get_authenticated_account(event).email == "c@example.com"

    def test_missing_authorizer(self):
        assert get_authenticated_account({"requestContext": {}}) is None
        with pytest.raises(UnauthorizedError):
            require_account({})
