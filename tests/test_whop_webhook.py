"""
Tests for the Whop webhook handler.
"""

import json
from unittest.mock import patch

from moto import mock_aws

from conftest import ENTITLEMENTS_TABLE


def _deliver(api_gateway_event, envelope):
    from api.whop_webhook import handler

    api_gateway_event["httpMethod"] = "POST"
    api_gateway_event["body"] = envelope if isinstance(envelope, str) else json.dumps(envelope)
    result = handler(api_gateway_event, {})
    return result["statusCode"], json.loads(result["body"])


def _payment_succeeded(event_id="evt_1", **data):
    payload = {
        "id": "pay_1",
        "membership_id": "mem_1",
        "user_id": "user_1",
        "metadata": {"account_id": "acct_1"},
    }
    payload.update(data)
    return {"id": event_id, "type": "payment.succeeded", "data": payload}


def _get_profile(mock_dynamodb, account_id):
    return mock_dynamodb.Table(ENTITLEMENTS_TABLE).get_item(
        Key={"pk": account_id, "sk": "PROFILE"}
    ).get("Item")


class TestWhopWebhookHandler:
    @mock_aws
    def test_payment_succeeded_grants_pro(self, mock_dynamodb, api_gateway_event):
        status, body = _deliver(api_gateway_event, _payment_succeeded())

        assert status == 200
        assert body == {"received": True, "outcome": "processed", "eventType": "payment.succeeded"}

        item = _get_profile(mock_dynamodb, "acct_1")
        assert item["membership"] == "pro"
        assert item["usage_credits"] == 1000
        assert item["used_credits"] == 0
        assert item["provider_user_id"] == "user_1"

    @mock_aws
    def test_redelivery_leaves_same_state(self, mock_dynamodb, api_gateway_event):
        _deliver(api_gateway_event, _payment_succeeded())
        first = _get_profile(mock_dynamodb, "acct_1")

        status, body = _deliver(api_gateway_event, _payment_succeeded())

        assert status == 200
        second = _get_profile(mock_dynamodb, "acct_1")
        for name in ("membership", "usage_credits", "used_credits", "status", "provider_user_id"):
            assert second[name] == first[name]

    @mock_aws
    def test_records_audit_row(self, mock_dynamodb, api_gateway_event):
        _deliver(api_gateway_event, _payment_succeeded(event_id="evt_audit"))

        item = mock_dynamodb.Table("credits-webhook-events").get_item(
            Key={"pk": "evt_audit", "sk": "payment.succeeded"}
        )["Item"]
        assert item["outcome"] == "processed"

    @mock_aws
    def test_invalid_json_is_acknowledged(self, mock_dynamodb, api_gateway_event):
        status, body = _deliver(api_gateway_event, "{not json")

        assert status == 200
        assert body["outcome"] == "ignored"

    @mock_aws
    def test_unknown_event_is_acknowledged(self, mock_dynamodb, api_gateway_event):
        status, body = _deliver(api_gateway_event, {"type": "refund.created", "data": {"id": "r_1"}})

        assert status == 200
        assert body["outcome"] == "ignored"

    @mock_aws
    def test_went_valid_is_a_no_op(self, mock_dynamodb, api_gateway_event):
        envelope = {"type": "membership.went_valid", "data": {"metadata": {"account_id": "acct_1"}}}
        status, body = _deliver(api_gateway_event, envelope)

        assert status == 200
        assert body["outcome"] == "ignored"
        assert _get_profile(mock_dynamodb, "acct_1") is None

    @mock_aws
    def test_unresolvable_payment_failed_is_dropped(self, mock_dynamodb, api_gateway_event):
        envelope = {"type": "payment.failed", "data": {"user_id": "user_unknown"}}
        status, body = _deliver(api_gateway_event, envelope)

        assert status == 200
        assert body["outcome"] == "dropped"
        assert mock_dynamodb.Table(ENTITLEMENTS_TABLE).scan()["Items"] == []

    @mock_aws
    def test_went_invalid_keeps_credits(self, mock_dynamodb, api_gateway_event):
        _deliver(api_gateway_event, _payment_succeeded())
        mock_dynamodb.Table(ENTITLEMENTS_TABLE).update_item(
            Key={"pk": "acct_1", "sk": "PROFILE"},
            UpdateExpression="SET used_credits = :used",
            ExpressionAttributeValues={":used": 40},
        )

        envelope = {"type": "membership.went_invalid", "data": {"user_id": "user_1"}}
        status, body = _deliver(api_gateway_event, envelope)

        assert body["outcome"] == "processed"
        item = _get_profile(mock_dynamodb, "acct_1")
        assert item["membership"] == "free"
        assert item["status"] == "canceled"
        assert item["usage_credits"] == 1000
        assert item["used_credits"] == 40

    @mock_aws
    def test_frictionless_payment_records_pending_purchase(self, mock_dynamodb, api_gateway_event):
        envelope = {
            "type": "payment.succeeded",
            "data": {
                "id": "pay_2",
                "user_id": "user_2",
                "membership_metadata": {"email": "Buyer@Example.com", "token": "tok_1"},
            },
        }
        status, body = _deliver(api_gateway_event, envelope)

        assert body["outcome"] == "processed"
        item = mock_dynamodb.Table("credits-pending-purchases").get_item(
            Key={"pk": "buyer@example.com", "sk": "PURCHASE"}
        )["Item"]
        assert item["token"] == "tok_1"
        assert item["claimed"] is False

    @mock_aws
    def test_datastore_unavailable_is_skipped(self, mock_dynamodb, api_gateway_event):
        with patch("shared.ledger.EntitlementLedger.probe", return_value=False):
            status, body = _deliver(api_gateway_event, _payment_succeeded())

        assert status == 200
        assert body["outcome"] == "skipped"
        assert _get_profile(mock_dynamodb, "acct_1") is None

    @mock_aws
    def test_handler_error_is_acknowledged(self, mock_dynamodb, api_gateway_event):
        with patch("shared.reconciliation.Reconciler.payment_succeeded", side_effect=RuntimeError("boom")):
            status, body = _deliver(api_gateway_event, _payment_succeeded())

        assert status == 200
        assert body["outcome"] == "failed"

    @mock_aws
    def test_gate_construction_error_is_acknowledged(self, mock_dynamodb, api_gateway_event):
        with patch("api.whop_webhook.get_gate", side_effect=RuntimeError("no table")):
            status, body = _deliver(api_gateway_event, _payment_succeeded())

        assert status == 200
        assert body == {"received": True, "outcome": "failed"}
