"""
Shared pytest fixtures for credit entitlement tests.
"""

import os
import sys
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

ENTITLEMENTS_TABLE = "credits-entitlements"
PENDING_PURCHASES_TABLE = "credits-pending-purchases"
WEBHOOK_EVENTS_TABLE = "credits-webhook-events"

FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")

    # Table names are read at import time
    os.environ.setdefault("ENTITLEMENTS_TABLE", ENTITLEMENTS_TABLE)
    os.environ.setdefault("PENDING_PURCHASES_TABLE", PENDING_PURCHASES_TABLE)
    os.environ.setdefault("WEBHOOK_EVENTS_TABLE", WEBHOOK_EVENTS_TABLE)


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    from shared.aws_clients import reset_clients
    reset_clients()


@pytest.fixture(autouse=True)
def reset_webhook_gates():
    """Drop the per-container gates so each test builds one against its own mock."""
    yield
    for module_name in ("api.whop_webhook", "api.stripe_webhook"):
        module = sys.modules.get(module_name)
        if module is not None:
            module._gate = None


@pytest.fixture(autouse=True)
def reset_secret_cache():
    """Reset the provider secret cache between tests to prevent pollution."""
    yield
    from shared.billing_utils import clear_secret_cache
    clear_secret_cache()


def create_dynamodb_tables(dynamodb):
    """Create all DynamoDB tables with their GSIs.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    # Entitlement ledger with identity lookup GSIs
    dynamodb.create_table(
        TableName=ENTITLEMENTS_TABLE,
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # account_id
            {"AttributeName": "sk", "KeyType": "RANGE"},  # PROFILE
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
            {"AttributeName": "email", "AttributeType": "S"},
            {"AttributeName": "provider_user_id", "AttributeType": "S"},
            {"AttributeName": "provider_customer_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "email-index",
                "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "provider-user-index",
                "KeySchema": [{"AttributeName": "provider_user_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "provider-customer-index",
                "KeySchema": [{"AttributeName": "provider_customer_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    # Pending purchases keyed by lower-cased email
    dynamodb.create_table(
        TableName=PENDING_PURCHASES_TABLE,
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # email
            {"AttributeName": "sk", "KeyType": "RANGE"},  # PURCHASE
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    # Webhook audit trail
    dynamodb.create_table(
        TableName=WEBHOOK_EVENTS_TABLE,
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # event_id
            {"AttributeName": "sk", "KeyType": "RANGE"},  # event_type
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def fixed_clock():
    """Clock pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def ledger(mock_dynamodb, fixed_clock):
    from shared.ledger import EntitlementLedger

    return EntitlementLedger(table=mock_dynamodb.Table(ENTITLEMENTS_TABLE), clock=fixed_clock)


@pytest.fixture
def pending_store(mock_dynamodb, fixed_clock):
    from shared.pending_purchases import PendingPurchaseStore

    return PendingPurchaseStore(table=mock_dynamodb.Table(PENDING_PURCHASES_TABLE), clock=fixed_clock)


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "GET",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


@pytest.fixture
def authenticated_event(api_gateway_event):
    """API Gateway event carrying verified JWT claims for acct_123."""
    api_gateway_event["requestContext"]["authorizer"] = {
        "jwt": {"claims": {"sub": "acct_123", "email": "alice@example.com"}},
    }
    return api_gateway_event
