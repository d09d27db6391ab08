"""Provider credentials, read from the environment or AWS Secrets Manager (cached with TTL)."""

import json
import logging
import os
import time
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager

logger = logging.getLogger(__name__)

WHOP_SECRET_ARN = os.environ.get("WHOP_SECRET_ARN")
STRIPE_SECRET_ARN = os.environ.get("STRIPE_SECRET_ARN")
STRIPE_WEBHOOK_SECRET_ARN = os.environ.get("STRIPE_WEBHOOK_SECRET_ARN")

SECRETS_CACHE_TTL = 300  # 5 minutes

# secret ARN -> (value, fetched_at)
_secret_cache: dict[str, tuple[str, float]] = {}


def _get_secret(secret_arn: Optional[str], json_key: str) -> Optional[str]:
    """
    Fetch a secret string, unwrapping `{json_key: value}` JSON when present.

    Returns None when the ARN is unset or the lookup fails.
    """
    if not secret_arn:
        return None

    cached = _secret_cache.get(secret_arn)
    if cached and (time.time() - cached[1]) < SECRETS_CACHE_TTL:
        return cached[0]

    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {json_key}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    value = secret_value
    try:
        secret_json = json.loads(secret_value)
        if isinstance(secret_json, dict):
            value = secret_json.get(json_key) or secret_value
    except json.JSONDecodeError:
        pass

    _secret_cache[secret_arn] = (value, time.time())
    return value


def get_whop_api_key() -> Optional[str]:
    """Whop API key: WHOP_API_KEY env var, else the WHOP_SECRET_ARN secret."""
    return os.environ.get("WHOP_API_KEY") or _get_secret(WHOP_SECRET_ARN, "key")


def get_stripe_secrets() -> tuple[Optional[str], Optional[str]]:
    """Stripe API key and webhook signing secret."""
    return (
        _get_secret(STRIPE_SECRET_ARN, "key"),
        _get_secret(STRIPE_WEBHOOK_SECRET_ARN, "secret"),
    )


def clear_secret_cache() -> None:
    _secret_cache.clear()
