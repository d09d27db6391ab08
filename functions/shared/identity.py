"""
Identity resolution for payment events.

Payment providers never know our account ids. The checkout flow embeds the
account id in session metadata, and the provider echoes that metadata back in
one of several places depending on the event:

1. `metadata` (object, or a JSON-encoded string)
2. `membership_metadata` (payment events)
3. `membership.metadata` (nested membership object)

The provider's own `user_id` is never treated as an account id. It is only
usable through the ledger's provider-user index.
"""

import json
import logging
from typing import Any, Optional

from shared.constants import (
    METADATA_ACCOUNT_ID,
    METADATA_EMAIL,
    METADATA_TOKEN,
    METADATA_UNAUTHENTICATED,
)
from shared.logging_utils import mask_email

logger = logging.getLogger(__name__)

_TRUTHY = (True, 1, "true", "True", "TRUE", "1", "yes")


def as_mapping(value: Any) -> dict:
    """Coerce a metadata field to a dict. JSON strings are parsed; anything else is empty."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.debug("Metadata string is not valid JSON")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _metadata_sources(data: dict) -> list:
    membership = data.get("membership")
    nested = membership.get("metadata") if isinstance(membership, dict) else None
    return [
        ("metadata", as_mapping(data.get("metadata"))),
        ("membership_metadata", as_mapping(data.get("membership_metadata"))),
        ("membership.metadata", as_mapping(nested)),
    ]


def extract_account_id(data: Optional[dict]) -> Optional[str]:
    """
    Return the account id embedded in an event payload, or None.

    Sources are searched in priority order and the first non-empty value wins,
    so a primary `metadata` value beats a differing `membership_metadata` one.
    """
    if not data:
        return None

    for source, metadata in _metadata_sources(data):
        account_id = metadata.get(METADATA_ACCOUNT_ID)
        if account_id:
            logger.debug(f"Found account id in {source}")
            return str(account_id)

    if data.get("user_id"):
        logger.info(
            "Payload carries a provider user id but no account id",
            extra={"provider_user_id": data.get("user_id")},
        )
    return None


def extract_purchase_email(data: Optional[dict]) -> Optional[str]:
    """Purchase email: membership_metadata, then metadata, then the provider's user_email."""
    if not data:
        return None
    for key in ("membership_metadata", "metadata"):
        email = as_mapping(data.get(key)).get(METADATA_EMAIL)
        if email:
            return str(email).strip()
    email = data.get("user_email")
    return str(email).strip() if email else None


def extract_claim_token(data: Optional[dict]) -> Optional[str]:
    """Claim token from the same metadata object that supplied the purchase email."""
    if not data:
        return None
    for key in ("membership_metadata", "metadata"):
        metadata = as_mapping(data.get(key))
        if metadata.get(METADATA_EMAIL):
            return metadata.get(METADATA_TOKEN) or None
    return None


def is_frictionless(data: Optional[dict]) -> bool:
    """
    True when a payment was made by email only, before an account existed.

    membership_metadata counts when it carries an email or the unauthenticated
    flag. metadata counts when it carries an email without an account id, or
    the unauthenticated flag.
    """
    if not data:
        return False

    membership_metadata = as_mapping(data.get("membership_metadata"))
    if membership_metadata.get(METADATA_EMAIL):
        return True
    if membership_metadata.get(METADATA_UNAUTHENTICATED) in _TRUTHY:
        return True

    metadata = as_mapping(data.get("metadata"))
    if metadata.get(METADATA_EMAIL) and not metadata.get(METADATA_ACCOUNT_ID):
        return True
    return metadata.get(METADATA_UNAUTHENTICATED) in _TRUTHY


def resolve_account_id(event, ledger, use_indexes: bool = True) -> Optional[str]:
    """
    Resolve the account an event belongs to.

    Tries the metadata account id first, then (when `use_indexes`) the ledger's
    provider-user index and provider-customer index. Returns None on no match.
    """
    if event.account_id:
        return event.account_id

    if not use_indexes:
        return None

    if event.provider_user_id:
        record = ledger.find_by_provider_user_id(event.provider_user_id)
        if record:
            logger.info(
                "Resolved account via provider user index",
                extra={"account_id": record.account_id},
            )
            return record.account_id

    if event.provider_customer_id:
        record = ledger.find_by_provider_customer_id(event.provider_customer_id)
        if record:
            logger.info(
                "Resolved account via provider customer index",
                extra={"account_id": record.account_id},
            )
            return record.account_id

    logger.warning(
        "Could not resolve account for event",
        extra={
            "provider_user_id": event.provider_user_id,
            "provider_customer_id": event.provider_customer_id,
            "email": mask_email(getattr(event, "email", None)),
        },
    )
    return None
