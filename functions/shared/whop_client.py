"""
Whop checkout-session client.

Checkout sessions carry our metadata through to the webhooks that Whop sends
after payment; that metadata is how an event is tied back to an account (or,
for guest checkout, to an email and claim token).
"""

import logging
import os
from typing import Optional
from urllib.parse import urlencode, urlsplit

import httpx

from shared.billing_utils import get_whop_api_key
from shared.constants import WHOP_API, WHOP_TIMEOUT
from shared.errors import CheckoutProviderError, InternalError

logger = logging.getLogger(__name__)

BASE_URL = (os.environ.get("BASE_URL") or "https://app.example.com").rstrip("/")
DEFAULT_REDIRECT_PATH = "/dashboard"


def build_redirect_url(redirect_url: Optional[str]) -> str:
    """
    Post-payment redirect for an authenticated checkout.

    Relative paths are resolved against BASE_URL; absolute URLs are only kept
    when they point at BASE_URL's origin. Anything else falls back to the
    dashboard. `payment=success` is always appended.
    """
    base = f"{BASE_URL}{DEFAULT_REDIRECT_PATH}"
    if redirect_url:
        if redirect_url.startswith("/") and not redirect_url.startswith("//"):
            base = f"{BASE_URL}{redirect_url}"
        else:
            parts = urlsplit(redirect_url)
            allowed = urlsplit(BASE_URL)
            if parts.scheme in ("http", "https") and parts.netloc == allowed.netloc:
                base = redirect_url
            else:
                logger.info("Ignoring off-site redirect URL", extra={"redirect_url": redirect_url})

    separator = "&" if "?" in base else "?"
    return f"{base}{separator}payment=success"


def build_signup_redirect_url(email: str, token: str) -> str:
    """Guest checkouts always land on signup, carrying the email and claim token."""
    query = urlencode({"payment": "success", "email": email, "token": token})
    return f"{BASE_URL}/signup?{query}"


def create_checkout_session(
    plan_id: str,
    redirect_url: str,
    metadata: dict,
    client: Optional[httpx.Client] = None,
) -> dict:
    """
    Create a Whop checkout session.

    Args:
        plan_id: Whop plan id
        redirect_url: Where Whop sends the buyer after payment
        metadata: Echoed back in webhook payloads
        client: Optional httpx client (tests pass one with a MockTransport)

    Returns:
        {"checkout_url": ..., "session_id": ...}

    Raises:
        InternalError: no API key configured
        CheckoutProviderError: Whop rejected the request or was unreachable
    """
    api_key = get_whop_api_key()
    if not api_key:
        logger.error("Whop API key is not configured")
        raise InternalError("Checkout is not configured")

    payload = {
        "plan_id": plan_id,
        "redirect_url": redirect_url,
        "metadata": metadata,
        "d2c": True,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        if client is None:
            with httpx.Client(timeout=WHOP_TIMEOUT) as owned_client:
                response = owned_client.post(f"{WHOP_API}/checkout_sessions", json=payload, headers=headers)
        else:
            response = client.post(f"{WHOP_API}/checkout_sessions", json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            f"Whop checkout session HTTP error: {e.response.status_code}",
            extra={"plan_id": plan_id, "response_body": e.response.text[:500]},
        )
        raise CheckoutProviderError(
            "Failed to create checkout session",
            upstream_status=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        logger.error(f"Whop checkout session request failed: {e}", extra={"plan_id": plan_id})
        raise CheckoutProviderError("Failed to create checkout session") from e
    except ValueError as e:
        logger.error(f"Whop checkout session response is not JSON: {e}", extra={"plan_id": plan_id})
        raise CheckoutProviderError("Checkout provider returned an invalid response") from e

    if not isinstance(data, dict):
        logger.error("Whop checkout session response is not an object", extra={"plan_id": plan_id})
        raise CheckoutProviderError("Checkout provider returned an invalid response")

    checkout_url = data.get("purchase_url")
    if not checkout_url:
        logger.error("Whop response missing purchase_url", extra={"plan_id": plan_id})
        raise CheckoutProviderError("Checkout provider returned no checkout URL")

    return {"checkout_url": checkout_url, "session_id": data.get("id")}
