"""
Typed webhook events.

Both providers' payloads are parsed once, at the edge, into one of a small set
of event shapes. Reconciliation code only ever sees these dataclasses.

Whop envelope: {"type" | "action": ..., "id"?: ..., "data": {...}}
Stripe event:  {"id": ..., "type": ..., "data": {"object": {...}}}
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from shared.constants import METADATA_PLAN_DURATION, PROVIDER_STRIPE, PROVIDER_WHOP
from shared.identity import (
    as_mapping,
    extract_account_id,
    extract_claim_token,
    extract_purchase_email,
    is_frictionless,
)
from shared.plans import resolve_plan_duration
from shared.timeutils import from_provider_timestamp

# Whop event types
WHOP_PAYMENT_SUCCEEDED = "payment.succeeded"
WHOP_PAYMENT_FAILED = "payment.failed"
WHOP_MEMBERSHIP_WENT_INVALID = "membership.went_invalid"
WHOP_MEMBERSHIP_WENT_VALID = "membership.went_valid"

# Stripe event types
STRIPE_CHECKOUT_COMPLETED = "checkout.session.completed"
STRIPE_INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
STRIPE_INVOICE_PAID = "invoice.paid"
STRIPE_INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
STRIPE_SUBSCRIPTION_DELETED = "customer.subscription.deleted"


@dataclass
class WebhookEvent:
    """Fields shared by every event shape."""

    provider: str
    event_type: str
    event_id: Optional[str] = None
    account_id: Optional[str] = None
    email: Optional[str] = None
    provider_user_id: Optional[str] = None
    provider_customer_id: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class PaymentSucceeded(WebhookEvent):
    frictionless: bool = False
    token: Optional[str] = None
    provider_membership_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    plan_duration: Optional[str] = None
    renewal_period_start: Optional[datetime] = None
    renewal_period_end: Optional[datetime] = None


@dataclass
class PaymentFailed(WebhookEvent):
    pass


@dataclass
class MembershipInvalidated(WebhookEvent):
    pass


@dataclass
class MembershipValidated(WebhookEvent):
    """Acknowledged and ignored; activation is driven by payment succeeded."""


@dataclass
class UnrecognizedEvent(WebhookEvent):
    pass


# =============================================================================
# Whop
# =============================================================================


def _whop_common(event_type: str, event_id: Optional[str], data: dict) -> dict:
    return {
        "provider": PROVIDER_WHOP,
        "event_type": event_type,
        "event_id": event_id,
        "account_id": extract_account_id(data),
        "email": extract_purchase_email(data),
        "provider_user_id": data.get("user_id") or None,
        "raw": data,
    }


def parse_whop_event(envelope: Optional[dict]) -> WebhookEvent:
    """Parse a Whop webhook envelope. Malformed or unknown shapes become UnrecognizedEvent."""
    if not isinstance(envelope, dict):
        return UnrecognizedEvent(provider=PROVIDER_WHOP, event_type="unknown")

    event_type = envelope.get("type") or envelope.get("action") or "unknown"
    data = envelope.get("data")
    if not isinstance(data, dict):
        return UnrecognizedEvent(
            provider=PROVIDER_WHOP,
            event_type=event_type,
            event_id=envelope.get("id"),
        )

    event_id = envelope.get("id") or data.get("id")
    common = _whop_common(event_type, event_id, data)

    if event_type == WHOP_PAYMENT_SUCCEEDED:
        declared = as_mapping(data.get("metadata")).get(METADATA_PLAN_DURATION) or as_mapping(
            data.get("membership_metadata")
        ).get(METADATA_PLAN_DURATION)
        return PaymentSucceeded(
            frictionless=is_frictionless(data),
            token=extract_claim_token(data),
            provider_membership_id=data.get("membership_id") or data.get("id"),
            plan_duration=resolve_plan_duration(data.get("plan_id"), declared),
            renewal_period_start=from_provider_timestamp(data.get("renewal_period_start")),
            renewal_period_end=from_provider_timestamp(data.get("renewal_period_end")),
            **common,
        )
    if event_type == WHOP_PAYMENT_FAILED:
        return PaymentFailed(**common)
    if event_type == WHOP_MEMBERSHIP_WENT_INVALID:
        return MembershipInvalidated(**common)
    if event_type == WHOP_MEMBERSHIP_WENT_VALID:
        return MembershipValidated(**common)
    return UnrecognizedEvent(**common)


# =============================================================================
# Stripe
# =============================================================================


def _stripe_identity_payload(obj: dict) -> dict:
    """Arrange a Stripe object's metadata in the shape the identity resolver searches."""
    subscription_details = obj.get("subscription_details") or {}
    payload = {
        "metadata": obj.get("metadata") or {},
        "membership_metadata": subscription_details.get("metadata") or {},
    }
    if obj.get("customer_email"):
        payload["user_email"] = obj["customer_email"]
    elif (obj.get("customer_details") or {}).get("email"):
        payload["user_email"] = obj["customer_details"]["email"]
    return payload


def _stripe_invoice_period(obj: dict) -> tuple:
    """Subscription period of an invoice: first line item period, else the invoice's own."""
    lines = (obj.get("lines") or {}).get("data") or []
    for line in lines:
        period = line.get("period") or {}
        if period.get("start") and period.get("end"):
            return from_provider_timestamp(period["start"]), from_provider_timestamp(period["end"])
    return (
        from_provider_timestamp(obj.get("period_start")),
        from_provider_timestamp(obj.get("period_end")),
    )


def _stripe_price_id(obj: dict) -> Optional[str]:
    lines = (obj.get("lines") or {}).get("data") or []
    for line in lines:
        price = line.get("price") or {}
        if price.get("id"):
            return price["id"]
    items = (obj.get("items") or {}).get("data") or []
    for item in items:
        price = item.get("price") or {}
        if price.get("id"):
            return price["id"]
    return None


def parse_stripe_event(event: Optional[dict]) -> WebhookEvent:
    """Parse a verified Stripe event into the shared event shapes."""
    if not isinstance(event, dict):
        return UnrecognizedEvent(provider=PROVIDER_STRIPE, event_type="unknown")

    event_type = event.get("type") or "unknown"
    obj = (event.get("data") or {}).get("object") or {}
    identity_payload = _stripe_identity_payload(obj)

    account_id = extract_account_id(identity_payload)
    if not account_id and obj.get("client_reference_id"):
        account_id = obj["client_reference_id"]

    common = {
        "provider": PROVIDER_STRIPE,
        "event_type": event_type,
        "event_id": event.get("id"),
        "account_id": account_id,
        "email": extract_purchase_email(identity_payload),
        "provider_customer_id": obj.get("customer") or None,
        "raw": obj,
    }

    if event_type in (STRIPE_CHECKOUT_COMPLETED, STRIPE_INVOICE_PAYMENT_SUCCEEDED, STRIPE_INVOICE_PAID):
        if event_type == STRIPE_CHECKOUT_COMPLETED:
            # Sessions carry no period; the cycle is derived from the plan
            period_start, period_end = None, None
        else:
            period_start, period_end = _stripe_invoice_period(obj)
        declared = as_mapping(identity_payload["metadata"]).get(METADATA_PLAN_DURATION) or as_mapping(
            identity_payload["membership_metadata"]
        ).get(METADATA_PLAN_DURATION)
        frictionless = is_frictionless(identity_payload) and not account_id
        return PaymentSucceeded(
            frictionless=frictionless,
            token=extract_claim_token(identity_payload),
            provider_subscription_id=obj.get("subscription") or None,
            plan_duration=resolve_plan_duration(_stripe_price_id(obj), declared),
            renewal_period_start=period_start,
            renewal_period_end=period_end,
            **common,
        )
    if event_type == STRIPE_INVOICE_PAYMENT_FAILED:
        return PaymentFailed(**common)
    if event_type == STRIPE_SUBSCRIPTION_DELETED:
        return MembershipInvalidated(**common)
    return UnrecognizedEvent(**common)
