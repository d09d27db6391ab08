"""
Stripe Webhook Endpoint - POST /webhooks/stripe

Handles Stripe subscription events for accounts billed through Stripe.
Uses Stripe signature verification instead of API authentication.

Once the signature checks out the delivery is always acknowledged with 200,
the same as the Whop endpoint; reconciliation failures are logged, counted
and recorded in the webhook audit table.
"""

import json
import logging

import stripe

from shared.billing_utils import get_stripe_secrets
from shared.constants import OUTCOME_FAILED
from shared.events import parse_stripe_event
from shared.gate import WebhookGate
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.pending_purchases import PendingPurchaseStore
from shared.reconciliation import Reconciler
from shared.request_utils import get_header, get_raw_body
from shared.response_utils import acknowledge_response, error_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Built once per container
_gate = None


def get_gate() -> WebhookGate:
    global _gate
    if _gate is None:
        ledger = EntitlementLedger()
        _gate = WebhookGate(Reconciler(ledger, PendingPurchaseStore()), ledger)
    return _gate


def handler(event, context):
    """
    Lambda handler for Stripe webhooks.

    Handles:
    - checkout.session.completed, invoice.payment_succeeded, invoice.paid: Grant pro credits
    - invoice.payment_failed: Flag the account as payment_failed
    - customer.subscription.deleted: Downgrade to free, keep credits
    """
    configure_structured_logging()
    set_request_id(event)

    _, webhook_secret = get_stripe_secrets()
    if not webhook_secret:
        logger.error("Stripe webhook secret not configured")
        return error_response(500, "stripe_not_configured", "Stripe not configured")

    payload = get_raw_body(event)
    sig_header = get_header(event, "stripe-signature")

    if not sig_header:
        logger.warning("Missing Stripe signature")
        return error_response(400, "missing_signature", "Missing Stripe signature")

    # Verify webhook signature
    try:
        stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Invalid Stripe signature: {e}")
        return error_response(400, "invalid_signature", "Invalid signature")
    except ValueError as e:
        logger.error(f"Webhook error: {e}")
        return error_response(400, "invalid_webhook_payload", "Invalid webhook payload")

    # The verified payload as plain dicts
    stripe_event = json.loads(payload)
    parsed = parse_stripe_event(stripe_event)

    logger.info(f"Processing Stripe event: {parsed.event_type} (id={parsed.event_id})")

    try:
        result = get_gate().process(parsed)
    except Exception as e:
        logger.error(f"Stripe webhook processing error: {e}", exc_info=True)
        return acknowledge_response(OUTCOME_FAILED)

    return acknowledge_response(result.outcome, eventType=result.event_type)
