"""
Whop Webhook Endpoint - POST /webhooks/whop

Receives Whop payment and membership events and reconciles them into the
entitlement ledger. Always answers 200: a failure on our side must not make
Whop redeliver, since every redelivery would be reconciled again.
"""

import json
import logging

from shared.constants import OUTCOME_FAILED, OUTCOME_IGNORED
from shared.events import parse_whop_event
from shared.gate import WebhookGate
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.pending_purchases import PendingPurchaseStore
from shared.reconciliation import Reconciler
from shared.request_utils import get_raw_body
from shared.response_utils import acknowledge_response

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
    Lambda handler for Whop webhooks.

    Handles:
    - payment.succeeded: Grant pro credits (or record a pending purchase)
    - payment.failed: Flag the account as payment_failed
    - membership.went_invalid: Downgrade to free, keep credits
    - membership.went_valid: Acknowledged, no action
    """
    configure_structured_logging()
    set_request_id(event)

    try:
        envelope = json.loads(get_raw_body(event) or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Whop webhook body is not valid JSON: {e}")
        return acknowledge_response(OUTCOME_IGNORED)

    parsed = parse_whop_event(envelope)
    logger.info(
        f"Received Whop event {parsed.event_type}",
        extra={"event_type": parsed.event_type, "whop_event_id": parsed.event_id},
    )

    try:
        result = get_gate().process(parsed)
    except Exception as e:
        # The gate contains handler errors; this covers building it
        logger.error(f"Whop webhook processing error: {e}", exc_info=True)
        return acknowledge_response(OUTCOME_FAILED)

    return acknowledge_response(result.outcome, eventType=result.event_type)
