"""
Credits Endpoint - GET /credits

Returns the caller's credit balance. Runs the credit-renewal rollover and the
post-cancellation downgrade first, so the numbers shown are current.
"""

import logging
import time

from shared.auth import require_account
from shared.credits import ensure_entitlement, get_credit_status
from shared.errors import APIError
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.response_utils import api_error_response, error_response, get_origin, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for GET /credits.

    Returns:
    {
        "total": 1000,
        "used": 12,
        "remaining": 988,
        "nextBillingDate": "2026-02-01T00:00:00+00:00",
        "nextCreditRenewal": "2026-01-29T00:00:00+00:00",
        "membership": "pro"
    }
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()
    origin = get_origin(event)
    account_id = None

    try:
        account = require_account(event)
        account_id = account.account_id

        ledger = EntitlementLedger()
        # First authenticated session creates the free-tier record
        ensure_entitlement(ledger, account_id, account.email)
        status = get_credit_status(ledger, account_id)

        response = success_response(status, origin=origin)
    except APIError as e:
        response = api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error reading credits: {e}", exc_info=True)
        response = error_response(500, "internal_error", "Failed to get credit status", origin=origin)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/credits", response["statusCode"], latency_ms, account_id)
    return response
