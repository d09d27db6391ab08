"""
User Status Endpoint - GET /user/status

Minimal lifecycle status for the dashboard's payment-failed banner.
"""

import logging

from shared.auth import require_account
from shared.constants import STATUS_PAYMENT_FAILED
from shared.errors import APIError
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import api_error_response, error_response, get_origin, success_response
from shared.timeutils import to_iso, utc_now

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for GET /user/status.

    Returns:
    {
        "status": "active" | "canceled" | "payment_failed" | null,
        "paymentFailed": false,
        "timestamp": "..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        account = require_account(event)
        record = EntitlementLedger().get(account.account_id)
        status = record.status if record else None

        return success_response(
            {
                "status": status,
                "paymentFailed": status == STATUS_PAYMENT_FAILED,
                "timestamp": to_iso(utc_now()),
            },
            headers={"Cache-Control": "no-store"},
            origin=origin,
        )

    except APIError as e:
        return api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error fetching user status: {e}", exc_info=True)
        return error_response(500, "internal_error", "Failed to fetch status", origin=origin)
