"""
Consume Credits Endpoint - POST /credits/consume

Charges credits for a premium action. The balance is rolled over (renewal,
post-cancellation downgrade) before it is compared with the request.
"""

import logging

from shared.auth import require_account
from shared.credits import ensure_entitlement, use_credits
from shared.errors import APIError, InsufficientCreditsError, InvalidRequestError
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.request_utils import parse_json_body
from shared.response_utils import api_error_response, error_response, get_origin, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_CREDITS_PER_REQUEST = 1000


def _parse_amount(value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError("credits must be a positive integer", code="invalid_credits")
    if value < 1 or value > MAX_CREDITS_PER_REQUEST:
        raise InvalidRequestError(
            f"credits must be between 1 and {MAX_CREDITS_PER_REQUEST}",
            code="invalid_credits",
        )
    return value


def handler(event, context):
    """
    Lambda handler for POST /credits/consume.

    Request body:
    {
        "credits": 3,
        "feature": "summarize"
    }

    Returns:
        200 {"success": true, "remaining": n, "used": n, "total": n}
        402 when the balance is too low
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        account = require_account(event)
        body = parse_json_body(event)

        amount = _parse_amount(body.get("credits", 1))
        feature = str(body.get("feature") or "Used feature")[:100]

        ledger = EntitlementLedger()
        ensure_entitlement(ledger, account.account_id, account.email)
        result = use_credits(ledger, account.account_id, amount, feature)

        if not result["success"]:
            current = ledger.get(account.account_id)
            raise InsufficientCreditsError(
                result["error"],
                remaining=current.remaining if current else 0,
                required=amount,
            )

        record = result["record"]
        return success_response(
            {
                "success": True,
                "remaining": record.remaining,
                "used": record.used_credits,
                "total": record.usage_credits,
            },
            origin=origin,
        )

    except APIError as e:
        return api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error consuming credits: {e}", exc_info=True)
        return error_response(500, "internal_error", "Failed to use credits", origin=origin)
