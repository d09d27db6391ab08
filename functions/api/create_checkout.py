"""
Create Checkout Session Endpoint - POST /checkout/create

Creates a Whop checkout session for a logged-in account. The account id is
embedded in the session metadata so the payment webhook can find the account.
"""

import logging

from shared.auth import require_account
from shared.constants import METADATA_ACCOUNT_ID, METADATA_PLAN_DURATION
from shared.errors import APIError, InvalidRequestError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.plans import is_known_plan, resolve_plan_duration
from shared.request_utils import parse_json_body
from shared.response_utils import api_error_response, error_response, get_origin, success_response
from shared.types import CheckoutSessionResponse
from shared.whop_client import build_redirect_url, create_checkout_session

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /checkout/create.

    Request body:
    {
        "planId": "plan_...",
        "redirectUrl": "/dashboard"   (optional)
    }

    Returns:
    {
        "checkoutUrl": "https://whop.com/checkout/...",
        "sessionId": "ch_...",
        "planDuration": "monthly" | "yearly"
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        account = require_account(event)
        body = parse_json_body(event)

        plan_id = body.get("planId")
        if not plan_id or not isinstance(plan_id, str):
            raise InvalidRequestError("Missing required parameter: planId", code="missing_plan_id")

        if not is_known_plan(plan_id):
            logger.warning("Checkout requested for an unconfigured plan id", extra={"plan_id": plan_id})
        plan_duration = resolve_plan_duration(plan_id)
        session = create_checkout_session(
            plan_id=plan_id,
            redirect_url=build_redirect_url(body.get("redirectUrl")),
            metadata={
                METADATA_ACCOUNT_ID: account.account_id,
                METADATA_PLAN_DURATION: plan_duration,
            },
        )

        logger.info(
            f"Created checkout session for account {account.account_id}",
            extra={"plan_duration": plan_duration, "session_id": session["session_id"]},
        )
        response_body: CheckoutSessionResponse = {
            "checkoutUrl": session["checkout_url"],
            "sessionId": session["session_id"],
            "planDuration": plan_duration,
        }
        return success_response(response_body, origin=origin)

    except APIError as e:
        return api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}", exc_info=True)
        return error_response(500, "internal_error", "Failed to create checkout session", origin=origin)
