"""
Guest Checkout Endpoint - POST /checkout/guest

Pay first, create the account later. Creates a Whop checkout session for an
email address with no account behind it. A claim token is generated here and
embedded in the session metadata together with the email; the payment webhook
stores both in a pending purchase, and the signup page later claims it.
"""

import logging
import uuid

from shared.constants import (
    METADATA_EMAIL,
    METADATA_PLAN_DURATION,
    METADATA_TOKEN,
    METADATA_UNAUTHENTICATED,
)
from shared.errors import APIError, InvalidRequestError
from shared.logging_utils import configure_structured_logging, mask_email, set_request_id
from shared.plans import is_known_plan, resolve_plan_duration
from shared.request_utils import is_valid_email, parse_json_body
from shared.response_utils import api_error_response, error_response, get_origin, success_response
from shared.types import CheckoutSessionResponse
from shared.whop_client import build_signup_redirect_url, create_checkout_session

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /checkout/guest.

    Request body:
    {
        "planId": "plan_...",
        "email": "buyer@example.com",
        "redirectUrl": "..."   (accepted, ignored: guests always land on signup)
    }

    Returns:
    {
        "checkoutUrl": "...",
        "sessionId": "...",
        "planDuration": "monthly" | "yearly",
        "token": "<claim token>"
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        body = parse_json_body(event)

        plan_id = body.get("planId")
        if not plan_id or not isinstance(plan_id, str):
            raise InvalidRequestError("Missing required parameter: planId", code="missing_plan_id")

        email = body.get("email")
        if not email:
            raise InvalidRequestError("Missing required parameter: email", code="missing_email")
        email = str(email).strip()
        if not is_valid_email(email):
            raise InvalidRequestError("Invalid email format", code="invalid_email")

        if not is_known_plan(plan_id):
            logger.warning("Checkout requested for an unconfigured plan id", extra={"plan_id": plan_id})
        plan_duration = resolve_plan_duration(plan_id)
        token = str(uuid.uuid4())

        session = create_checkout_session(
            plan_id=plan_id,
            redirect_url=build_signup_redirect_url(email, token),
            metadata={
                METADATA_EMAIL: email,
                METADATA_TOKEN: token,
                METADATA_PLAN_DURATION: plan_duration,
                METADATA_UNAUTHENTICATED: True,
            },
        )

        logger.info(
            "Created guest checkout session",
            extra={
                "email": mask_email(email),
                "plan_duration": plan_duration,
                "session_id": session["session_id"],
            },
        )
        response_body: CheckoutSessionResponse = {
            "checkoutUrl": session["checkout_url"],
            "sessionId": session["session_id"],
            "planDuration": plan_duration,
            "token": token,
        }
        return success_response(response_body, origin=origin)

    except APIError as e:
        return api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error creating guest checkout session: {e}", exc_info=True)
        return error_response(500, "internal_error", "Failed to create checkout session", origin=origin)
