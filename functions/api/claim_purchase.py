"""
Claim Purchase Endpoint - POST /account/claim

Called by the signup page right after a new account is created. Links a
guest purchase made with the account's email to the account. When there is
nothing to claim the account still gets its default free-tier record.
"""

import logging

from shared.auth import require_account
from shared.claims import claim_pending_purchase
from shared.credits import ensure_entitlement
from shared.errors import APIError, InvalidRequestError
from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, mask_email, set_request_id
from shared.pending_purchases import PendingPurchaseStore
from shared.request_utils import is_valid_email, parse_json_body
from shared.response_utils import api_error_response, error_response, get_origin, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /account/claim.

    Request body (all optional):
    {
        "email": "buyer@example.com",   (defaults to the account's email)
        "token": "<claim token>"
    }

    Returns:
    {"success": true, "source": "pending_purchase"} or {"success": false, "error": "..."}
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        account = require_account(event)
        body = parse_json_body(event)

        email = (body.get("email") or account.email or "").strip()
        token = body.get("token") or None

        if not email:
            raise InvalidRequestError("An email is required to claim a purchase", code="missing_email")
        if not is_valid_email(email):
            raise InvalidRequestError("Invalid email format", code="invalid_email")

        # Only the account's verified email may claim without a token
        verified = bool(account.email) and email.lower() == account.email.lower()
        if not verified and not token:
            raise InvalidRequestError(
                "A verification token is required to claim this purchase",
                code="token_required",
            )

        ledger = EntitlementLedger()
        result = claim_pending_purchase(
            ledger, PendingPurchaseStore(), account.account_id, email, token, require_token=not verified
        )

        if not result["success"]:
            # Nothing claimed: the account still needs its default record
            ensure_entitlement(ledger, account.account_id, account.email)

        logger.info(
            "Claim attempt finished",
            extra={
                "account_id": account.account_id,
                "email": mask_email(email),
                "success": result["success"],
                "source": result.get("source"),
            },
        )
        return success_response(result, origin=origin)

    except APIError as e:
        return api_error_response(e, origin=origin)
    except Exception as e:
        logger.error(f"Error claiming purchase: {e}", exc_info=True)
        return error_response(500, "internal_error", "Failed to claim purchase", origin=origin)
