"""
Pending-purchase claim flow ("pay first, create the account later").

Write path: a frictionless payment with no resolvable account is stored in the
pending-purchase store, keyed by email.

Claim path: right after an account is created, its email is used to find the
pending purchase and promote it into the account's entitlement record. The
pending row is kept and marked claimed.
"""

import logging
from datetime import datetime
from typing import Optional

from shared.constants import (
    MEMBERSHIP_PRO,
    PRO_TIER_CREDITS,
    STATUS_ACTIVE,
    TEMP_ACCOUNT_PREFIX,
)
from shared.errors import (
    AlreadyClaimedError,
    InvalidClaimTokenError,
    PendingPurchaseNotFoundError,
    UnresolvableIdentityError,
)
from shared.logging_utils import mask_email
from shared.pending_purchases import PendingPurchase
from shared.plans import compute_billing_cycle, next_credit_renewal
from shared.types import ClaimResult

logger = logging.getLogger(__name__)

CLAIM_SOURCE_ALREADY_PRO = "already_pro"
CLAIM_SOURCE_PENDING = "pending_purchase"
CLAIM_SOURCE_LEGACY = "legacy_profile"

# Fields carried from a pending purchase (or legacy row) into the ledger
_ENTITLEMENT_FIELDS = (
    "membership",
    "payment_provider",
    "provider_user_id",
    "provider_membership_id",
    "provider_customer_id",
    "provider_subscription_id",
    "plan_duration",
    "billing_cycle_start",
    "billing_cycle_end",
    "next_credit_renewal",
    "usage_credits",
    "used_credits",
)


def payment_success_fields(event, now: datetime) -> dict:
    """
    Entitlement fields granted by a successful payment.

    The result is a full overwrite of the credit fields, so applying the same
    event twice leaves the same state as applying it once.
    """
    cycle_start, cycle_end = compute_billing_cycle(
        now,
        event.plan_duration,
        event.renewal_period_start,
        event.renewal_period_end,
    )
    fields = {
        "membership": MEMBERSHIP_PRO,
        "payment_provider": event.provider,
        "plan_duration": event.plan_duration,
        "billing_cycle_start": cycle_start,
        "billing_cycle_end": cycle_end,
        "next_credit_renewal": next_credit_renewal(now),
        "usage_credits": PRO_TIER_CREDITS,
        "used_credits": 0,
        "status": STATUS_ACTIVE,
    }
    # Provider ids are only ever added, never cleared by a later event
    for name in (
        "provider_user_id",
        "provider_customer_id",
        "provider_membership_id",
        "provider_subscription_id",
    ):
        value = getattr(event, name, None)
        if value:
            fields[name] = value
    return fields


def record_pending_purchase(store, event, now: datetime) -> PendingPurchase:
    """
    Store a frictionless purchase: update the email's row in place, or insert one.

    The claim token is the one embedded at checkout, else a generated uuid4.
    An existing row keeps its id and becomes unclaimed again.
    """
    if not event.email:
        raise UnresolvableIdentityError("Frictionless payment carries no email")

    fields = payment_success_fields(event, now)
    fields.pop("status")
    fields.update(
        {
            "token": event.token,
            "claimed": False,
            "claimed_by_account_id": None,
            "claimed_at": None,
        }
    )

    existing = store.get_by_email(event.email)
    if existing:
        if not fields["token"]:
            fields.pop("token")
        logger.info(
            "Updating existing pending purchase",
            extra={"email": mask_email(event.email), "purchase_id": existing.id},
        )
        return store.update(event.email, fields)

    return store.insert(PendingPurchase(email=event.email, **fields))


def _entitlement_fields_from(source, email: str) -> dict:
    fields = {name: getattr(source, name, None) for name in _ENTITLEMENT_FIELDS}
    fields["membership"] = fields["membership"] or MEMBERSHIP_PRO
    fields["status"] = STATUS_ACTIVE
    fields["email"] = email
    return fields


def _merge_legacy_profile(ledger, account_id: str, email: str) -> bool:
    """Merge a legacy temp_ ledger row with this email into the account, then delete it."""
    for record in ledger.find_by_email(email):
        if not record.account_id.startswith(TEMP_ACCOUNT_PREFIX):
            continue
        logger.info(
            "Merging legacy temporary profile",
            extra={"account_id": account_id, "temp_account_id": record.account_id},
        )
        ledger.update(account_id, _entitlement_fields_from(record, email), must_exist=False)
        ledger.delete(record.account_id)
        return True
    return False


def claim(
    ledger,
    store,
    account_id: str,
    email: str,
    token: Optional[str] = None,
    require_token: bool = False,
) -> str:
    """
    Promote the pending purchase for `email` into `account_id`'s entitlement record.

    With `require_token` (the email is not the account's verified address)
    the purchase must carry a stored token equal to `token`, and legacy rows,
    which have no token, are never merged.

    Returns:
        How the claim was satisfied (already pro, pending purchase, legacy row)

    Raises:
        AlreadyClaimedError: another account claimed the purchase
        InvalidClaimTokenError: the supplied token does not match the stored one
        PendingPurchaseNotFoundError: nothing to claim for this email
    """
    record = ledger.get(account_id)
    if record and record.is_pro:
        logger.info("Account is already pro, nothing to claim", extra={"account_id": account_id})
        return CLAIM_SOURCE_ALREADY_PRO

    pending = store.get_by_email(email)
    if pending:
        if not pending.claimable_by(account_id):
            logger.warning(
                "Pending purchase already claimed by another account",
                extra={"account_id": account_id, "email": mask_email(email)},
            )
            raise AlreadyClaimedError(email)

        if require_token:
            token_ok = bool(token) and pending.token == token
        else:
            token_ok = not (token and pending.token and token != pending.token)
        if not token_ok:
            logger.warning(
                "Claim token mismatch",
                extra={"account_id": account_id, "email": mask_email(email)},
            )
            raise InvalidClaimTokenError()

        # Mark first: the conditional write decides which account wins a race
        store.mark_claimed(email, account_id)
        ledger.update(account_id, _entitlement_fields_from(pending, email), must_exist=False)
        logger.info(
            "Claimed pending purchase",
            extra={"account_id": account_id, "purchase_id": pending.id},
        )
        return CLAIM_SOURCE_PENDING

    if not require_token and _merge_legacy_profile(ledger, account_id, email):
        return CLAIM_SOURCE_LEGACY

    raise PendingPurchaseNotFoundError(email)


def claim_pending_purchase(
    ledger,
    store,
    account_id: str,
    email: str,
    token: Optional[str] = None,
    require_token: bool = False,
) -> ClaimResult:
    """
    Claim entry point for request handlers.

    Returns:
        {"success": True, "source": ...} or {"success": False, "error": ...}
    """
    try:
        source = claim(ledger, store, account_id, email, token, require_token)
    except (AlreadyClaimedError, InvalidClaimTokenError, PendingPurchaseNotFoundError) as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "source": source}
