"""
Credit read and consumption paths.

Every function here runs the just-in-time renewal checks before it looks at a
balance, so an expired credit cycle or a lapsed billing cycle is rolled over
before any decision is made.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from shared.constants import FREE_TIER_CREDITS, MEMBERSHIP_FREE
from shared.metrics import emit_credits_consumed_metric
from shared.plans import next_credit_renewal
from shared.renewal import has_active_billing_cycle, run_renewal_checks
from shared.timeutils import to_iso
from shared.types import CreditStatus

logger = logging.getLogger(__name__)


@dataclass
class CreditCheck:
    has_credits: bool
    record: Any = None
    error: Optional[str] = None

    @property
    def remaining(self) -> int:
        return self.record.remaining if self.record else 0


def ensure_entitlement(ledger, account_id: str, email: Optional[str] = None):
    """Return the account's record, creating the free-tier default on first session."""
    record = ledger.get(account_id)
    if record:
        return record

    now = ledger.clock()
    logger.info("Creating default entitlement record", extra={"account_id": account_id})
    return ledger.create_default(
        account_id,
        email=email,
        next_credit_renewal=next_credit_renewal(now),
    )


def _load(ledger, account_id: str, now: datetime):
    return run_renewal_checks(ledger, ledger.get(account_id), now)


def get_credit_status(ledger, account_id: str, now: Optional[datetime] = None) -> CreditStatus:
    """Balance summary for display. `remaining` is never negative."""
    now = now or ledger.clock()
    record = _load(ledger, account_id, now)
    if not record:
        return {
            "total": 0,
            "used": 0,
            "remaining": 0,
            "nextBillingDate": None,
            "nextCreditRenewal": None,
            "membership": MEMBERSHIP_FREE,
            "error": "Profile not found",
        }

    return {
        "total": record.usage_credits,
        "used": record.used_credits,
        "remaining": record.remaining,
        "nextBillingDate": to_iso(record.billing_cycle_end),
        "nextCreditRenewal": to_iso(record.next_credit_renewal),
        "membership": record.membership,
    }


def check_credits(ledger, account_id: str, required: int = 1, now: Optional[datetime] = None) -> CreditCheck:
    """
    Decide whether an account may spend `required` credits.

    A free account outside an active billing cycle is held to the free
    allotment. A free account still inside a paid-for cycle after canceling
    keeps using its remaining pro credits until the cycle ends.
    """
    now = now or ledger.clock()
    record = _load(ledger, account_id, now)
    if not record:
        return CreditCheck(False, None, "Profile not found")

    if record.membership == MEMBERSHIP_FREE and not has_active_billing_cycle(record, now):
        if required > FREE_TIER_CREDITS:
            return CreditCheck(False, record, "This feature requires a premium membership")
        remaining = max(0, min(record.usage_credits, FREE_TIER_CREDITS) - record.used_credits)
    else:
        remaining = record.remaining

    if remaining < required:
        return CreditCheck(
            False,
            record,
            f"Not enough credits. You have {remaining} remaining, but need {required}.",
        )
    return CreditCheck(True, record)


def use_credits(
    ledger,
    account_id: str,
    amount: int = 1,
    description: str = "Used feature",
    now: Optional[datetime] = None,
) -> dict:
    """Check, then consume credits. Returns {success, record?, error?}."""
    check = check_credits(ledger, account_id, amount, now)
    if not check.has_credits:
        return {"success": False, "error": check.error or "Not enough credits"}

    record = ledger.add_used_credits(account_id, amount)
    if record is None:
        return {"success": False, "error": "Profile not found"}

    logger.info(
        f"Used {amount} credits: {description}",
        extra={"account_id": account_id, "used_credits": record.used_credits},
    )
    emit_credits_consumed_metric(description, amount)
    return {"success": True, "record": record}


def with_premium_feature(
    ledger,
    account_id: str,
    feature: Callable[[], Any],
    credits_required: int,
    feature_name: str,
) -> dict:
    """
    Run `feature` after charging for it.

    Returns:
        {"success": True, "data": ..., "creditsRemaining": n} or
        {"success": False, "error": ..., "creditsRemaining": n}
    """
    check = check_credits(ledger, account_id, credits_required)
    if not check.has_credits:
        return {
            "success": False,
            "error": check.error or "Premium feature not available",
            "creditsRemaining": check.remaining,
        }

    result = use_credits(ledger, account_id, credits_required, feature_name)
    if not result["success"]:
        return {"success": False, "error": result["error"] or "Failed to use credits"}

    data = feature()
    return {
        "success": True,
        "data": data,
        "creditsRemaining": result["record"].remaining,
    }


def has_reached_credit_limit(ledger, account_id: str, now: Optional[datetime] = None) -> bool:
    """True once used credits meet the allotment, after renewal checks. False when there is no record."""
    now = now or ledger.clock()
    record = _load(ledger, account_id, now)
    if not record:
        return False
    return record.used_credits >= record.usage_credits
