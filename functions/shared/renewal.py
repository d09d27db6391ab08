"""
Just-in-time renewal checks.

The ledger carries two independent clocks:

- the credit renewal clock (`next_credit_renewal`), a 28-day cycle that resets
  `used_credits` whatever the billing cadence, and
- the billing cycle (`billing_cycle_end`), used only to decide when a canceled
  account loses the pro allotment it already paid for.

Nothing schedules these. They are rolled over lazily on read paths, before any
balance is compared against a request.
"""

import logging
from datetime import datetime
from typing import Optional

from shared.constants import FREE_TIER_CREDITS, MEMBERSHIP_FREE, STATUS_CANCELED
from shared.plans import next_credit_renewal

logger = logging.getLogger(__name__)


def credit_renewal_updates(record, now: datetime) -> dict:
    """
    Changes for the 28-day credit rollover, or {} when it is not due.

    Only the consumed counter resets; the allotment is untouched.
    """
    if record.next_credit_renewal is None or not now > record.next_credit_renewal:
        return {}
    return {
        "used_credits": 0,
        "next_credit_renewal": next_credit_renewal(now),
    }


def post_cancellation_downgrade_updates(record, now: datetime) -> dict:
    """
    Changes that clamp a canceled account to the free allotment, or {} when not due.

    Applies to a free account whose billing cycle has ended while it still
    carries more than the free allotment. `billing_cycle_end` is kept as a
    historical marker; once the allotment is clamped this no longer triggers.
    """
    if record.membership != MEMBERSHIP_FREE:
        return {}
    if record.billing_cycle_end is None or not now > record.billing_cycle_end:
        return {}
    if record.usage_credits <= FREE_TIER_CREDITS:
        return {}

    changes = {
        "usage_credits": FREE_TIER_CREDITS,
        "used_credits": 0,
        "status": STATUS_CANCELED,
    }
    if record.next_credit_renewal is None:
        changes["next_credit_renewal"] = next_credit_renewal(now)
    return changes


def has_active_billing_cycle(record, now: datetime) -> bool:
    return record.billing_cycle_end is not None and now < record.billing_cycle_end


def run_renewal_checks(ledger, record, now: Optional[datetime] = None):
    """
    Apply the credit rollover, then the post-cancellation downgrade.

    Each check writes only when its trigger holds, and the downgrade sees
    the result of the rollover. Returns the record after both checks.
    """
    if record is None:
        return None
    now = now or ledger.clock()

    changes = credit_renewal_updates(record, now)
    if changes:
        logger.info(
            "Rolling over credit renewal cycle",
            extra={"account_id": record.account_id, "used_credits": record.used_credits},
        )
        record = ledger.update(record.account_id, changes) or record

    changes = post_cancellation_downgrade_updates(record, now)
    if changes:
        logger.info(
            "Billing cycle ended after cancellation, clamping to free allotment",
            extra={"account_id": record.account_id, "usage_credits": record.usage_credits},
        )
        record = ledger.update(record.account_id, changes) or record

    return record
