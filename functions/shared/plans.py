"""
Plan and billing-cycle computation.

The billing cycle comes from the provider's renewal timestamps when it sends
them; otherwise it is derived from the plan duration (monthly = 30 days,
yearly = one calendar year).
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from shared.constants import (
    CREDIT_RENEWAL_DAYS,
    MONTHLY_CYCLE_DAYS,
    PLAN_DURATIONS,
    PLAN_MONTHLY,
    PLAN_YEARLY,
)

logger = logging.getLogger(__name__)


def _configured_plan_ids() -> dict:
    """Map configured provider plan/price ids to plan durations."""
    # Use `or` to handle empty string env vars
    mapping = {}
    for env_name, duration in (
        ("WHOP_PLAN_ID_MONTHLY", PLAN_MONTHLY),
        ("WHOP_PLAN_ID_YEARLY", PLAN_YEARLY),
        ("STRIPE_PRICE_MONTHLY", PLAN_MONTHLY),
        ("STRIPE_PRICE_YEARLY", PLAN_YEARLY),
    ):
        plan_id = os.environ.get(env_name) or None
        if plan_id:
            mapping[plan_id] = duration
    return mapping


def is_known_plan(plan_id: Optional[str]) -> bool:
    return bool(plan_id) and plan_id in _configured_plan_ids()


def resolve_plan_duration(plan_id: Optional[str], declared: Optional[str] = None) -> str:
    """
    Determine the plan duration for a purchase.

    A duration embedded in checkout metadata wins; otherwise the plan id is
    matched against the configured plan ids. Unknown plans default to monthly.
    """
    if declared in PLAN_DURATIONS:
        return declared

    duration = _configured_plan_ids().get(plan_id) if plan_id else None
    if duration:
        return duration

    logger.info(
        "Plan id does not match a configured plan, defaulting to monthly",
        extra={"plan_id": plan_id},
    )
    return PLAN_MONTHLY


def add_plan_duration(start: datetime, plan_duration: Optional[str]) -> datetime:
    """Billing cycle end for a cycle starting at `start`."""
    if plan_duration == PLAN_YEARLY:
        try:
            return start.replace(year=start.year + 1)
        except ValueError:
            # Feb 29 -> Feb 28
            return start.replace(year=start.year + 1, day=28)
    return start + timedelta(days=MONTHLY_CYCLE_DAYS)


def compute_billing_cycle(
    now: datetime,
    plan_duration: Optional[str],
    renewal_start: Optional[datetime] = None,
    renewal_end: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Compute (billing_cycle_start, billing_cycle_end).

    Provider-supplied renewal timestamps are used as-is when present; a missing
    start falls back to `now` and a missing end is derived from the duration.
    """
    start = renewal_start or now
    end = renewal_end or add_plan_duration(start, plan_duration)
    return start, end


def next_credit_renewal(now: datetime) -> datetime:
    return now + timedelta(days=CREDIT_RENEWAL_DAYS)
