"""
Webhook audit trail (best-effort).

One row per delivery outcome, keyed by provider event id and type. This is a
record of what happened, not a dedup ledger: duplicates are handled by the
handlers' overwrite semantics, and a failed audit write never affects
processing.
"""

import logging
import os
import uuid
from datetime import timedelta
from typing import Optional

from shared.aws_clients import get_dynamodb
from shared.constants import WEBHOOK_EVENT_TTL_DAYS
from shared.timeutils import to_iso, utc_now

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS_TABLE = os.environ.get("WEBHOOK_EVENTS_TABLE", "credits-webhook-events")


def record_webhook_event(
    provider: str,
    event_id: Optional[str],
    event_type: str,
    outcome: str,
    detail: Optional[str] = None,
    table=None,
    now=None,
) -> None:
    """Record a webhook outcome. Failures are logged and swallowed."""
    try:
        if table is None:
            table = get_dynamodb().Table(WEBHOOK_EVENTS_TABLE)
        now = now or utc_now()
        item = {
            # Whop deliveries may omit an id
            "pk": event_id or f"{provider}:{uuid.uuid4()}",
            "sk": event_type or "unknown",
            "provider": provider,
            "outcome": outcome,
            "received_at": to_iso(now),
            "ttl": int((now + timedelta(days=WEBHOOK_EVENT_TTL_DAYS)).timestamp()),
        }
        if detail:
            item["detail"] = detail[:500]
        table.put_item(Item=item)
    except Exception as e:
        # Best-effort - audit recording should not block webhook response
        logger.error(f"Failed to record webhook event {event_id}: {e}")
