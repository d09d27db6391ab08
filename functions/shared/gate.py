"""
Webhook ingestion gate.

Every delivery goes through the same steps: probe the datastore, dispatch by
event kind, and report an outcome. Nothing raised here reaches the provider;
the webhook Lambdas acknowledge every delivery with 200 so a failure on our
side never turns into a redelivery storm. The cost is that events arriving
while the datastore is down are lost.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from shared.audit import record_webhook_event
from shared.constants import (
    OUTCOME_FAILED,
    OUTCOME_IGNORED,
    OUTCOME_SKIPPED,
)
from shared.events import (
    MembershipInvalidated,
    MembershipValidated,
    PaymentFailed,
    PaymentSucceeded,
    WebhookEvent,
)
from shared.logging_utils import log_webhook_outcome, set_event_id
from shared.metrics import emit_webhook_outcome_metric

logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    outcome: str
    event_type: str
    provider: str
    event_id: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        body = {"outcome": self.outcome, "eventType": self.event_type}
        if self.event_id:
            body["eventId"] = self.event_id
        return body


class WebhookGate:
    """
    Probe, dispatch and contain failures for one webhook delivery.

    Args:
        reconciler: Reconciler applying events to the ledger
        ledger: EntitlementLedger used for the health probe
        audit: Callable recording outcomes; defaults to the webhook audit table
    """

    def __init__(self, reconciler, ledger, audit=record_webhook_event):
        self.reconciler = reconciler
        self.ledger = ledger
        self.audit = audit
        self._handlers = {
            PaymentSucceeded: reconciler.payment_succeeded,
            PaymentFailed: reconciler.payment_failed,
            MembershipInvalidated: reconciler.membership_invalidated,
        }

    def process(self, event: WebhookEvent) -> GateResult:
        set_event_id(event.event_id)
        try:
            result = self._process(event)
        finally:
            set_event_id(None)
        return result

    def _process(self, event: WebhookEvent) -> GateResult:
        if not self.ledger.probe():
            return self._finish(event, OUTCOME_SKIPPED, "datastore unavailable")

        handler = self._handlers.get(type(event))
        if handler is None:
            detail = (
                "activation is handled by payment succeeded"
                if isinstance(event, MembershipValidated)
                else "unhandled event type"
            )
            return self._finish(event, OUTCOME_IGNORED, detail)

        try:
            outcome = handler(event)
        except Exception as e:
            logger.error(
                f"Error reconciling {event.provider} {event.event_type}: {e}",
                exc_info=True,
                extra={"error_type": type(e).__name__},
            )
            return self._finish(event, OUTCOME_FAILED, f"{type(e).__name__}: {e}")

        return self._finish(event, outcome)

    def _finish(self, event: WebhookEvent, outcome: str, detail: Optional[str] = None) -> GateResult:
        log_webhook_outcome(logger, event.provider, event.event_type, outcome, detail)
        emit_webhook_outcome_metric(event.provider, event.event_type, outcome)
        self.audit(event.provider, event.event_id, event.event_type, outcome, detail)
        return GateResult(
            outcome=outcome,
            event_type=event.event_type,
            provider=event.provider,
            event_id=event.event_id,
            detail=detail,
        )
