"""
Reconciliation handlers: apply one typed payment event to the ledger.

One handler per event kind. Lookups run once; only the persistence call is
wrapped in bounded retry. When retries are exhausted the event is logged,
counted and abandoned (it is not queued for later).
"""

import logging
import os
import time
from datetime import datetime
from typing import Callable, Optional

from shared.aws_clients import get_sns
from shared.claims import payment_success_fields, record_pending_purchase
from shared.constants import (
    MEMBERSHIP_FREE,
    OUTCOME_DROPPED,
    OUTCOME_PROCESSED,
    STATUS_CANCELED,
    STATUS_PAYMENT_FAILED,
    TEMP_ACCOUNT_PREFIX,
)
from shared.errors import PersistenceError
from shared.events import MembershipInvalidated, PaymentFailed, PaymentSucceeded
from shared.identity import resolve_account_id
from shared.logging_utils import mask_email
from shared.metrics import emit_persistence_exhausted_metric
from shared.retry import PERSISTENCE_RETRY_CONFIG, RetryConfig, retry_call
from shared.timeutils import utc_now

logger = logging.getLogger(__name__)

ALERT_TOPIC_ARN = os.environ.get("ALERT_TOPIC_ARN")


class Reconciler:
    """
    Applies payment events to the entitlement ledger and pending-purchase store.

    All collaborators are injected so a handler can be built once per container
    and tests can supply a fixed clock and a no-op sleep.
    """

    def __init__(
        self,
        ledger,
        pending_store,
        clock: Callable[[], datetime] = utc_now,
        retry_config: RetryConfig = PERSISTENCE_RETRY_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
        alert_topic_arn: Optional[str] = ALERT_TOPIC_ARN,
    ):
        self.ledger = ledger
        self.pending_store = pending_store
        self.clock = clock
        self.retry_config = retry_config
        self.sleep = sleep
        self.alert_topic_arn = alert_topic_arn

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self, operation: str, event, func, *args, **kwargs):
        try:
            return retry_call(
                func,
                *args,
                config=self.retry_config,
                sleep=self.sleep,
                label=operation,
                **kwargs,
            )
        except self.retry_config.retryable_exceptions as e:
            logger.error(
                f"Giving up on {operation} after {self.retry_config.max_attempts} attempts",
                extra={
                    "operation": operation,
                    "event_type": event.event_type,
                    "provider": event.provider,
                    "error_type": type(e).__name__,
                },
            )
            emit_persistence_exhausted_metric(operation)
            self._send_alert(operation, event, e)
            raise PersistenceError(f"{operation} failed: {e}") from e

    def _send_alert(self, operation: str, event, error: Exception) -> None:
        if not self.alert_topic_arn:
            logger.debug("ALERT_TOPIC_ARN not configured, skipping persistence alert")
            return
        try:
            get_sns().publish(
                TopicArn=self.alert_topic_arn,
                Subject="Credits: reconciliation write abandoned",
                Message=(
                    f"A reconciliation write was abandoned after retries.\n\n"
                    f"Operation: {operation}\n"
                    f"Provider: {event.provider}\n"
                    f"Event: {event.event_type} ({event.event_id})\n"
                    f"Error: {error}\n"
                ),
            )
        except Exception as e:
            # Alerting must not mask the original failure
            logger.error(f"Failed to send persistence alert: {e}")

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def payment_succeeded(self, event: PaymentSucceeded) -> str:
        """Grant the pro allotment and reset both clocks."""
        now = self.clock()

        if event.frictionless and not event.account_id:
            return self._frictionless_payment(event, now)

        # Metadata first; Stripe may also resolve through its customer index
        account_id = event.account_id
        if not account_id and event.provider_customer_id:
            account_id = resolve_account_id(event, self.ledger)
        if not account_id:
            logger.error(
                "Payment succeeded without a resolvable account, dropping",
                extra={"event_id": event.event_id, "provider_user_id": event.provider_user_id},
            )
            return OUTCOME_DROPPED

        changes = payment_success_fields(event, now)
        self._persist(
            "payment_succeeded",
            event,
            self.ledger.update,
            account_id,
            changes,
            must_exist=False,
        )
        logger.info(
            "Applied successful payment",
            extra={
                "account_id": account_id,
                "plan_duration": changes["plan_duration"],
                "billing_cycle_end": changes["billing_cycle_end"],
            },
        )
        return OUTCOME_PROCESSED

    def _frictionless_payment(self, event: PaymentSucceeded, now: datetime) -> str:
        if not event.email:
            logger.error(
                "Frictionless payment without an email, dropping",
                extra={"event_id": event.event_id},
            )
            return OUTCOME_DROPPED

        # Someone paying by email who already has an account
        for record in self.ledger.find_by_email(event.email):
            if record.account_id.startswith(TEMP_ACCOUNT_PREFIX):
                continue
            logger.info(
                "Frictionless payment matches an existing account",
                extra={"account_id": record.account_id, "email": mask_email(event.email)},
            )
            self._persist(
                "payment_succeeded",
                event,
                self.ledger.update,
                record.account_id,
                payment_success_fields(event, now),
            )
            return OUTCOME_PROCESSED

        purchase = self._persist(
            "record_pending_purchase",
            event,
            record_pending_purchase,
            self.pending_store,
            event,
            now,
        )
        logger.info(
            "Recorded pending purchase",
            extra={"email": mask_email(event.email), "purchase_id": purchase.id},
        )
        return OUTCOME_PROCESSED

    def payment_failed(self, event: PaymentFailed) -> str:
        """Flag the account; tier and credits are untouched."""
        account_id = resolve_account_id(event, self.ledger)
        if not account_id:
            logger.error(
                "Payment failed for an unknown account, dropping",
                extra={"event_id": event.event_id},
            )
            return OUTCOME_DROPPED

        record = self._persist(
            "payment_failed",
            event,
            self.ledger.update,
            account_id,
            {"status": STATUS_PAYMENT_FAILED},
        )
        if record is None:
            return OUTCOME_DROPPED

        logger.warning("Marked payment failed", extra={"account_id": account_id})
        return OUTCOME_PROCESSED

    def membership_invalidated(self, event: MembershipInvalidated) -> str:
        """
        Downgrade to free without touching credits.

        The account keeps its balance until its stored billing cycle ends; the
        read-path downgrade check clamps it after that.
        """
        account_id = resolve_account_id(event, self.ledger)
        if not account_id:
            logger.error(
                "Membership invalidated for an unknown account, dropping",
                extra={"event_id": event.event_id},
            )
            return OUTCOME_DROPPED

        record = self._persist(
            "membership_invalidated",
            event,
            self.ledger.update,
            account_id,
            {
                "membership": MEMBERSHIP_FREE,
                "status": STATUS_CANCELED,
                "plan_duration": None,
            },
        )
        if record is None:
            return OUTCOME_DROPPED

        logger.info(
            "Membership canceled",
            extra={
                "account_id": account_id,
                "usage_credits": record.usage_credits,
                "used_credits": record.used_credits,
            },
        )
        return OUTCOME_PROCESSED
