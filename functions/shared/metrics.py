"""
CloudWatch Metrics Helper

Provides utilities for emitting custom metrics to CloudWatch.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from shared.aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "CreditEntitlements")


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Emit a custom metric to CloudWatch.

    Args:
        metric_name: Name of the metric
        value: Metric value (default: 1.0)
        unit: Unit of measurement (Count, Seconds, Bytes, etc.)
        dimensions: Optional dimensions for filtering metrics

    Example:
        emit_metric("CreditsConsumed", 3, dimensions={"Feature": "summarize"})
    """
    try:
        metric_data = {
            "MetricName": metric_name,
            "Value": value,
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
        }

        if dimensions:
            metric_data["Dimensions"] = [
                {"Name": k, "Value": v} for k, v in dimensions.items()
            ]

        get_cloudwatch().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[metric_data],
        )

        logger.debug(
            f"Emitted metric: {metric_name}={value} {unit}",
            extra={"dimensions": dimensions},
        )

    except Exception as e:
        # Don't fail the Lambda if metrics fail
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_webhook_outcome_metric(provider: str, event_type: str, outcome: str) -> None:
    """
    Count one webhook delivery by provider and outcome.

    Args:
        provider: 'whop' or 'stripe'
        event_type: Provider event type (truncated for the dimension limit)
        outcome: 'processed', 'dropped', 'ignored', 'failed' or 'skipped'
    """
    emit_metric(
        "WebhookEvents",
        dimensions={
            "Provider": provider,
            "EventType": (event_type or "unknown")[:50],
            "Outcome": outcome,
        },
    )


def emit_persistence_exhausted_metric(operation: str) -> None:
    """Count a reconciliation write that was abandoned after its final retry."""
    emit_metric(
        "ReconciliationPersistenceExhausted",
        dimensions={"Operation": operation},
    )


def emit_credits_consumed_metric(feature: str, amount: int) -> None:
    emit_metric("CreditsConsumed", float(amount), dimensions={"Feature": feature[:50]})
