"""
Health Check Endpoint - GET /health

Returns service status, including whether the entitlement datastore answers.
No authentication required.
"""

import json
import logging
import time
from datetime import datetime, timezone

from shared.ledger import EntitlementLedger
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id

logger = logging.getLogger(__name__)


def handler(event, context):
    """
    Lambda handler for health check.

    Returns:
        200 when the datastore probe succeeds, 503 otherwise
    """
    configure_structured_logging()
    start_time = time.time()

    # Set request ID for logging correlation
    set_request_id(event)

    try:
        datastore_ok = EntitlementLedger().probe()
    except Exception as e:
        logger.error(f"Could not build datastore client: {e}")
        datastore_ok = False

    status_code = 200 if datastore_ok else 503
    response = {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        },
        "body": json.dumps({
            "status": "healthy" if datastore_ok else "degraded",
            "datastore": "ok" if datastore_ok else "unavailable",
            "version": "1.0.0",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
    }

    # Log the request
    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/health", status_code, latency_ms)

    return response
