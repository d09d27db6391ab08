"""
Shared constants for the credit entitlement service.
"""

import os

# Membership tiers
MEMBERSHIP_FREE = "free"
MEMBERSHIP_PRO = "pro"

# Credit allotments per cycle (not cumulative)
FREE_TIER_CREDITS = 5
PRO_TIER_CREDITS = 1000

# Credit renewal cycle, independent of the billing cycle
CREDIT_RENEWAL_DAYS = 28

# Billing cycle fallback when the provider sends no renewal timestamps
MONTHLY_CYCLE_DAYS = 30

PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLAN_DURATIONS = (PLAN_MONTHLY, PLAN_YEARLY)

# Lifecycle status tags
STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"
STATUS_PAYMENT_FAILED = "payment_failed"

# Payment providers
PROVIDER_WHOP = "whop"
PROVIDER_STRIPE = "stripe"

# Legacy deferred-identity rows used an account id with this prefix
TEMP_ACCOUNT_PREFIX = "temp_"

# Sort keys
ENTITLEMENT_SK = "PROFILE"
PENDING_PURCHASE_SK = "PURCHASE"

# Metadata keys embedded in checkout sessions
METADATA_ACCOUNT_ID = "account_id"
METADATA_EMAIL = "email"
METADATA_TOKEN = "token"
METADATA_PLAN_DURATION = "plan_duration"
METADATA_UNAUTHENTICATED = "unauthenticated"

# Upper bound on any single datastore call (seconds)
DATASTORE_TIMEOUT_SECONDS = float(os.environ.get("DATASTORE_TIMEOUT_SECONDS", "10"))

# Audit records expire after this many days
WEBHOOK_EVENT_TTL_DAYS = 90

# Provider API
WHOP_API = "https://api.whop.com/api/v2"
WHOP_TIMEOUT = 15.0

# Webhook processing outcomes
OUTCOME_PROCESSED = "processed"
OUTCOME_DROPPED = "dropped"
OUTCOME_IGNORED = "ignored"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
