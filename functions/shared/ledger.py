"""
Entitlement ledger: one DynamoDB row per account.

Key: pk = account id, sk = "PROFILE". All instants are stored as ISO-8601 UTC
strings. Writes are single-row read-modify-write without version checks;
concurrent writers for the same account race and the later write wins.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Callable, Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import (
    ENTITLEMENT_SK,
    FREE_TIER_CREDITS,
    MEMBERSHIP_FREE,
    MEMBERSHIP_PRO,
    PRO_TIER_CREDITS,
    STATUS_ACTIVE,
)
from shared.dynamo import (
    build_update,
    clean_item,
    from_dynamo_value,
    is_conditional_check_failure,
    query_index_all,
    query_index_first,
)
from shared.timeutils import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

ENTITLEMENTS_TABLE = os.environ.get("ENTITLEMENTS_TABLE", "credits-entitlements")

EMAIL_INDEX = "email-index"
PROVIDER_USER_INDEX = "provider-user-index"
PROVIDER_CUSTOMER_INDEX = "provider-customer-index"

_DATETIME_FIELDS = (
    "billing_cycle_start",
    "billing_cycle_end",
    "next_credit_renewal",
    "created_at",
    "updated_at",
)

# Probe key; never written
_PROBE_KEY = {"pk": "__health_probe__", "sk": ENTITLEMENT_SK}


def normalize_email(email: Optional[str]) -> Optional[str]:
    return email.strip().lower() if email else None


@dataclass
class EntitlementRecord:
    """Entitlement state for one account."""

    account_id: str
    membership: str = MEMBERSHIP_FREE
    payment_provider: Optional[str] = None
    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    provider_membership_id: Optional[str] = None
    provider_user_id: Optional[str] = None
    email: Optional[str] = None
    plan_duration: Optional[str] = None
    billing_cycle_start: Optional[datetime] = None
    billing_cycle_end: Optional[datetime] = None
    next_credit_renewal: Optional[datetime] = None
    usage_credits: int = FREE_TIER_CREDITS
    used_credits: int = 0
    status: str = STATUS_ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_pro(self) -> bool:
        return self.membership == MEMBERSHIP_PRO

    @property
    def remaining(self) -> int:
        """Credits left this cycle, never negative."""
        return max(0, self.usage_credits - self.used_credits)

    @classmethod
    def from_item(cls, item: dict) -> "EntitlementRecord":
        known = {f.name for f in fields(cls)}
        values = {
            k: from_dynamo_value(v)
            for k, v in item.items()
            if k in known
        }
        for name in _DATETIME_FIELDS:
            if name in values:
                values[name] = parse_iso(values[name])
        values["account_id"] = item["pk"]
        return cls(**values)

    def to_item(self) -> dict:
        item = asdict(self)
        item["pk"] = item.pop("account_id")
        item["sk"] = ENTITLEMENT_SK
        return clean_item(item)


class EntitlementLedger:
    """
    Read and write entitlement records.

    Args:
        table: boto3 Table resource; defaults to ENTITLEMENTS_TABLE
        clock: Returns the current UTC datetime; used for timestamps
    """

    def __init__(self, table=None, clock: Callable[[], datetime] = utc_now):
        self.table = table if table is not None else get_dynamodb().Table(ENTITLEMENTS_TABLE)
        self.clock = clock

    def get(self, account_id: str) -> Optional[EntitlementRecord]:
        response = self.table.get_item(Key={"pk": account_id, "sk": ENTITLEMENT_SK})
        item = response.get("Item")
        return EntitlementRecord.from_item(item) if item else None

    def create(self, record: EntitlementRecord, overwrite: bool = False) -> EntitlementRecord:
        """
        Insert a record.

        Without `overwrite` the write is conditional on the row not existing;
        if another writer got there first, the stored row is returned instead.
        """
        now = self.clock()
        record.created_at = record.created_at or now
        record.updated_at = now
        record.email = normalize_email(record.email)

        kwargs = {"Item": record.to_item()}
        if not overwrite:
            kwargs["ConditionExpression"] = "attribute_not_exists(pk)"

        try:
            self.table.put_item(**kwargs)
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.info(
                    "Entitlement record already exists",
                    extra={"account_id": record.account_id},
                )
                return self.get(record.account_id)
            raise
        return record

    def create_default(
        self,
        account_id: str,
        email: Optional[str] = None,
        membership: str = MEMBERSHIP_FREE,
        usage_credits: Optional[int] = None,
        next_credit_renewal: Optional[datetime] = None,
    ) -> EntitlementRecord:
        """Create the first-session record; pro records default to the pro allotment."""
        if usage_credits is None:
            usage_credits = PRO_TIER_CREDITS if membership == MEMBERSHIP_PRO else FREE_TIER_CREDITS
        record = EntitlementRecord(
            account_id=account_id,
            email=email,
            membership=membership,
            usage_credits=usage_credits,
            used_credits=0,
            status=STATUS_ACTIVE,
            next_credit_renewal=next_credit_renewal,
        )
        return self.create(record)

    def update(
        self,
        account_id: str,
        changes: dict,
        must_exist: bool = True,
    ) -> Optional[EntitlementRecord]:
        """
        Apply attribute changes to one record and return the new state.

        None values remove the attribute. `updated_at` is always set, and
        `created_at` is filled in when the write creates the row.

        Returns:
            The updated record, or None when `must_exist` and no row exists
        """
        changes = dict(changes)
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updated_at"] = self.clock()
        changes.pop("created_at", None)

        expression, names, values = build_update(changes)
        names["#created_at"] = "created_at"
        values[":created_at"] = to_iso(changes["updated_at"])
        expression = expression.replace(
            "SET ", "SET #created_at = if_not_exists(#created_at, :created_at), ", 1
        )

        kwargs = {
            "Key": {"pk": account_id, "sk": ENTITLEMENT_SK},
            "UpdateExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if must_exist:
            kwargs["ConditionExpression"] = "attribute_exists(pk)"

        try:
            response = self.table.update_item(**kwargs)
        except ClientError as e:
            if must_exist and is_conditional_check_failure(e):
                logger.warning(
                    "Entitlement record not found for update",
                    extra={"account_id": account_id},
                )
                return None
            raise

        return EntitlementRecord.from_item(response["Attributes"])

    def add_used_credits(self, account_id: str, amount: int) -> Optional[EntitlementRecord]:
        """Increment used_credits in a single atomic update."""
        try:
            response = self.table.update_item(
                Key={"pk": account_id, "sk": ENTITLEMENT_SK},
                UpdateExpression="ADD used_credits :amount SET updated_at = :now",
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeValues={
                    ":amount": amount,
                    ":now": to_iso(self.clock()),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                return None
            raise
        return EntitlementRecord.from_item(response["Attributes"])

    def delete(self, account_id: str) -> None:
        self.table.delete_item(Key={"pk": account_id, "sk": ENTITLEMENT_SK})

    def find_by_email(self, email: str) -> list[EntitlementRecord]:
        items = query_index_all(self.table, EMAIL_INDEX, "email", normalize_email(email))
        return [EntitlementRecord.from_item(item) for item in items]

    def find_by_provider_user_id(self, provider_user_id: str) -> Optional[EntitlementRecord]:
        item = query_index_first(self.table, PROVIDER_USER_INDEX, "provider_user_id", provider_user_id)
        return EntitlementRecord.from_item(item) if item else None

    def find_by_provider_customer_id(self, customer_id: str) -> Optional[EntitlementRecord]:
        item = query_index_first(self.table, PROVIDER_CUSTOMER_INDEX, "provider_customer_id", customer_id)
        return EntitlementRecord.from_item(item) if item else None

    def probe(self) -> bool:
        """Cheap round trip to confirm the datastore answers. Never raises."""
        try:
            self.table.get_item(Key=_PROBE_KEY)
            return True
        except Exception as e:
            logger.error(
                f"Datastore probe failed: {e}",
                extra={"error_type": type(e).__name__},
            )
            return False
