"""
Pending purchases: frictionless payments made by email before an account exists.

Key: pk = lower-cased email, sk = "PURCHASE". Rows are never deleted; a claim
only flips `claimed` and records who claimed it and when.
"""

import logging
import os
import uuid
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Callable, Iterator, Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import MEMBERSHIP_PRO, PENDING_PURCHASE_SK, PRO_TIER_CREDITS
from shared.dynamo import (
    build_update,
    clean_item,
    from_dynamo_value,
    is_conditional_check_failure,
    scan_where,
)
from shared.errors import AlreadyClaimedError
from shared.ledger import normalize_email
from shared.logging_utils import mask_email
from shared.timeutils import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

PENDING_PURCHASES_TABLE = os.environ.get("PENDING_PURCHASES_TABLE", "credits-pending-purchases")

_DATETIME_FIELDS = (
    "billing_cycle_start",
    "billing_cycle_end",
    "next_credit_renewal",
    "claimed_at",
    "created_at",
    "updated_at",
)


@dataclass
class PendingPurchase:
    """An unclaimed (or claimed) email-only purchase."""

    email: str
    id: str = ""
    token: Optional[str] = None
    membership: str = MEMBERSHIP_PRO
    payment_provider: Optional[str] = None
    provider_user_id: Optional[str] = None
    provider_membership_id: Optional[str] = None
    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    plan_duration: Optional[str] = None
    billing_cycle_start: Optional[datetime] = None
    billing_cycle_end: Optional[datetime] = None
    next_credit_renewal: Optional[datetime] = None
    usage_credits: int = PRO_TIER_CREDITS
    used_credits: int = 0
    claimed: bool = False
    claimed_by_account_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def claimable_by(self, account_id: str) -> bool:
        return not self.claimed or self.claimed_by_account_id == account_id

    @classmethod
    def from_item(cls, item: dict) -> "PendingPurchase":
        known = {f.name for f in fields(cls)}
        values = {k: from_dynamo_value(v) for k, v in item.items() if k in known}
        for name in _DATETIME_FIELDS:
            if name in values:
                values[name] = parse_iso(values[name])
        values["claimed"] = bool(values.get("claimed", False))
        return cls(**values)

    def to_item(self) -> dict:
        item = asdict(self)
        item["pk"] = normalize_email(self.email)
        item["sk"] = PENDING_PURCHASE_SK
        return clean_item(item)


class PendingPurchaseStore:
    """
    Read and write pending purchases.

    Args:
        table: boto3 Table resource; defaults to PENDING_PURCHASES_TABLE
        clock: Returns the current UTC datetime
    """

    def __init__(self, table=None, clock: Callable[[], datetime] = utc_now):
        self.table = table if table is not None else get_dynamodb().Table(PENDING_PURCHASES_TABLE)
        self.clock = clock

    @staticmethod
    def _key(email: str) -> dict:
        return {"pk": normalize_email(email), "sk": PENDING_PURCHASE_SK}

    def get_by_email(self, email: str) -> Optional[PendingPurchase]:
        if not email:
            return None
        response = self.table.get_item(Key=self._key(email))
        item = response.get("Item")
        return PendingPurchase.from_item(item) if item else None

    def insert(self, purchase: PendingPurchase) -> PendingPurchase:
        """
        Insert a new pending purchase.

        Conditional on no row existing for the email; a concurrent insert for
        the same email surfaces as ConditionalCheckFailedException.
        """
        now = self.clock()
        purchase.email = normalize_email(purchase.email)
        purchase.id = purchase.id or str(uuid.uuid4())
        purchase.token = purchase.token or str(uuid.uuid4())
        purchase.created_at = purchase.created_at or now
        purchase.updated_at = now

        self.table.put_item(
            Item=purchase.to_item(),
            ConditionExpression="attribute_not_exists(pk)",
        )
        logger.info(
            "Created pending purchase",
            extra={"email": mask_email(purchase.email), "purchase_id": purchase.id},
        )
        return purchase

    def update(self, email: str, changes: dict) -> PendingPurchase:
        """Apply attribute changes in place and return the new state."""
        changes = dict(changes)
        changes["updated_at"] = self.clock()
        for key in ("email", "id", "created_at"):
            changes.pop(key, None)

        expression, names, values = build_update(changes)
        response = self.table.update_item(
            Key=self._key(email),
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ConditionExpression="attribute_exists(pk)",
            ReturnValues="ALL_NEW",
        )
        return PendingPurchase.from_item(response["Attributes"])

    def mark_claimed(self, email: str, account_id: str) -> PendingPurchase:
        """
        Mark a purchase as claimed by an account.

        The write only succeeds while the row is unclaimed or already claimed by
        the same account, so two accounts can never both claim one purchase.

        Raises:
            AlreadyClaimedError: another account claimed it first
        """
        now = self.clock()
        try:
            response = self.table.update_item(
                Key=self._key(email),
                UpdateExpression=(
                    "SET claimed = :true, claimed_by_account_id = :account_id, "
                    "claimed_at = :now, updated_at = :now"
                ),
                ConditionExpression=(
                    "attribute_exists(pk) AND "
                    "(claimed = :false OR claimed_by_account_id = :account_id)"
                ),
                ExpressionAttributeValues={
                    ":true": True,
                    ":false": False,
                    ":account_id": account_id,
                    ":now": to_iso(now),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise AlreadyClaimedError(normalize_email(email)) from e
            raise
        return PendingPurchase.from_item(response["Attributes"])

    def list_unclaimed(self) -> Iterator[PendingPurchase]:
        """Every unclaimed purchase. Full table scan; for support and reporting only."""
        for item in scan_where(self.table, "claimed", False):
            yield PendingPurchase.from_item(item)
