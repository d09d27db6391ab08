"""
DynamoDB helpers shared by the entitlement ledger and the pending-purchase store.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional, Tuple

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .timeutils import to_iso

logger = logging.getLogger(__name__)

# Never written through an update expression
KEY_ATTRIBUTES = ("pk", "sk")


def to_dynamo_value(value: Any) -> Any:
    """Convert a Python value to something boto3 will serialize."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def from_dynamo_value(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float."""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


def clean_item(item: dict) -> dict:
    """Drop None values and convert the rest. GSI key attributes may not be NULL."""
    return {k: to_dynamo_value(v) for k, v in item.items() if v is not None}


def build_update(changes: dict) -> Tuple[str, dict, dict]:
    """
    Build an UpdateExpression from a dict of attribute changes.

    A value of None REMOVEs the attribute; anything else is SET. Attribute
    names are always aliased since several (status, ttl) are reserved words.

    Returns:
        (update_expression, expression_attribute_names, expression_attribute_values)
    """
    set_parts = []
    remove_parts = []
    names = {}
    values = {}

    for i, (attr, value) in enumerate(sorted(changes.items())):
        if attr in KEY_ATTRIBUTES:
            continue
        alias = f"#f{i}"
        names[alias] = attr
        if value is None:
            remove_parts.append(alias)
        else:
            values[f":v{i}"] = to_dynamo_value(value)
            set_parts.append(f"{alias} = :v{i}")

    clauses = []
    if set_parts:
        clauses.append("SET " + ", ".join(set_parts))
    if remove_parts:
        clauses.append("REMOVE " + ", ".join(remove_parts))

    return " ".join(clauses), names, values


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def query_index_first(table, index_name: str, attribute: str, value: str) -> Optional[dict]:
    """Return the first item of a GSI query, or None."""
    response = table.query(
        IndexName=index_name,
        KeyConditionExpression=Key(attribute).eq(value),
        Limit=1,
    )
    items = response.get("Items", [])
    return items[0] if items else None


def query_index_all(table, index_name: str, attribute: str, value: str) -> list:
    """Return every item of a GSI query, following pagination."""
    items = []
    kwargs = {
        "IndexName": index_name,
        "KeyConditionExpression": Key(attribute).eq(value),
    }
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def scan_where(table, attribute: str, value: Any) -> Iterator[dict]:
    """Yield every item whose attribute equals value, following pagination."""
    kwargs = {"FilterExpression": Attr(attribute).eq(value)}
    while True:
        response = table.scan(**kwargs)
        yield from response.get("Items", [])
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        kwargs["ExclusiveStartKey"] = last_key
