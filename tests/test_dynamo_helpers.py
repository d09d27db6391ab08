"""
Tests for DynamoDB helper functions.
"""

from datetime import datetime, timezone
from decimal import Decimal

from botocore.exceptions import ClientError

from shared.dynamo import (
    build_update,
    clean_item,
    from_dynamo_value,
    is_conditional_check_failure,
    to_dynamo_value,
)


class TestValueConversion:
    def test_datetime_becomes_iso_utc(self):
        assert to_dynamo_value(datetime(2026, 1, 1, tzinfo=timezone.utc)) == "2026-01-01T00:00:00+00:00"

    def test_float_becomes_decimal(self):
        assert to_dynamo_value(0.5) == Decimal("0.5")

    def test_decimal_comes_back_as_int_or_float(self):
        assert from_dynamo_value(Decimal("5")) == 5
        assert isinstance(from_dynamo_value(Decimal("5")), int)
        assert from_dynamo_value(Decimal("0.5")) == 0.5

    def test_clean_item_drops_none(self):
        assert clean_item({"a": 1, "b": None}) == {"a": 1}


class TestBuildUpdate:
    def test_set_and_remove(self):
        expression, names, values = build_update({"status": "canceled", "plan_duration": None})

        assert expression == "SET #f1 = :v1 REMOVE #f0"
        assert names == {"#f0": "plan_duration", "#f1": "status"}
        assert values == {":v1": "canceled"}

    def test_key_attributes_are_skipped(self):
        expression, names, values = build_update({"pk": "x", "sk": "y", "used_credits": 0})

        assert "pk" not in names.values()
        assert "sk" not in names.values()
        assert list(values.values()) == [0]
        assert expression.startswith("SET ")


class TestErrorClassification:
    def _error(self, code):
        return ClientError({"Error": {"Code": code, "Message": "x"}}, "PutItem")

    def test_conditional_check_failure(self):
        assert is_conditional_check_failure(self._error("ConditionalCheckFailedException"))
        assert not is_conditional_check_failure(self._error("ThrottlingException"))

