"""
Tests for credit checks and consumption.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from conftest import FIXED_NOW

from shared.credits import (
    check_credits,
    ensure_entitlement,
    get_credit_status,
    has_reached_credit_limit,
    use_credits,
    with_premium_feature,
)
from shared.ledger import EntitlementRecord

DAY = timedelta(days=1)


@pytest.fixture(autouse=True)
def mock_metrics():
    with patch("shared.credits.emit_credits_consumed_metric") as mock_metric:
        yield mock_metric


def _pro(ledger, **kwargs):
    values = {
        "account_id": "acct_1",
        "membership": "pro",
        "usage_credits": 1000,
        "used_credits": 0,
        "billing_cycle_end": FIXED_NOW + 20 * DAY,
        "next_credit_renewal": FIXED_NOW + 10 * DAY,
    }
    values.update(kwargs)
    return ledger.create(EntitlementRecord(**values))


class TestEnsureEntitlement:
    def test_creates_free_default(self, ledger):
        record = ensure_entitlement(ledger, "acct_1", "alice@example.com")

        assert record.membership == "free"
        assert record.usage_credits == 5
        assert record.next_credit_renewal == FIXED_NOW + 28 * DAY

    def test_returns_existing(self, ledger):
        _pro(ledger)
        assert ensure_entitlement(ledger, "acct_1").membership == "pro"


class TestGetCreditStatus:
    def test_missing_profile(self, ledger):
        status = get_credit_status(ledger, "acct_missing", FIXED_NOW)
        assert status["error"] == "Profile not found"
        assert status["remaining"] == 0

    def test_pro_status(self, ledger):
        _pro(ledger, used_credits=12)

        status = get_credit_status(ledger, "acct_1", FIXED_NOW)

        assert status == {
            "total": 1000,
            "used": 12,
            "remaining": 988,
            "nextBillingDate": (FIXED_NOW + 20 * DAY).isoformat(),
            "nextCreditRenewal": (FIXED_NOW + 10 * DAY).isoformat(),
            "membership": "pro",
        }

    def test_rollover_applies_before_reporting(self, ledger):
        _pro(ledger, used_credits=700, next_credit_renewal=FIXED_NOW - DAY)

        status = get_credit_status(ledger, "acct_1", FIXED_NOW)

        assert status["used"] == 0
        assert status["remaining"] == 1000


class TestCheckCredits:
    def test_pro_with_enough_credits(self, ledger):
        _pro(ledger, used_credits=990)
        assert check_credits(ledger, "acct_1", 10, FIXED_NOW).has_credits

    def test_pro_without_enough_credits(self, ledger):
        _pro(ledger, used_credits=995)

        check = check_credits(ledger, "acct_1", 10, FIXED_NOW)

        assert not check.has_credits
        assert check.error == "Not enough credits. You have 5 remaining, but need 10."

    def test_canceled_inside_cycle_keeps_pro_balance(self, ledger):
        _pro(ledger, membership="free", status="canceled", used_credits=100)
        assert check_credits(ledger, "acct_1", 50, FIXED_NOW).has_credits

    def test_free_account_needing_more_than_free_allotment(self, ledger):
        ensure_entitlement(ledger, "acct_1")

        check = check_credits(ledger, "acct_1", 6, FIXED_NOW)

        assert not check.has_credits
        assert check.error == "This feature requires a premium membership"

    def test_canceled_after_cycle_is_clamped_to_free(self, ledger):
        _pro(ledger, membership="free", status="canceled", used_credits=100, billing_cycle_end=FIXED_NOW - DAY)

        check = check_credits(ledger, "acct_1", 5, FIXED_NOW)

        assert check.has_credits
        assert ledger.get("acct_1").usage_credits == 5

    def test_missing_profile(self, ledger):
        check = check_credits(ledger, "acct_missing", 1, FIXED_NOW)
        assert not check.has_credits
        assert check.remaining == 0


class TestUseCredits:
    def test_consumes_and_reports(self, ledger, mock_metrics):
        _pro(ledger)

        result = use_credits(ledger, "acct_1", 3, "summarize", FIXED_NOW)

        assert result["success"]
        assert result["record"].used_credits == 3
        mock_metrics.assert_called_once_with("summarize", 3)

    def test_refuses_when_short(self, ledger, mock_metrics):
        ensure_entitlement(ledger, "acct_1")
        use_credits(ledger, "acct_1", 5, now=FIXED_NOW)

        result = use_credits(ledger, "acct_1", 1, now=FIXED_NOW)

        assert not result["success"]
        assert ledger.get("acct_1").used_credits == 5

    def test_limit_reached(self, ledger):
        ensure_entitlement(ledger, "acct_1")
        assert not has_reached_credit_limit(ledger, "acct_1")
        use_credits(ledger, "acct_1", 5, now=FIXED_NOW)
        assert has_reached_credit_limit(ledger, "acct_1")
        assert not has_reached_credit_limit(ledger, "acct_missing")

    def test_limit_resets_once_renewal_date_passes(self, ledger):
        ledger.create(
            EntitlementRecord(
                account_id="acct_1",
                usage_credits=5,
                used_credits=5,
                next_credit_renewal=FIXED_NOW - DAY,
            )
        )

        assert not has_reached_credit_limit(ledger, "acct_1", now=FIXED_NOW)
        assert ledger.get("acct_1").used_credits == 0
        assert get_credit_status(ledger, "acct_1", now=FIXED_NOW)["remaining"] == 5


class TestWithPremiumFeature:
    def test_runs_feature_after_charging(self, ledger):
        _pro(ledger)
        feature = MagicMock(return_value={"summary": "ok"})

        result = with_premium_feature(ledger, "acct_1", feature, 10, "summarize")

        assert result == {"success": True, "data": {"summary": "ok"}, "creditsRemaining": 990}
        feature.assert_called_once()

    def test_does_not_run_feature_without_credits(self, ledger):
        ensure_entitlement(ledger, "acct_1")
        feature = MagicMock()

        result = with_premium_feature(ledger, "acct_1", feature, 50, "summarize")

        assert result["success"] is False
        assert result["creditsRemaining"] == 5
        feature.assert_not_called()
