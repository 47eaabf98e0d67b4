"""
Tests for the Subscription Billing Calculator.

Covers:
- Billing dates after new/success/failure/updated events
- Retry counter transitions
- Month-end clamping and interval validation
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from funding_kernel.domain.subscriptions import (
    add_interval,
    get_charge_retry_count,
    get_next_charge_and_period_start_dates,
)
from funding_kernel.exceptions import InvalidIntervalError, ValidationFailed


@dataclass
class FakeSubscription:
    interval: str
    next_charge_date: datetime | None = None
    next_period_start: datetime | None = None
    charge_retry_count: int = 0


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = _utc(2026, 3, 10, 9, 0)


class TestNextChargeDates:
    def test_new_subscription_is_due_now(self):
        dates = get_next_charge_and_period_start_dates("new", FakeSubscription("month"), NOW)
        assert dates.next_charge_date == NOW
        assert dates.next_period_start == NOW

    def test_success_advances_one_month(self):
        sub = FakeSubscription("month", next_charge_date=_utc(2026, 3, 1), next_period_start=_utc(2026, 2, 1))
        dates = get_next_charge_and_period_start_dates("success", sub, NOW)
        assert dates.next_charge_date == _utc(2026, 4, 1)
        assert dates.next_period_start == _utc(2026, 3, 1)

    def test_success_advances_one_year(self):
        sub = FakeSubscription("year", next_charge_date=_utc(2026, 3, 1))
        dates = get_next_charge_and_period_start_dates("success", sub, NOW)
        assert dates.next_charge_date == _utc(2027, 3, 1)

    def test_success_is_strictly_increasing(self):
        sub = FakeSubscription("month", next_charge_date=_utc(2026, 3, 1))
        first = get_next_charge_and_period_start_dates("success", sub, NOW)
        sub.next_charge_date = first.next_charge_date
        second = get_next_charge_and_period_start_dates("success", sub, NOW)
        assert second.next_charge_date > first.next_charge_date

    def test_failure_retries_two_days_later(self):
        sub = FakeSubscription("month", next_charge_date=_utc(2026, 3, 1), next_period_start=_utc(2026, 3, 1))
        dates = get_next_charge_and_period_start_dates("failure", sub, NOW)
        assert dates.next_charge_date == NOW + timedelta(days=2)
        assert dates.next_period_start == _utc(2026, 3, 1)

    def test_failure_with_custom_delay(self):
        sub = FakeSubscription("month", next_charge_date=NOW)
        dates = get_next_charge_and_period_start_dates("failure", sub, NOW, timedelta(days=5))
        assert dates.next_charge_date == NOW + timedelta(days=5)

    def test_updated_moves_to_next_boundary_after_now(self):
        sub = FakeSubscription(
            "month",
            next_charge_date=_utc(2026, 1, 17),
            next_period_start=_utc(2026, 1, 15),
            charge_retry_count=2,
        )
        dates = get_next_charge_and_period_start_dates("updated", sub, NOW)
        assert dates.next_charge_date == _utc(2026, 3, 15)
        assert dates.next_charge_date > NOW

    def test_unknown_event(self):
        with pytest.raises(ValidationFailed):
            get_next_charge_and_period_start_dates("paused", FakeSubscription("month"), NOW)

    def test_invalid_interval(self):
        with pytest.raises(InvalidIntervalError):
            get_next_charge_and_period_start_dates("new", FakeSubscription("week"), NOW)


class TestRetryCount:
    def test_failure_increments(self):
        assert get_charge_retry_count("failure", FakeSubscription("month", charge_retry_count=1)) == 2

    @pytest.mark.parametrize("event", ["success", "updated"])
    def test_success_and_updated_reset(self, event):
        assert get_charge_retry_count(event, FakeSubscription("month", charge_retry_count=3)) == 0

    def test_new_keeps_zero(self):
        assert get_charge_retry_count("new", FakeSubscription("month")) == 0


class TestAddInterval:
    def test_month_end_is_clamped(self):
        assert add_interval(_utc(2026, 1, 31), "month") == _utc(2026, 2, 28)

    def test_leap_day_next_year(self):
        assert add_interval(_utc(2028, 2, 29), "year") == _utc(2029, 2, 28)

    def test_december_rolls_into_next_year(self):
        assert add_interval(_utc(2026, 12, 15), "month") == _utc(2027, 1, 15)

    def test_count(self):
        assert add_interval(_utc(2026, 1, 15), "month", 3) == _utc(2026, 4, 15)
