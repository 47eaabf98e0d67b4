"""
Subscription Billing Calculator -- pure date and retry-count arithmetic.

Responsibility:
    Computes the next charge date, the start of the next billing period and
    the retry counter of a recurring order after a billing event.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``now`` is always
    passed in by the caller (from an injected Clock).

Billing events:
    new      first charge happens immediately with the initiating order:
             next_period_start = next_charge_date = now.
    success  the period that was due is paid: the next period starts at the
             previous charge date and the next charge is one interval later.
    failure  the charge is retried after RETRY_DELAY; the period boundary
             stays where it was.
    updated  the payment method was replaced after failed retries: advance
             from the original period boundary by whole intervals until the
             date is strictly after now.  Drift from retries is discarded
             instead of compounded.

Invariants enforced:
    - interval is exactly 'month' or 'year' (InvalidIntervalError otherwise).
    - After success or failure, next_charge_date strictly increases.
    - add_interval clamps to the last day of shorter months
      (Jan 31 + 1 month = Feb 28/29).
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from funding_kernel.exceptions import InvalidIntervalError, ValidationFailed

MONTH = "month"
YEAR = "year"
VALID_INTERVALS = frozenset({MONTH, YEAR})

BILLING_EVENTS = frozenset({"new", "success", "failure", "updated"})

RETRY_DELAY = timedelta(days=2)


class BillingState(Protocol):
    interval: str
    next_charge_date: datetime | None
    next_period_start: datetime | None
    charge_retry_count: int


@dataclass(frozen=True)
class BillingDates:
    next_charge_date: datetime
    next_period_start: datetime


def validate_interval(interval: str | None) -> str | None:
    """Return the interval unchanged, or raise for anything but month/year."""
    if interval is None:
        return None
    if interval not in VALID_INTERVALS:
        raise InvalidIntervalError(interval)
    return interval


def add_interval(date: datetime, interval: str, count: int = 1) -> datetime:
    """Advance ``date`` by ``count`` months or years, clamping the day."""
    validate_interval(interval)
    months = count if interval == MONTH else count * 12
    month_index = date.month - 1 + months
    year = date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


def _check_event(event: str) -> None:
    if event not in BILLING_EVENTS:
        raise ValidationFailed(f"Unknown billing event: {event!r}", "event")


def get_next_charge_and_period_start_dates(
    event: str,
    subscription: BillingState,
    now: datetime,
    retry_delay: timedelta = RETRY_DELAY,
) -> BillingDates:
    """Compute the billing dates that follow ``event``."""
    _check_event(event)
    interval = validate_interval(subscription.interval)
    if interval is None:
        raise InvalidIntervalError("None")

    if event == "new":
        return BillingDates(next_charge_date=now, next_period_start=now)

    previous_charge = subscription.next_charge_date or now
    period_start = subscription.next_period_start or previous_charge

    if event == "success":
        return BillingDates(
            next_charge_date=add_interval(previous_charge, interval),
            next_period_start=previous_charge,
        )

    if event == "failure":
        return BillingDates(
            next_charge_date=max(previous_charge, now) + retry_delay,
            next_period_start=period_start,
        )

    # updated
    next_charge = period_start
    steps = 0
    while next_charge <= now:
        steps += 1
        next_charge = add_interval(period_start, interval, steps)
    return BillingDates(next_charge_date=next_charge, next_period_start=period_start)


def get_charge_retry_count(event: str, subscription: BillingState) -> int:
    """Retry counter after ``event``: reset on success/updated, +1 on failure."""
    _check_event(event)
    if event in ("success", "updated"):
        return 0
    if event == "failure":
        return (subscription.charge_retry_count or 0) + 1
    return subscription.charge_retry_count or 0
