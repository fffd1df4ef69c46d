"""Billing calendar: next charge dates and retry counts for subscriptions.

Given the outcome of a billing event and the subscription's current state,
returns when to charge next:

- ``new`` / ``success``: one interval after the current period start (or
  creation), which also becomes the next period start
- ``failure``: retry ``retry_delay_days`` from now; the period stays put
- ``updated``: charge immediately (payment method replaced after a failure)
"""

import calendar
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum


class BillingEvent(Enum):
    NEW = "new"
    SUCCESS = "success"
    FAILURE = "failure"
    UPDATED = "updated"


DEFAULT_RETRY_DELAY_DAYS = 2


@dataclass(frozen=True)
class ChargeDates:
    next_charge_date: datetime
    next_period_start: datetime | None = None


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime to an aware UTC datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def add_interval(start: datetime, interval: str) -> datetime:
    """Add one month or one year, clamping to the last day of shorter months."""
    if interval == "year":
        year, month = start.year + 1, start.month
    elif interval == "month":
        year, month = (start.year + 1, 1) if start.month == 12 else (start.year, start.month + 1)
    else:
        raise ValueError(f"Unknown billing interval: {interval!r}")
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def next_dates(
    event: BillingEvent,
    subscription,
    now: datetime | None = None,
    retry_delay_days: int = DEFAULT_RETRY_DELAY_DAYS,
) -> ChargeDates:
    now = now or datetime.now(UTC)
    if event in (BillingEvent.NEW, BillingEvent.SUCCESS):
        start = as_utc(subscription.next_period_start) or as_utc(subscription.created_at) or now
        period_start = add_interval(start, subscription.interval)
        return ChargeDates(next_charge_date=period_start, next_period_start=period_start)
    if event == BillingEvent.FAILURE:
        return ChargeDates(
            next_charge_date=now + timedelta(days=retry_delay_days),
            next_period_start=as_utc(subscription.next_period_start),
        )
    return ChargeDates(next_charge_date=now, next_period_start=as_utc(subscription.next_period_start))


def next_retry_count(event: BillingEvent, subscription) -> int:
    if event == BillingEvent.FAILURE:
        return (subscription.charge_retry_count or 0) + 1
    return 0
