from __future__ import annotations

import datetime as dt

import pytz

from studioflow.core.config import settings


def ensure_aware(value: dt.datetime, *, name: str = "timestamp") -> dt.datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware")
    return value


def as_utc(value: dt.datetime) -> dt.datetime:
    return ensure_aware(value).astimezone(dt.timezone.utc)


def is_valid_at(rule, at: dt.datetime) -> bool:  # noqa: ANN001
    """
    Half-open validity: valid_from <= at < valid_until (open-ended when valid_until is None).

    Rules carrying an is_active flag must also have it set.
    """
    at = as_utc(at)
    if getattr(rule, "is_active", True) is False:
        return False
    if at < as_utc(rule.valid_from):
        return False
    if rule.valid_until is not None and at >= as_utc(rule.valid_until):
        return False
    return True


def business_tz(tz_name: str | None = None):  # noqa: ANN201
    return pytz.timezone(tz_name or settings.business_timezone)


def period_bounds(period_start: dt.date, period_end: dt.date, tz_name: str | None = None) -> tuple[dt.datetime, dt.datetime]:
    """
    UTC instants covering the civil days period_start..period_end, both inclusive.

    Start is local midnight of period_start, end is the last microsecond of period_end.
    """
    if period_end < period_start:
        raise ValueError("period_end must not be before period_start")
    tz = business_tz(tz_name)
    start = tz.localize(dt.datetime.combine(period_start, dt.time.min))
    end = tz.localize(dt.datetime.combine(period_end, dt.time.max))
    return start.astimezone(dt.timezone.utc), end.astimezone(dt.timezone.utc)


def business_today(tz_name: str | None = None, *, now: dt.datetime | None = None) -> dt.date:
    now = as_utc(now) if now is not None else dt.datetime.now(dt.timezone.utc)
    return now.astimezone(business_tz(tz_name)).date()


def month_period(month: dt.date) -> tuple[dt.date, dt.date]:
    """First and last day of the calendar month containing `month`."""
    first = dt.date(month.year, month.month, 1)
    if month.month == 12:
        nxt = dt.date(month.year + 1, 1, 1)
    else:
        nxt = dt.date(month.year, month.month + 1, 1)
    return first, nxt - dt.timedelta(days=1)
