"""
UTC day arithmetic for daily quota periods.

A quota period is one UTC calendar day. Usage for a day is keyed by its
date; the period resets at the next UTC midnight.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Normalise a datetime to aware UTC. Naive values are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def usage_date_for(moment: datetime) -> date:
    """UTC calendar date that a moment's usage is counted against."""
    return as_utc(moment).date()


def next_utc_midnight(moment: datetime) -> datetime:
    """
    Get the reset instant for the period containing moment.

    Always strictly after moment: at exactly 00:00:00 UTC the next reset is
    the following midnight.
    """
    day = usage_date_for(moment)
    return datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)


def percentage_used(current_usage: int, daily_limit: int) -> int:
    """
    Round-half-up integer percentage of the limit that has been used.

    Integer arithmetic keeps x.5 boundaries exact: 1/8 -> 13, 1/200 -> 1.
    """
    if daily_limit <= 0:
        raise ValueError("daily_limit must be positive")
    return (200 * current_usage + daily_limit) // (2 * daily_limit)


def threshold_reached(current_usage: int, daily_limit: int, threshold_percent: int) -> bool:
    """Check if usage is at or past threshold_percent of the limit, without rounding."""
    return current_usage * 100 >= threshold_percent * daily_limit
