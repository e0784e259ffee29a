# backend/slotbook/services/scheduling/hours.py
"""
Business-hours policy.

Hours are a single daily [open, close) window of time-of-day values that
applies to every service of the business. Overnight ranges are not
supported: close <= open is a configuration error, rejected when the
owner edits the business and treated as "never open" here.
"""

from datetime import date, datetime, time

from ..errors import InvalidInputError
from .config import minute_of_day


def hours_configured(open_time: time | None, close_time: time | None) -> bool:
    return open_time is not None and close_time is not None


def within_business_hours(
    open_time: time | None,
    close_time: time | None,
    start: datetime,
    end: datetime,
) -> bool:
    """True if [start, end) lies inside [open, close) on a single calendar day."""
    if not hours_configured(open_time, close_time):
        return False
    if end <= start:
        return False
    # Same-day only: an interval crossing midnight never fits
    if start.date() != end.date():
        return False

    return start.time() >= open_time and end.time() <= close_time


def business_window(
    open_time: time | None,
    close_time: time | None,
    target_date: date,
) -> tuple[datetime, datetime] | None:
    """
    Concrete [open, close) instants for target_date.

    Returns None when hours are unset or malformed (close <= open).
    """
    if not hours_configured(open_time, close_time):
        return None
    if minute_of_day(close_time) <= minute_of_day(open_time):
        return None

    opens_at = datetime.combine(target_date, time(open_time.hour, open_time.minute))
    closes_at = datetime.combine(target_date, time(close_time.hour, close_time.minute))
    return opens_at, closes_at


def currently_open(open_time: time | None, close_time: time | None, now: datetime) -> bool:
    """Whether the business is open at the wall-clock instant `now`."""
    if not hours_configured(open_time, close_time):
        return False
    current = minute_of_day(now)
    return minute_of_day(open_time) <= current < minute_of_day(close_time)


def time_until_status_change(
    open_time: time | None,
    close_time: time | None,
    now: datetime,
) -> str | None:
    """Time until the business next opens or closes, e.g. "2h 15m"; None without hours."""
    if not hours_configured(open_time, close_time):
        return None

    current = minute_of_day(now)
    opens = minute_of_day(open_time)
    closes = minute_of_day(close_time)

    if currently_open(open_time, close_time, now):
        minutes = closes - current
    elif current < opens:
        minutes = opens - current
    else:
        # Opens tomorrow
        minutes = 24 * 60 - current + opens
    return format_minutes(minutes)


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"


def validate_business_hours(open_time: time | None, close_time: time | None) -> None:
    """Edit-time check for owner-supplied hours."""
    if (open_time is None) != (close_time is None):
        raise InvalidInputError(
            "Set both opening and closing time, or neither",
            kind="invalid_hours",
        )
    if open_time is None:
        return
    if minute_of_day(close_time) <= minute_of_day(open_time):
        raise InvalidInputError(
            "Closing time must be after opening time (overnight hours are not supported)",
            kind="invalid_hours",
            details={
                "open_time": open_time.strftime("%H:%M"),
                "close_time": close_time.strftime("%H:%M"),
            },
        )
