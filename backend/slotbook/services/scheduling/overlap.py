# backend/slotbook/services/scheduling/overlap.py
"""
Conflict detection between booking intervals.

Intervals are half-open [start, end): touching endpoints do not overlap.
Cancelled bookings never take part in a conflict.
"""

from datetime import datetime
from typing import Iterable, NamedTuple

from ...models.enums import BookingStatus


class Interval(NamedTuple):
    """An occupied (or candidate) interval of a service."""
    start: datetime
    end: datetime
    status: BookingStatus = BookingStatus.CONFIRMED


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflicts(
    start: datetime,
    end: datetime,
    existing: Iterable[Interval],
) -> list[Interval]:
    """Non-cancelled intervals overlapping [start, end)."""
    return [
        interval
        for interval in existing
        if BookingStatus(interval.status).is_active
        and overlaps(start, end, interval.start, interval.end)
    ]


def has_conflict(start: datetime, end: datetime, existing: Iterable[Interval]) -> bool:
    return any(
        BookingStatus(interval.status).is_active
        and overlaps(start, end, interval.start, interval.end)
        for interval in existing
    )
