# backend/slotbook/services/scheduling/calculator.py
"""
Slot enumeration for one service on one date.

Candidates start exactly at opening time and step forward by
slot_step_minutes. A candidate [start, start + duration) is offered iff
  ✓ it ends no later than closing time (no partial slots)
  ✓ it overlaps no non-cancelled booking
  ✓ it starts strictly after `now`

Pure computation: no I/O, never cached (now and bookings keep changing).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from .config import SchedulingConfig, get_scheduling_config
from .hours import business_window
from .overlap import Interval, has_conflict


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime

    @property
    def label(self) -> str:
        """Display form, e.g. 09:00 AM - 09:30 AM."""
        return f"{self.start.strftime('%I:%M %p')} - {self.end.strftime('%I:%M %p')}"


class AvailableSlots:
    """
    Lazy, finite, restartable sequence of free slots in ascending start order.

    Every iteration re-runs the enumeration, so one instance can be
    consumed several times. Callers must keep the order: "first
    available" consumers rely on it.
    """

    def __init__(
        self,
        open_time: time | None,
        close_time: time | None,
        duration_minutes: int,
        existing: Iterable[Interval],
        target_date: date,
        now: datetime,
        config: SchedulingConfig | None = None,
    ):
        self.open_time = open_time
        self.close_time = close_time
        self.duration_minutes = duration_minutes
        self.existing = tuple(existing)
        self.target_date = target_date
        self.now = now
        self.config = config or get_scheduling_config()

    def __iter__(self) -> Iterator[Slot]:
        window = business_window(self.open_time, self.close_time, self.target_date)
        if window is None or self.duration_minutes <= 0:
            return

        opens_at, closes_at = window
        duration = timedelta(minutes=self.duration_minutes)
        step = timedelta(minutes=self.config.slot_step_minutes)

        start = opens_at
        while start + duration <= closes_at:
            end = start + duration
            if start > self.now and not has_conflict(start, end, self.existing):
                yield Slot(start, end)
            start += step

    def first(self) -> Slot | None:
        return next(iter(self), None)


def calculate_available_slots(
    open_time: time | None,
    close_time: time | None,
    duration_minutes: int,
    existing: Iterable[Interval],
    target_date: date,
    now: datetime,
    config: SchedulingConfig | None = None,
) -> list[Slot]:
    """Materialized AvailableSlots."""
    return list(AvailableSlots(
        open_time, close_time, duration_minutes, existing, target_date, now, config,
    ))
