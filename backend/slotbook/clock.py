# backend/slotbook/clock.py
"""
Injectable time source.

All scheduling code asks a clock for "now" instead of calling
datetime.now() directly. Times are naive wall-clock datetimes in the
business's canonical zone.
"""

from datetime import datetime, timedelta


class Clock:
    """Base time source."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Real wall-clock time."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant; moved explicitly by tests and scripts."""

    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta(**kwargs) and return the new instant."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    """Process clock (FastAPI dependency)."""
    return _clock
