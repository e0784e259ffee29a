# backend/slotbook/services/scheduling/config.py
"""
Scheduling configuration and time-of-day helpers.
"""

from dataclasses import dataclass
from datetime import datetime, time
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class SchedulingConfig:
    """
    Configuration for the scheduling core.

    Attributes:
        slot_step_minutes: Step between candidate slot starts (15/30/60)
        cancellation_lead_hours: Bookings can be cancelled only while their
            start is more than this many hours away
        auto_confirm_bookings: Client-created bookings start as confirmed
            instead of pending
        lock_timeout_seconds: How long a booking commit waits for the
            per-service lock
    """
    slot_step_minutes: int = 30
    cancellation_lead_hours: int = 24
    auto_confirm_bookings: bool = False
    lock_timeout_seconds: float = 10.0

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {self.slot_step_minutes}")
        if self.cancellation_lead_hours < 0:
            raise ValueError("cancellation_lead_hours must not be negative")


@lru_cache
def get_scheduling_config() -> SchedulingConfig:
    """Scheduling configuration built from settings (singleton)."""
    return SchedulingConfig(
        slot_step_minutes=settings.slot_step_minutes,
        cancellation_lead_hours=settings.cancellation_lead_hours,
        auto_confirm_bookings=settings.auto_confirm_bookings,
        lock_timeout_seconds=settings.service_lock_timeout_seconds,
    )


def minute_of_day(value: time | datetime) -> int:
    """Hour/minute component as minutes since midnight (seconds ignored)."""
    return value.hour * 60 + value.minute

