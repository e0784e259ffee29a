# backend/slotbook/services/scheduling/__init__.py
"""
Scheduling core.

Pure policies (no I/O):
  hours: business-hours containment
  overlap: half-open interval conflict detection
  calculator: slot enumeration
DB-backed read path:
  availability: free slots of a service on a date
"""

from .config import SchedulingConfig, get_scheduling_config
from .hours import (
    business_window,
    currently_open,
    format_minutes,
    time_until_status_change,
    validate_business_hours,
    within_business_hours,
)
from .overlap import Interval, find_conflicts, has_conflict, overlaps
from .calculator import AvailableSlots, Slot, calculate_available_slots
from .availability import (
    available_slots_for_service,
    find_bookings_for_service,
    get_available_slots,
)

__all__ = [
    "SchedulingConfig",
    "get_scheduling_config",
    "business_window",
    "currently_open",
    "format_minutes",
    "time_until_status_change",
    "validate_business_hours",
    "within_business_hours",
    "Interval",
    "find_conflicts",
    "has_conflict",
    "overlaps",
    "AvailableSlots",
    "Slot",
    "calculate_available_slots",
    "available_slots_for_service",
    "find_bookings_for_service",
    "get_available_slots",
]
