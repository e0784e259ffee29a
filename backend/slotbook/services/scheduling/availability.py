# backend/slotbook/services/scheduling/availability.py
"""
Read path: free slots of a service on a date.

Best-effort snapshot. No locking here; the booking write path
re-validates against a fresh read while holding the service lock.
"""

from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from ...clock import Clock, get_clock
from ...models import Bookings, BookingStatus, Services
from ..errors import NotFoundError
from .calculator import AvailableSlots, Slot
from .config import SchedulingConfig, get_scheduling_config
from .overlap import Interval


def get_available_slots(
    db: Session,
    service_id: int,
    target_date: date,
    clock: Clock | None = None,
    config: SchedulingConfig | None = None,
) -> list[Slot]:
    """Free slots for a service on target_date, ascending by start."""
    service = db.get(Services, service_id)
    if not service:
        raise NotFoundError("Service", service_id)
    return available_slots_for_service(db, service, target_date, clock, config)


def available_slots_for_service(
    db: Session,
    service: Services,
    target_date: date,
    clock: Clock | None = None,
    config: SchedulingConfig | None = None,
) -> list[Slot]:
    clock = clock or get_clock()
    config = config or get_scheduling_config()

    business = service.business
    day_start = datetime.combine(target_date, time.min)
    day_end = day_start + timedelta(days=1)

    existing = find_bookings_for_service(db, service.id, day_start, day_end)

    return list(AvailableSlots(
        open_time=business.open_time,
        close_time=business.close_time,
        duration_minutes=service.duration,
        existing=existing,
        target_date=target_date,
        now=clock.now(),
        config=config,
    ))


def find_bookings_for_service(
    db: Session,
    service_id: int,
    range_start: datetime,
    range_end: datetime,
    exclude_booking_id: int | None = None,
) -> list[Interval]:
    """Non-cancelled booking intervals of a service touching [range_start, range_end)."""
    query = db.query(Bookings.start_time, Bookings.end_time, Bookings.status).filter(
        Bookings.service_id == service_id,
        Bookings.status != BookingStatus.CANCELLED,
        Bookings.start_time < range_end,
        Bookings.end_time > range_start,
    )
    if exclude_booking_id is not None:
        query = query.filter(Bookings.id != exclude_booking_id)

    rows = query.order_by(Bookings.start_time).all()
    return [Interval(start, end, BookingStatus(status)) for start, end, status in rows]
