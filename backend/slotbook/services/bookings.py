# backend/slotbook/services/bookings.py
"""
Booking lifecycle.

Start times are truncated to the minute.

State machine:
  pending   → confirmed | cancelled | completed
  confirmed → cancelled | completed
  cancelled, completed: terminal

Create path (per request):
  1. end = start + service.duration (fixed at creation, never recomputed)
  2. duration / past / business-hours checks
  3. under the per-service lock, in one transaction holding the database
     lock on the service: fresh read of live bookings → conflict check →
     insert → commit
  4. derived CalendarEvent (best-effort, failure → IntegrityWarning)

A write conflict reported by storage at commit (unique index, locked or
serialization failure) triggers exactly one re-validation; if that still
fails the caller gets a normal "conflict" error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from redis import Redis
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..models import (
    Bookings,
    BookingStatus,
    Businesses,
    CalendarEvents,
    Services,
    UserRole,
    Users,
)
from .calendar_events import create_calendar_event
from .errors import (
    AuthorizationError,
    BookingValidationError,
    IntegrityWarning,
    InvalidTransitionError,
    NotFoundError,
    TooLateError,
)
from .events import emit_event
from .locks import lock_service_row, service_lock
from .scheduling import (
    Interval,
    SchedulingConfig,
    find_bookings_for_service,
    get_scheduling_config,
    has_conflict,
    within_business_hours,
)

logger = logging.getLogger(__name__)

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


@dataclass
class BookingOutcome:
    """Result of a successful create: the booking plus non-fatal warnings."""
    booking: Bookings
    calendar_event: CalendarEvents | None = None
    warnings: list[IntegrityWarning] = field(default_factory=list)


# ── State machine ────────────────────────────────────────────────────────


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[BookingStatus(current)]


def transition_booking(booking: Bookings, target: BookingStatus, now: datetime) -> None:
    """Move a booking to `target`, rejecting transitions the state machine lacks."""
    current = BookingStatus(booking.status)
    if not can_transition(current, target):
        raise InvalidTransitionError("booking", current.value, target.value)
    booking.status = target
    booking.updated_at = now


# ── Validation ───────────────────────────────────────────────────────────


def validate_booking_window(
    service: Services,
    start: datetime,
    end: datetime,
    now: datetime,
) -> None:
    """Reject intervals that start in the past or fall outside business hours."""
    if start <= now:
        raise BookingValidationError("in_past")

    business = service.business
    if not within_business_hours(business.open_time, business.close_time, start, end):
        details = {}
        if business.open_time is not None and business.close_time is not None:
            details = {
                "open_time": business.open_time.strftime("%H:%M"),
                "close_time": business.close_time.strftime("%H:%M"),
            }
        raise BookingValidationError("hours", details=details)


def validate_booking_interval(
    service: Services,
    start: datetime,
    end: datetime,
    existing: list[Interval],
    now: datetime,
) -> None:
    """
    Explicit booking validation, usable without persistence.

    Raises BookingValidationError with kind in_past / hours / conflict.
    """
    validate_booking_window(service, start, end, now)
    if has_conflict(start, end, existing):
        raise BookingValidationError("conflict")


def to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def _service_duration(service: Services) -> timedelta:
    duration = service.duration
    if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
        raise BookingValidationError("invalid_duration", details={"duration": duration})
    return timedelta(minutes=duration)


# ── Create ───────────────────────────────────────────────────────────────


def create_booking(
    db: Session,
    service_id: int,
    client_id: int,
    requested_start: datetime,
    notes: str | None = None,
    clock: Clock | None = None,
    config: SchedulingConfig | None = None,
    redis: Redis | None = None,
) -> BookingOutcome:
    """
    Create a booking for `client_id` on `service_id` starting at requested_start.

    Availability shown to the client earlier is not trusted: everything
    is re-validated here, the conflict check inside the locked write.
    """
    clock = clock or get_clock()
    config = config or get_scheduling_config()

    service = db.get(Services, service_id)
    if not service:
        raise NotFoundError("Service", service_id)
    client = db.get(Users, client_id)
    if not client:
        raise NotFoundError("User", client_id)

    start = to_minute(requested_start)
    end = start + _service_duration(service)

    # Cheap checks first; conflicts are only meaningful under the lock
    validate_booking_window(service, start, end, clock.now())

    initial_status = (
        BookingStatus.CONFIRMED if config.auto_confirm_bookings else BookingStatus.PENDING
    )
    service_id, client_id = service.id, client.id

    def insert() -> Bookings:
        now = clock.now()
        booking = Bookings(
            service_id=service_id,
            user_id=client_id,
            start_time=start,
            end_time=end,
            status=initial_status,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        return booking

    with service_lock(service_id, redis=redis, timeout=config.lock_timeout_seconds):
        booking = _write_interval(db, service_id, start, end, insert)

    logger.info(
        f"Booking created: booking_id={booking.id}, service_id={service_id}, "
        f"client_id={client_id}, time={start:%Y-%m-%d %H:%M}-{end:%H:%M}, "
        f"status={booking.status.value}"
    )

    outcome = BookingOutcome(booking=booking)
    event, warning = create_calendar_event(db, booking)
    outcome.calendar_event = event
    if warning:
        outcome.warnings.append(warning)

    emit_event("booking_created", {
        "booking_id": booking.id,
        "service_id": service_id,
        "initiated_by": {"user_id": client_id, "role": booking.client.role.value},
    }, redis=redis)

    return outcome


def _write_interval(
    db: Session,
    service_id: int,
    start: datetime,
    end: datetime,
    write: Callable[[], Bookings],
    exclude_booking_id: int | None = None,
) -> Bookings:
    """
    Conflict check + write + commit as one transaction holding the service's
    database lock, with one retry on a storage write conflict.

    `write` stages the insert or update and returns the booking.
    """
    for attempt in (1, 2):
        try:
            lock_service_row(db, service_id)
            existing = find_bookings_for_service(
                db, service_id, start, end, exclude_booking_id=exclude_booking_id
            )
            if has_conflict(start, end, existing):
                db.rollback()
                logger.info(
                    f"Booking rejected (conflict): service_id={service_id}, "
                    f"time={start:%Y-%m-%d %H:%M}, attempt={attempt}"
                )
                raise BookingValidationError("conflict")

            booking = write()
            db.commit()
        except (IntegrityError, OperationalError) as e:
            db.rollback()
            logger.warning(
                f"Write conflict committing booking: service_id={service_id}, "
                f"time={start:%Y-%m-%d %H:%M}, attempt={attempt}: {e.__class__.__name__}"
            )
            if attempt == 2:
                raise BookingValidationError("conflict") from e
            continue

        db.refresh(booking)
        return booking

    raise BookingValidationError("conflict")


# ── Reschedule ───────────────────────────────────────────────────────────


def update_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    start_time: datetime | None = None,
    notes: str | None = None,
    clock: Clock | None = None,
    config: SchedulingConfig | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Move a booking to a new start and/or change its notes.

    The booking keeps its length (end - start fixed at creation). Hours and
    conflicts are re-checked with the booking's own row excluded; the
    calendar entry follows the new interval.
    """
    clock = clock or get_clock()
    config = config or get_scheduling_config()

    booking = _get_booking(db, booking_id)
    authorize_booking_actor(booking, actor_id)

    status = BookingStatus(booking.status)
    if status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
        raise InvalidTransitionError("booking", status.value, "rescheduled")

    if start_time is None:
        if notes is not None:
            booking.notes = notes
            booking.updated_at = clock.now()
            db.commit()
            db.refresh(booking)
        return booking

    start = to_minute(start_time)
    end = start + (booking.end_time - booking.start_time)
    validate_booking_window(booking.service, start, end, clock.now())

    service_id, old_start = booking.service_id, booking.start_time

    def move() -> Bookings:
        target = db.get(Bookings, booking_id)
        target.start_time = start
        target.end_time = end
        if notes is not None:
            target.notes = notes
        target.updated_at = clock.now()
        if target.calendar_event is not None:
            target.calendar_event.start_time = start
            target.calendar_event.end_time = end
        return target

    with service_lock(service_id, redis=redis, timeout=config.lock_timeout_seconds):
        booking = _write_interval(db, service_id, start, end, move, exclude_booking_id=booking_id)

    logger.info(
        f"Booking rescheduled: booking_id={booking.id}, actor_id={actor_id}, "
        f"from={old_start:%Y-%m-%d %H:%M} to={start:%Y-%m-%d %H:%M}"
    )
    emit_event("booking_rescheduled", {
        "booking_id": booking.id,
        "initiated_by": {"user_id": actor_id},
    }, redis=redis)
    return booking


# ── Cancel / destroy / confirm / complete ────────────────────────────────


def _get_booking(db: Session, booking_id: int) -> Bookings:
    booking = db.get(Bookings, booking_id)
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


def is_business_owner(booking: Bookings, actor_id: int) -> bool:
    return booking.service.business.user_id == actor_id


def authorize_booking_actor(booking: Bookings, actor_id: int) -> None:
    """The booking's client or the owner of the service's business."""
    if booking.user_id != actor_id and not is_business_owner(booking, actor_id):
        raise AuthorizationError()


def get_booking(db: Session, booking_id: int, actor_id: int) -> Bookings:
    booking = _get_booking(db, booking_id)
    authorize_booking_actor(booking, actor_id)
    return booking


def cancellation_deadline(booking: Bookings, config: SchedulingConfig) -> datetime:
    """Last instant (exclusive) at which the booking may still be cancelled."""
    return booking.start_time - timedelta(hours=config.cancellation_lead_hours)


def can_cancel(booking: Bookings, now: datetime, config: SchedulingConfig | None = None) -> bool:
    config = config or get_scheduling_config()
    return (
        can_transition(booking.status, BookingStatus.CANCELLED)
        and now < cancellation_deadline(booking, config)
    )


def cancel_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    clock: Clock | None = None,
    config: SchedulingConfig | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Cancel a booking.

    Frees the interval immediately: conflict checks skip cancelled rows.
    """
    clock = clock or get_clock()
    config = config or get_scheduling_config()
    now = clock.now()

    booking = _get_booking(db, booking_id)
    authorize_booking_actor(booking, actor_id)

    if not can_transition(booking.status, BookingStatus.CANCELLED):
        raise InvalidTransitionError("booking", booking.status.value, BookingStatus.CANCELLED.value)

    if now >= cancellation_deadline(booking, config):
        logger.info(f"Cancel rejected (too late): booking_id={booking.id}, actor_id={actor_id}")
        raise TooLateError(
            f"Cannot cancel booking less than {config.cancellation_lead_hours} hours before start time",
            details={"start_time": booking.start_time.isoformat()},
        )

    transition_booking(booking, BookingStatus.CANCELLED, now)
    db.commit()
    db.refresh(booking)

    logger.info(f"Booking cancelled: booking_id={booking.id}, actor_id={actor_id}")
    emit_event("booking_cancelled", {
        "booking_id": booking.id,
        "initiated_by": {"user_id": actor_id},
    }, redis=redis)
    return booking


def destroy_booking(db: Session, booking_id: int, actor_id: int) -> None:
    """Hard delete (administrative override, no lead-time restriction)."""
    booking = _get_booking(db, booking_id)
    authorize_booking_actor(booking, actor_id)

    db.delete(booking)
    db.commit()
    logger.info(f"Booking deleted: booking_id={booking_id}, actor_id={actor_id}")


def confirm_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    clock: Clock | None = None,
) -> Bookings:
    """Business owner accepts a pending booking."""
    clock = clock or get_clock()
    booking = _get_booking(db, booking_id)
    if not is_business_owner(booking, actor_id):
        raise AuthorizationError()

    transition_booking(booking, BookingStatus.CONFIRMED, clock.now())
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking confirmed: booking_id={booking.id}")
    return booking


def complete_booking(
    db: Session,
    booking_id: int,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """Mark a booking completed once its interval has elapsed."""
    clock = clock or get_clock()
    now = clock.now()
    booking = _get_booking(db, booking_id)

    if booking.end_time > now:
        raise InvalidTransitionError("booking", booking.status.value, BookingStatus.COMPLETED.value)

    transition_booking(booking, BookingStatus.COMPLETED, now)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking completed: booking_id={booking.id}")
    emit_event("booking_completed", {"booking_id": booking.id}, redis=redis)
    return booking


def complete_elapsed_bookings(
    db: Session,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> int:
    """Batch: complete every pending/confirmed booking whose end_time has passed."""
    clock = clock or get_clock()
    now = clock.now()

    bookings = (
        db.query(Bookings)
        .filter(
            Bookings.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED]),
            Bookings.end_time <= now,
        )
        .all()
    )
    for booking in bookings:
        transition_booking(booking, BookingStatus.COMPLETED, now)
    db.commit()

    for booking in bookings:
        emit_event("booking_completed", {"booking_id": booking.id}, redis=redis)
    if bookings:
        logger.info(f"Completed {len(bookings)} elapsed bookings")
    return len(bookings)


# ── Listing ──────────────────────────────────────────────────────────────


def list_bookings(
    db: Session,
    actor_id: int,
    clock: Clock | None = None,
) -> tuple[list[Bookings], list[Bookings]]:
    """
    Bookings visible to the actor, split into (upcoming, past).

    Clients see their own bookings; owners see bookings of services of
    the businesses they own.
    """
    clock = clock or get_clock()
    now = clock.now()

    actor = db.get(Users, actor_id)
    if not actor:
        raise NotFoundError("User", actor_id)

    query = db.query(Bookings)
    if actor.role == UserRole.CLIENT:
        query = query.filter(Bookings.user_id == actor.id)
    else:
        query = (
            query.join(Services, Bookings.service_id == Services.id)
            .join(Businesses, Services.business_id == Businesses.id)
            .filter(Businesses.user_id == actor.id)
        )

    upcoming = query.filter(Bookings.start_time > now).order_by(Bookings.start_time).all()
    past = query.filter(Bookings.start_time <= now).order_by(Bookings.start_time.desc()).all()
    return upcoming, past
