import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW, TODAY, at
from slotbook.models import Bookings, BookingStatus, CalendarEvents, UserRole
from slotbook.services import bookings as booking_service
from slotbook.services import calendar_events
from slotbook.services.bookings import (
    can_cancel,
    cancel_booking,
    complete_booking,
    complete_elapsed_bookings,
    confirm_booking,
    create_booking,
    destroy_booking,
    get_booking,
    list_bookings,
    update_booking,
    validate_booking_interval,
)
from slotbook.services.errors import (
    AuthorizationError,
    BookingValidationError,
    InvalidTransitionError,
    NotFoundError,
    TooLateError,
)
from slotbook.services.events import P2P_QUEUE
from slotbook.services.scheduling import Interval, SchedulingConfig, get_available_slots

TOMORROW = TODAY + timedelta(days=1)


class RecordingRedis:
    """Captures queued events; nothing else is needed by the paths under test."""

    def __init__(self):
        self.pushed = []

    def rpush(self, key, value):
        self.pushed.append((key, json.loads(value)))
        return len(self.pushed)


def book(db, service, client_user, start, clock, config, **kwargs):
    return create_booking(
        db, service.id, client_user.id, start, clock=clock, config=config, **kwargs
    )


def slot_starts(db, service, clock, config, day=TODAY):
    return [s.start.strftime("%H:%M") for s in get_available_slots(db, service.id, day, clock, config)]


# ── Create ───────────────────────────────────────────────────────────────


def test_booking_removes_only_its_own_slot(db, service, client_user, clock, config):
    before = slot_starts(db, service, clock, config)
    assert before[0] == "09:00"
    assert before[-1] == "17:30"
    assert len(before) == 18

    outcome = book(db, service, client_user, at(10), clock, config)
    assert outcome.booking.end_time == at(10, 30)
    assert outcome.booking.status == BookingStatus.PENDING
    assert outcome.warnings == []

    after = slot_starts(db, service, clock, config)
    assert "10:00" not in after
    assert "09:30" in after
    assert "10:30" in after
    assert len(after) == 17


def test_overlapping_request_is_rejected(db, service, client_user, make_user, clock, config):
    book(db, service, client_user, at(10), clock, config)
    other = make_user(UserRole.CLIENT)

    with pytest.raises(BookingValidationError) as exc:
        book(db, service, other, at(10, 15), clock, config)
    assert exc.value.kind == "conflict"
    assert exc.value.status_code == 409


def test_touching_boundary_is_not_a_conflict(db, service, client_user, clock, config):
    book(db, service, client_user, at(10), clock, config)
    outcome = book(db, service, client_user, at(10, 30), clock, config)
    assert outcome.booking.start_time == at(10, 30)


def test_other_service_is_independent(db, service, make_service, business, client_user, clock, config):
    beard = make_service(business, name="Beard trim")
    book(db, service, client_user, at(10), clock, config)
    assert book(db, beard, client_user, at(10), clock, config).booking.id


def test_auto_confirm(db, service, client_user, clock):
    outcome = book(db, service, client_user, at(11), clock, SchedulingConfig(auto_confirm_bookings=True))
    assert outcome.booking.status == BookingStatus.CONFIRMED


def test_outside_hours_is_rejected_with_hours_kind(db, service, client_user, clock, config):
    with pytest.raises(BookingValidationError) as exc:
        book(db, service, client_user, at(17, 45), clock, config)
    assert exc.value.kind == "hours"
    assert exc.value.details == {"open_time": "09:00", "close_time": "18:00"}


def test_business_without_hours_accepts_nothing(db, make_business, make_service, owner, client_user, clock, config):
    closed = make_service(make_business(owner, open_time=None, close_time=None, name="Closed"))
    assert get_available_slots(db, closed.id, TODAY, clock, config) == []
    with pytest.raises(BookingValidationError) as exc:
        book(db, closed, client_user, at(10), clock, config)
    assert exc.value.kind == "hours"


def test_past_start_is_rejected(db, service, client_user, clock, config):
    clock.set(at(12))
    for start in (at(11), at(12)):
        with pytest.raises(BookingValidationError) as exc:
            book(db, service, client_user, start, clock, config)
        assert exc.value.kind == "in_past"


def test_malformed_duration_is_rejected(db, service, client_user, clock, config):
    service.duration = 0
    db.commit()
    with pytest.raises(BookingValidationError) as exc:
        book(db, service, client_user, at(10), clock, config)
    assert exc.value.kind == "invalid_duration"


def test_unknown_service(db, client_user, clock, config):
    with pytest.raises(NotFoundError):
        create_booking(db, 999, client_user.id, at(10), clock=clock, config=config)


def test_cancel_then_rebook_same_slot(db, service, client_user, clock, config):
    first = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    cancel_booking(db, first.id, client_user.id, clock=clock, config=config)

    again = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    assert again.id != first.id
    assert "10:00" not in slot_starts(db, service, clock, config, day=TOMORROW)


def test_validate_booking_interval_without_persistence(service, clock):
    existing = [Interval(at(10), at(10, 30))]
    with pytest.raises(BookingValidationError) as exc:
        validate_booking_interval(service, at(10, 15), at(10, 45), existing, clock.now())
    assert exc.value.kind == "conflict"
    validate_booking_interval(service, at(10, 30), at(11), existing, clock.now())


# ── Commit-time write conflict ───────────────────────────────────────────


def test_write_conflict_at_commit_surfaces_as_conflict(db, service, client_user, make_user, clock, config, monkeypatch):
    book(db, service, client_user, at(10), clock, config)
    # A stale read: the in-lock check misses the existing row, storage catches it
    monkeypatch.setattr(booking_service, "has_conflict", lambda *args, **kwargs: False)

    with pytest.raises(BookingValidationError) as exc:
        book(db, service, make_user(UserRole.CLIENT), at(10), clock, config)
    assert exc.value.kind == "conflict"
    assert db.query(Bookings).count() == 1


def test_write_conflict_is_revalidated_once(db, service, client_user, make_user, clock, config, monkeypatch):
    book(db, service, client_user, at(10), clock, config)
    real_has_conflict = booking_service.has_conflict
    calls = []

    def stale_once(start, end, existing):
        calls.append(start)
        if len(calls) == 1:
            return False
        return real_has_conflict(start, end, existing)

    monkeypatch.setattr(booking_service, "has_conflict", stale_once)

    with pytest.raises(BookingValidationError) as exc:
        book(db, service, make_user(UserRole.CLIENT), at(10), clock, config)
    assert exc.value.kind == "conflict"
    assert len(calls) == 2


# ── Calendar event ───────────────────────────────────────────────────────


def test_booking_creates_one_calendar_event(db, service, client_user, clock, config):
    outcome = book(db, service, client_user, at(10), clock, config)
    event = outcome.calendar_event
    assert event is not None
    assert event.title == "Haircut - Carl Client"
    assert (event.start_time, event.end_time) == (at(10), at(10, 30))
    assert event.business_id == service.business_id


def test_calendar_failure_is_a_warning_not_an_error(db, service, client_user, clock, config, monkeypatch):
    def broken_title(booking):
        raise OperationalError("INSERT INTO calendar_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(calendar_events, "calendar_title", broken_title)

    outcome = book(db, service, client_user, at(10), clock, config)
    assert outcome.calendar_event is None
    assert [w.kind for w in outcome.warnings] == ["calendar_event_failed"]
    assert db.get(Bookings, outcome.booking.id) is not None


# ── Cancel ───────────────────────────────────────────────────────────────


def test_cancel_exactly_at_lead_time_is_too_late(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    clock.set(booking.start_time - timedelta(hours=24))

    assert not can_cancel(booking, clock.now(), config)
    with pytest.raises(TooLateError):
        cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)


def test_cancel_just_before_lead_time(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    clock.set(booking.start_time - timedelta(hours=24, minutes=1))

    cancelled = cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.updated_at == clock.now()


def test_owner_may_cancel_stranger_may_not(db, service, owner, client_user, make_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    stranger = make_user(UserRole.CLIENT)

    with pytest.raises(AuthorizationError):
        cancel_booking(db, booking.id, stranger.id, clock=clock, config=config)
    assert cancel_booking(db, booking.id, owner.id, clock=clock, config=config).status == BookingStatus.CANCELLED


def test_cancel_twice_is_an_invalid_transition(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)
    with pytest.raises(InvalidTransitionError):
        cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)


def test_cancel_emits_event(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    redis = RecordingRedis()

    cancel_booking(db, booking.id, client_user.id, clock=clock, config=config, redis=redis)

    (queue, event), = redis.pushed
    assert queue == P2P_QUEUE
    assert event["type"] == "booking_cancelled"
    assert event["booking_id"] == booking.id


# ── Destroy / confirm / complete ─────────────────────────────────────────


def test_destroy_removes_booking_and_calendar_event(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    booking_id = booking.id
    clock.set(at(9, 50))  # well inside the lead time: destroy ignores it

    destroy_booking(db, booking_id, client_user.id)

    assert db.get(Bookings, booking_id) is None
    assert db.query(CalendarEvents).filter_by(booking_id=booking_id).count() == 0


def test_destroy_requires_client_or_owner(db, service, client_user, make_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    with pytest.raises(AuthorizationError):
        destroy_booking(db, booking.id, make_user(UserRole.CLIENT).id)


def test_owner_confirms_pending_booking(db, service, owner, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking

    with pytest.raises(AuthorizationError):
        confirm_booking(db, booking.id, client_user.id, clock=clock)

    assert confirm_booking(db, booking.id, owner.id, clock=clock).status == BookingStatus.CONFIRMED
    with pytest.raises(InvalidTransitionError):
        confirm_booking(db, booking.id, owner.id, clock=clock)


def test_complete_only_after_interval_elapsed(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking

    with pytest.raises(InvalidTransitionError):
        complete_booking(db, booking.id, clock=clock)

    clock.set(at(10, 30))
    assert complete_booking(db, booking.id, clock=clock).status == BookingStatus.COMPLETED
    with pytest.raises(InvalidTransitionError):
        cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)


def test_complete_elapsed_bookings(db, service, client_user, clock, config):
    done = book(db, service, client_user, at(10), clock, config).booking
    later = book(db, service, client_user, at(15), clock, config).booking
    gone = book(db, service, client_user, at(16), clock, config).booking
    cancel_booking(db, gone.id, client_user.id, clock=clock, config=SchedulingConfig(cancellation_lead_hours=0))

    clock.set(at(12))
    assert complete_elapsed_bookings(db, clock=clock) == 1

    db.refresh(done)
    db.refresh(later)
    db.refresh(gone)
    assert done.status == BookingStatus.COMPLETED
    assert later.status == BookingStatus.PENDING
    assert gone.status == BookingStatus.CANCELLED


# ── Listing ──────────────────────────────────────────────────────────────


def test_list_bookings_by_role(db, service, owner, client_user, make_user, clock, config):
    mine = book(db, service, client_user, at(10), clock, config).booking
    theirs = book(db, service, make_user(UserRole.CLIENT), at(11), clock, config).booking
    clock.set(at(10, 45))

    upcoming, past = list_bookings(db, client_user.id, clock=clock)
    assert [b.id for b in upcoming] == []
    assert [b.id for b in past] == [mine.id]

    upcoming, past = list_bookings(db, owner.id, clock=clock)
    assert [b.id for b in upcoming] == [theirs.id]
    assert [b.id for b in past] == [mine.id]


def test_start_is_not_rounded(db, service, client_user, clock, config):
    start = at(10) + timedelta(minutes=5)
    booking = book(db, service, client_user, start, clock, config).booking
    assert booking.start_time == start
    assert booking.end_time == start + timedelta(minutes=30)
    assert NOW < booking.start_time


def test_seconds_are_dropped_from_the_start(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(17, 30) + timedelta(seconds=30), clock, config).booking
    assert booking.start_time == at(17, 30)
    assert booking.end_time == at(18)


# ── Show / reschedule ────────────────────────────────────────────────────


def test_show_requires_client_or_owner(db, service, owner, client_user, make_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    assert get_booking(db, booking.id, client_user.id).id == booking.id
    assert get_booking(db, booking.id, owner.id).id == booking.id
    with pytest.raises(AuthorizationError):
        get_booking(db, booking.id, make_user(UserRole.CLIENT).id)


def test_reschedule_moves_booking_and_calendar_event(db, service, client_user, clock, config):
    outcome = book(db, service, client_user, at(10), clock, config)
    redis = RecordingRedis()

    moved = update_booking(
        db, outcome.booking.id, client_user.id, start_time=at(14), notes="later please",
        clock=clock, config=config, redis=redis,
    )
    assert moved.start_time == at(14)
    assert moved.end_time == at(14, 30)
    assert moved.notes == "later please"
    assert moved.calendar_event.start_time == at(14)
    assert moved.calendar_event.end_time == at(14, 30)

    starts = slot_starts(db, service, clock, config)
    assert "10:00" in starts
    assert "14:00" not in starts
    assert redis.pushed[-1][1]["type"] == "booking_rescheduled"


def test_reschedule_keeps_original_length(db, service, owner, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    # A later duration change does not stretch an existing booking
    service.duration = 60
    db.commit()

    moved = update_booking(db, booking.id, owner.id, start_time=at(11), clock=clock, config=config)
    assert moved.end_time - moved.start_time == timedelta(minutes=30)


def test_reschedule_may_overlap_its_own_interval(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    moved = update_booking(db, booking.id, client_user.id, start_time=at(10, 15), clock=clock, config=config)
    assert moved.start_time == at(10, 15)


def test_reschedule_into_another_booking_is_a_conflict(db, service, client_user, make_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    book(db, service, make_user(UserRole.CLIENT), at(11), clock, config)

    with pytest.raises(BookingValidationError) as exc:
        update_booking(db, booking.id, client_user.id, start_time=at(10, 45), clock=clock, config=config)
    assert exc.value.kind == "conflict"
    db.refresh(booking)
    assert booking.start_time == at(10)


def test_reschedule_checks_hours_and_past(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking

    with pytest.raises(BookingValidationError) as exc:
        update_booking(db, booking.id, client_user.id, start_time=at(17, 45), clock=clock, config=config)
    assert exc.value.kind == "hours"

    with pytest.raises(BookingValidationError) as exc:
        update_booking(db, booking.id, client_user.id, start_time=NOW - timedelta(hours=1), clock=clock, config=config)
    assert exc.value.kind == "in_past"


def test_reschedule_requires_client_or_owner(db, service, client_user, make_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    with pytest.raises(AuthorizationError):
        update_booking(db, booking.id, make_user(UserRole.CLIENT).id, start_time=at(12), clock=clock, config=config)


def test_cancelled_booking_cannot_be_rescheduled(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10, day=TOMORROW), clock, config).booking
    cancel_booking(db, booking.id, client_user.id, clock=clock, config=config)

    with pytest.raises(InvalidTransitionError):
        update_booking(db, booking.id, client_user.id, start_time=at(12), clock=clock, config=config)


def test_notes_only_update(db, service, client_user, clock, config):
    booking = book(db, service, client_user, at(10), clock, config).booking
    updated = update_booking(db, booking.id, client_user.id, notes="bring photos", clock=clock, config=config)
    assert updated.notes == "bring photos"
    assert updated.start_time == at(10)
