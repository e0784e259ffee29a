# backend/slotbook/services/calendar_events.py
"""
Derived calendar entries.

Each booking gets exactly one CalendarEvent mirroring its interval for
the owner's calendar. The entry has no scheduling authority; failure to
create it never undoes the booking and is reported as an
IntegrityWarning.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Bookings, Businesses, CalendarEvents
from .errors import AuthorizationError, IntegrityWarning, NotFoundError

logger = logging.getLogger(__name__)


def calendar_title(booking: Bookings) -> str:
    return f"{booking.service.name} - {booking.client.display_name}"


def create_calendar_event(
    db: Session,
    booking: Bookings,
) -> tuple[CalendarEvents | None, IntegrityWarning | None]:
    """
    Create the booking's calendar entry in its own transaction.

    Returns (event, None) on success, (None, warning) on failure.
    """
    try:
        event = CalendarEvents(
            booking_id=booking.id,
            business_id=booking.service.business_id,
            title=calendar_title(booking),
            start_time=booking.start_time,
            end_time=booking.end_time,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event, None
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to create calendar event for booking {booking.id}")
        return None, IntegrityWarning(
            kind="calendar_event_failed",
            message=f"Calendar event could not be created: {e}",
            details={"booking_id": booking.id},
        )


def list_calendar_events(
    db: Session,
    business_id: int,
    actor_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[CalendarEvents]:
    """Owner's calendar for a business, ordered by start time."""
    business = db.get(Businesses, business_id)
    if not business:
        raise NotFoundError("Business", business_id)
    if business.user_id != actor_id:
        raise AuthorizationError()

    query = db.query(CalendarEvents).filter(CalendarEvents.business_id == business_id)
    if start is not None:
        query = query.filter(CalendarEvents.start_time >= start)
    if end is not None:
        query = query.filter(CalendarEvents.start_time <= end)
    return query.order_by(CalendarEvents.start_time).all()
