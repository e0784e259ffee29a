# backend/slotbook/routers/bookings.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..redis_client import redis_client
from ..schemas.bookings import (
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingRead,
    BookingUpdate,
    WarningRead,
)
from ..services import bookings as booking_service
from .deps import get_actor_id

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/", response_model=BookingListResponse)
def list_bookings(
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    upcoming, past = booking_service.list_bookings(db, actor_id, clock=clock)
    return BookingListResponse(
        upcoming=[BookingRead.model_validate(b) for b in upcoming],
        past=[BookingRead.model_validate(b) for b in past],
    )


@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    outcome = booking_service.create_booking(
        db,
        service_id=data.service_id,
        client_id=actor_id,
        requested_start=data.start_time,
        notes=data.notes,
        clock=clock,
        redis=redis_client,
    )
    return BookingCreateResponse(
        booking=BookingRead.model_validate(outcome.booking),
        calendar_event_id=outcome.calendar_event.id if outcome.calendar_event else None,
        warnings=[
            WarningRead(kind=w.kind, message=w.message, details=w.details)
            for w in outcome.warnings
        ],
    )


@router.get("/{id}", response_model=BookingRead)
def get_booking(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return booking_service.get_booking(db, id, actor_id)


@router.patch("/{id}", response_model=BookingRead)
def update_booking(
    id: int,
    data: BookingUpdate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return booking_service.update_booking(
        db,
        id,
        actor_id,
        start_time=data.start_time,
        notes=data.notes,
        clock=clock,
        redis=redis_client,
    )


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel_booking(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return booking_service.cancel_booking(db, id, actor_id, clock=clock, redis=redis_client)


@router.post("/{id}/confirm", response_model=BookingRead)
def confirm_booking(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return booking_service.confirm_booking(db, id, actor_id, clock=clock)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def destroy_booking(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    booking_service.destroy_booking(db, id, actor_id)
