# backend/slotbook/routers/businesses.py

from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..redis_client import redis_client
from ..schemas.businesses import (
    BusinessCreate,
    BusinessDetail,
    BusinessHoursUpdate,
    BusinessRead,
    CalendarEventRead,
)
from ..schemas.services import ServiceCreate, ServiceRead
from ..services import businesses as business_service
from ..services.calendar_events import list_calendar_events
from ..services.scheduling import currently_open, time_until_status_change
from .deps import get_actor_id

router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.get("/", response_model=list[BusinessRead])
def list_businesses(db: Session = Depends(get_db)):
    return business_service.list_businesses(db)


@router.post("/", response_model=BusinessRead, status_code=status.HTTP_201_CREATED)
def create_business(
    data: BusinessCreate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return business_service.create_business(
        db, owner_id=actor_id, clock=clock, redis=redis_client, **data.model_dump()
    )


@router.patch("/{id}/hours", response_model=BusinessRead)
def update_hours(
    id: int,
    data: BusinessHoursUpdate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return business_service.update_business_hours(
        db, id, actor_id, open_time=data.open_time, close_time=data.close_time
    )


@router.get("/{id}/calendar", response_model=list[CalendarEventRead])
def get_calendar(
    id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return list_calendar_events(db, id, actor_id, start=start, end=end)


@router.post("/{id}/services", response_model=ServiceRead, status_code=status.HTTP_201_CREATED)
def create_service(
    id: int,
    data: ServiceCreate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return business_service.create_service(db, id, actor_id, clock=clock, **data.model_dump())


@router.get("/{id}", response_model=BusinessDetail)
def get_business(
    id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    business = business_service.get_business(db, id)
    now = clock.now()
    return BusinessDetail(
        **BusinessRead.model_validate(business).model_dump(),
        open_now=currently_open(business.open_time, business.close_time, now),
        status_change_in=time_until_status_change(business.open_time, business.close_time, now),
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def destroy_business(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    business_service.destroy_business(db, id, actor_id)


@router.get("/{id}/services", response_model=list[ServiceRead])
def list_services(id: int, db: Session = Depends(get_db)):
    return business_service.list_services(db, id)
