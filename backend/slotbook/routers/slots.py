# backend/slotbook/routers/slots.py
"""
Slots API endpoints.

GET /services/{id}/slots?date=YYYY-MM-DD - free slots of a service for one day
"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..models import Services
from ..schemas.slots import SlotRead, SlotsDayResponse
from ..services.errors import NotFoundError
from ..services.scheduling import available_slots_for_service, get_scheduling_config


router = APIRouter(prefix="/services", tags=["slots"])


@router.get("/{service_id}/slots", response_model=SlotsDayResponse)
def get_service_slots(
    service_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    config = get_scheduling_config()

    service = db.get(Services, service_id)
    if not service:
        raise NotFoundError("Service", service_id)

    slots = available_slots_for_service(db, service, target_date, clock=clock, config=config)

    return SlotsDayResponse(
        service_id=service.id,
        date=target_date,
        duration_minutes=service.duration,
        slot_step_minutes=config.slot_step_minutes,
        slots=[SlotRead(start=s.start, end=s.end, label=s.label) for s in slots],
    )
