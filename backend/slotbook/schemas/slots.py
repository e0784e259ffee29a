# backend/slotbook/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """A free slot of a service."""
    start: datetime
    end: datetime
    label: str = Field(description="e.g. '09:00 AM - 09:30 AM'")

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Free slots of a service on one day, ascending by start."""
    service_id: int
    date: date
    duration_minutes: int
    slot_step_minutes: int = Field(description="Step between candidate starts (15/30/60)")
    slots: list[SlotRead]
