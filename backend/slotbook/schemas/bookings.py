# backend/slotbook/schemas/bookings.py

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, computed_field, field_validator

from ..models.enums import BookingStatus


class BookingCreate(BaseModel):
    service_id: int
    start_time: datetime
    notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def to_local_wall_time(cls, v: datetime) -> datetime:
        """Aware timestamps are converted to naive local wall time."""
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v


class BookingUpdate(BaseModel):
    start_time: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def to_local_wall_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v


class BookingRead(BaseModel):
    id: int
    service_id: int
    user_id: int

    start_time: datetime
    end_time: datetime

    status: BookingStatus
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def time_range(self) -> str:
        return f"{self.start_time:%I:%M %p} - {self.end_time:%I:%M %p}"


class WarningRead(BaseModel):
    kind: str
    message: str
    details: dict[str, Any] = {}

    model_config = {"from_attributes": True}


class BookingCreateResponse(BaseModel):
    booking: BookingRead
    calendar_event_id: Optional[int] = None
    warnings: list[WarningRead] = []


class BookingListResponse(BaseModel):
    upcoming: list[BookingRead]
    past: list[BookingRead]
