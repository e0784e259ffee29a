# backend/slotbook/schemas/businesses.py

from datetime import datetime, time
from typing import Optional
from pydantic import BaseModel


class BusinessCreate(BaseModel):
    name: str
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    description: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class BusinessHoursUpdate(BaseModel):
    open_time: Optional[time] = None
    close_time: Optional[time] = None


class BusinessRead(BaseModel):
    id: int
    user_id: int
    name: str
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    description: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = {"from_attributes": True}


class CalendarEventRead(BaseModel):
    id: int
    booking_id: int
    business_id: int
    title: str
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class BusinessDetail(BusinessRead):
    open_now: bool
    status_change_in: Optional[str] = None
