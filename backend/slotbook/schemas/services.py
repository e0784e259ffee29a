# backend/slotbook/schemas/services.py

from typing import Optional
from pydantic import BaseModel


class ServiceCreate(BaseModel):
    name: str
    duration: int
    price: float
    description: Optional[str] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    duration: Optional[int] = None
    price: Optional[float] = None
    description: Optional[str] = None


class ServiceRead(BaseModel):
    id: int
    business_id: int
    name: str
    duration: int
    price: float
    description: Optional[str] = None

    model_config = {"from_attributes": True}
