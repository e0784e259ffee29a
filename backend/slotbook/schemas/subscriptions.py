# backend/slotbook/schemas/subscriptions.py

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from ..models.enums import SubscriptionStatus


class SubscriptionRead(BaseModel):
    id: int
    user_id: int
    status: SubscriptionStatus
    amount: float
    currency: str
    payment_reference: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TrialResponse(BaseModel):
    """subscription is null when the owner is not eligible for a trial."""
    subscription: Optional[SubscriptionRead] = None


class PaymentActivation(BaseModel):
    """Verified payment handed over by the payment layer."""
    payment_reference: str = Field(min_length=1)
    amount: float = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)


class PaymentEvent(BaseModel):
    """Verified provider event, e.g. {"type": "payment.paid", "data": {...}}."""
    type: str
    data: dict[str, Any]


class EntitlementResponse(BaseModel):
    owner_id: int
    entitled: bool
    trial_eligible: bool
    message: Optional[str] = None
