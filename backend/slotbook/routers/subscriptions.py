# backend/slotbook/routers/subscriptions.py
"""
Subscription endpoints.

Payment verification (signatures, provider API calls) happens before a
request reaches these routes; the payloads here are trusted.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..redis_client import redis_client
from ..schemas.subscriptions import (
    EntitlementResponse,
    PaymentActivation,
    PaymentEvent,
    SubscriptionRead,
    TrialResponse,
)
from ..services import subscriptions as subscription_service
from .deps import get_actor_id

router = APIRouter(tags=["subscriptions"])


@router.get("/owners/{owner_id}/entitlement", response_model=EntitlementResponse)
def get_entitlement(
    owner_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return EntitlementResponse(
        owner_id=owner_id,
        entitled=subscription_service.is_owner_entitled(db, owner_id, clock=clock),
        trial_eligible=subscription_service.trial_eligible(db, owner_id),
        message=subscription_service.status_message(db, owner_id, clock=clock),
    )


@router.post("/subscriptions/trial", response_model=TrialResponse)
def start_trial(
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    sub = subscription_service.start_trial(db, actor_id, clock=clock, redis=redis_client)
    return TrialResponse(subscription=SubscriptionRead.model_validate(sub) if sub else None)


@router.post(
    "/subscriptions/activate",
    response_model=SubscriptionRead,
    status_code=status.HTTP_201_CREATED,
)
def activate_subscription(
    data: PaymentActivation,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return subscription_service.activate_from_payment(
        db,
        owner_id=actor_id,
        payment_reference=data.payment_reference,
        amount=data.amount,
        currency=data.currency,
        clock=clock,
        redis=redis_client,
    )


@router.post("/subscriptions/{id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return subscription_service.cancel_subscription(db, id, actor_id, clock=clock, redis=redis_client)


@router.post("/subscriptions/payment-events", response_model=SubscriptionRead | None)
def payment_event(
    event: PaymentEvent,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    sub = subscription_service.handle_payment_event(
        db, event.type, event.data, clock=clock, redis=redis_client
    )
    if sub is None:
        response.status_code = status.HTTP_202_ACCEPTED
    return sub
