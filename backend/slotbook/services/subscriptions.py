# backend/slotbook/services/subscriptions.py
"""
Subscription lifecycle and owner entitlement.

State machine:
  trial    → active | cancelled | expired
  active   → active (renew) | past_due | cancelled | expired
  past_due → active | cancelled | expired
  expired  → active
  cancelled: terminal

"Ended" is also derived on read: a row whose current_period_end is in
the past grants nothing, whatever its stored status says. Writing
`expired` (expire_lapsed_subscriptions) is optional housekeeping.
"""

import logging
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from redis import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..config import settings
from ..models import Subscriptions, SubscriptionStatus, UserRole, Users
from .errors import (
    AuthorizationError,
    DuplicatePaymentError,
    EntitlementError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from .events import emit_event
from .locks import owner_lock

logger = logging.getLogger(__name__)

SUBSCRIPTION_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.TRIAL: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.PAST_DUE: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.EXPIRED: frozenset({SubscriptionStatus.ACTIVE}),
    SubscriptionStatus.CANCELLED: frozenset(),
}

# Roles that never need a subscription
UNGATED_ROLES = (UserRole.ADMIN, UserRole.CLIENT)

EXPIRING_SOON_DAYS = 3


def transition_subscription(sub: Subscriptions, target: SubscriptionStatus, now: datetime) -> None:
    current = SubscriptionStatus(sub.status)
    if target not in SUBSCRIPTION_TRANSITIONS[current]:
        raise InvalidTransitionError("subscription", current.value, target.value)
    sub.status = target
    sub.updated_at = now


def _period_end(start: datetime) -> datetime:
    return start + relativedelta(months=settings.subscription_period_months)


# ── Read helpers ─────────────────────────────────────────────────────────


def is_valid(sub: Subscriptions, now: datetime) -> bool:
    """Grants entitlement right now (trial/active and period not over)."""
    return (
        SubscriptionStatus(sub.status).grants_entitlement
        and sub.current_period_end is not None
        and sub.current_period_end > now
    )


def in_trial(sub: Subscriptions, now: datetime) -> bool:
    return (
        sub.status == SubscriptionStatus.TRIAL
        and sub.trial_ends_at is not None
        and sub.trial_ends_at > now
    )


def has_ended(sub: Subscriptions, now: datetime) -> bool:
    return (
        sub.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED)
        or (sub.current_period_end is not None and sub.current_period_end < now)
    )


def days_remaining(sub: Subscriptions, now: datetime) -> int:
    if sub.current_period_end is None:
        return 0
    return int((sub.current_period_end - now) / timedelta(days=1))


def is_expiring_soon(sub: Subscriptions, now: datetime) -> bool:
    return 0 < days_remaining(sub, now) <= EXPIRING_SOON_DAYS


def current_subscription(db: Session, user_id: int, now: datetime) -> Subscriptions | None:
    """Authoritative subscription: most recently created one still in force."""
    return (
        db.query(Subscriptions)
        .filter(
            Subscriptions.user_id == user_id,
            Subscriptions.status.in_([SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE]),
            Subscriptions.current_period_end > now,
        )
        .order_by(Subscriptions.created_at.desc(), Subscriptions.id.desc())
        .first()
    )


def _get_user(db: Session, user_id: int) -> Users:
    user = db.get(Users, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


def is_entitled(db: Session, user: Users, now: datetime) -> bool:
    if user.role in UNGATED_ROLES:
        return True
    return current_subscription(db, user.id, now) is not None


def is_owner_entitled(db: Session, owner_id: int, clock: Clock | None = None) -> bool:
    """May this user create bookable inventory right now?"""
    clock = clock or get_clock()
    return is_entitled(db, _get_user(db, owner_id), clock.now())


def trial_eligible(db: Session, owner_id: int) -> bool:
    """One trial per owner, ever: only owners without any subscription record."""
    user = _get_user(db, owner_id)
    if user.role != UserRole.OWNER:
        return False
    return not db.query(Subscriptions.id).filter(Subscriptions.user_id == owner_id).first()


def require_entitlement(db: Session, user: Users, now: datetime) -> None:
    """Raise EntitlementError (trial_available | payment_required) unless entitled."""
    if is_entitled(db, user, now):
        return
    if trial_eligible(db, user.id):
        raise EntitlementError(
            "A subscription is required. Start your free trial to continue.",
            kind="trial_available",
        )
    raise EntitlementError(
        "A subscription is required. Please subscribe to continue.",
        kind="payment_required",
    )


def status_message(db: Session, owner_id: int, clock: Clock | None = None) -> str | None:
    """Human-readable subscription state for an owner (None for other roles)."""
    clock = clock or get_clock()
    now = clock.now()
    user = _get_user(db, owner_id)
    if user.role != UserRole.OWNER:
        return None

    sub = current_subscription(db, owner_id, now)
    if not sub:
        return "No active subscription. Please subscribe to create businesses."
    if in_trial(sub, now):
        return f"Trial period: {days_remaining(sub, now)} days remaining"
    if is_valid(sub, now):
        return f"Active subscription: {days_remaining(sub, now)} days remaining"
    return "Subscription status unknown"


# ── Trial / payment ──────────────────────────────────────────────────────


def start_trial(
    db: Session,
    owner_id: int,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Subscriptions | None:
    """
    Start the owner's one and only trial.

    Returns None when the owner already has (or ever had) a subscription,
    or is not an owner; the caller must then require payment.
    """
    clock = clock or get_clock()

    with owner_lock(owner_id, redis=redis):
        if not trial_eligible(db, owner_id):
            logger.info(f"Trial not available: owner_id={owner_id}")
            return None

        now = clock.now()
        trial_end = now + timedelta(days=settings.trial_days)
        sub = Subscriptions(
            user_id=owner_id,
            status=SubscriptionStatus.TRIAL,
            amount=settings.subscription_amount,
            currency=settings.subscription_currency,
            trial_ends_at=trial_end,
            current_period_start=now,
            current_period_end=trial_end,
            created_at=now,
            updated_at=now,
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)

    logger.info(f"Trial started: owner_id={owner_id}, subscription_id={sub.id}, ends={trial_end:%Y-%m-%d}")
    return sub


def activate_from_payment(
    db: Session,
    owner_id: int,
    payment_reference: str,
    amount: float,
    currency: str,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Subscriptions:
    """
    Create an active subscription from an already verified payment.

    A payment reference can back at most one subscription.
    """
    clock = clock or get_clock()

    if not payment_reference:
        raise InvalidInputError("Payment reference is required", kind="invalid_payment")
    if amount is None or amount <= 0:
        raise InvalidInputError("Amount must be greater than 0", kind="invalid_payment")
    if not currency:
        raise InvalidInputError("Currency is required", kind="invalid_payment")

    _get_user(db, owner_id)

    with owner_lock(owner_id, redis=redis):
        used = (
            db.query(Subscriptions.id)
            .filter(Subscriptions.payment_reference == payment_reference)
            .first()
        )
        if used:
            logger.warning(f"Payment {payment_reference} already used for existing subscription")
            raise DuplicatePaymentError(payment_reference)

        now = clock.now()
        sub = Subscriptions(
            user_id=owner_id,
            status=SubscriptionStatus.ACTIVE,
            amount=amount,
            currency=currency,
            payment_reference=payment_reference,
            current_period_start=now,
            current_period_end=_period_end(now),
            created_at=now,
            updated_at=now,
        )
        db.add(sub)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise DuplicatePaymentError(payment_reference) from e
        db.refresh(sub)

    logger.info(
        f"Subscription activated: owner_id={owner_id}, subscription_id={sub.id}, "
        f"payment={payment_reference}"
    )
    emit_event("subscription_activated", {
        "subscription_id": sub.id,
        "user_id": owner_id,
    }, redis=redis)
    return sub


def _get_subscription(db: Session, subscription_id: int) -> Subscriptions:
    sub = db.get(Subscriptions, subscription_id)
    if not sub:
        raise NotFoundError("Subscription", subscription_id)
    return sub


def _find_by_reference(db: Session, payment_reference: str) -> Subscriptions | None:
    return (
        db.query(Subscriptions)
        .filter(Subscriptions.payment_reference == payment_reference)
        .first()
    )


def renew_subscription(
    db: Session,
    subscription_id: int,
    clock: Clock | None = None,
) -> Subscriptions:
    """Back to active with a fresh billing period starting now."""
    clock = clock or get_clock()
    now = clock.now()
    sub = _get_subscription(db, subscription_id)

    transition_subscription(sub, SubscriptionStatus.ACTIVE, now)
    sub.current_period_start = now
    sub.current_period_end = _period_end(now)
    db.commit()
    db.refresh(sub)
    logger.info(f"Subscription renewed: subscription_id={sub.id}, until={sub.current_period_end:%Y-%m-%d}")
    return sub


def mark_past_due(
    db: Session,
    payment_reference: str,
    clock: Clock | None = None,
) -> Subscriptions | None:
    """
    Payment failure for a known reference.

    Repeated notices are no-ops, as are notices arriving after the
    subscription already ended (expired or cancelled).
    """
    clock = clock or get_clock()
    sub = _find_by_reference(db, payment_reference)
    if not sub:
        logger.warning(f"Payment failure for unknown reference {payment_reference}")
        return None
    if sub.status in (
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.CANCELLED,
    ):
        logger.info(f"Payment failure ignored: subscription_id={sub.id}, status={sub.status.value}")
        return sub

    transition_subscription(sub, SubscriptionStatus.PAST_DUE, clock.now())
    db.commit()
    db.refresh(sub)
    logger.info(f"Subscription past due: subscription_id={sub.id}")
    return sub


def _cancel(db: Session, sub: Subscriptions, now: datetime, redis: Redis | None) -> Subscriptions:
    transition_subscription(sub, SubscriptionStatus.CANCELLED, now)
    sub.cancelled_at = now
    db.commit()
    db.refresh(sub)
    logger.info(f"Subscription cancelled: subscription_id={sub.id}")
    emit_event("subscription_cancelled", {
        "subscription_id": sub.id,
        "user_id": sub.user_id,
    }, redis=redis)
    return sub


def cancel_subscription(
    db: Session,
    subscription_id: int,
    actor_id: int,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Subscriptions:
    """Explicit cancellation by the subscriber. Terminal."""
    clock = clock or get_clock()
    sub = _get_subscription(db, subscription_id)
    if sub.user_id != actor_id:
        raise AuthorizationError("You are not authorized to cancel this subscription")
    return _cancel(db, sub, clock.now(), redis)


def expire_lapsed_subscriptions(db: Session, clock: Clock | None = None) -> int:
    """Housekeeping: persist `expired` for rows whose period is over."""
    clock = clock or get_clock()
    now = clock.now()

    lapsed = (
        db.query(Subscriptions)
        .filter(
            Subscriptions.status.in_([
                SubscriptionStatus.TRIAL,
                SubscriptionStatus.ACTIVE,
                SubscriptionStatus.PAST_DUE,
            ]),
            Subscriptions.current_period_end < now,
        )
        .all()
    )
    for sub in lapsed:
        transition_subscription(sub, SubscriptionStatus.EXPIRED, now)
    db.commit()
    if lapsed:
        logger.info(f"Expired {len(lapsed)} lapsed subscriptions")
    return len(lapsed)


# ── Provider events ──────────────────────────────────────────────────────


def minor_to_major(amount_minor: int) -> float:
    """Provider amounts come in the smallest currency unit (1 SAR = 100 halalas)."""
    return round(amount_minor / 100.0, 2)


def handle_payment_event(
    db: Session,
    event_type: str,
    payment: dict,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Subscriptions | None:
    """
    Apply a provider payment event that the payment layer already verified.

    payment.paid     → renew the subscription holding the reference, or
                       activate a new one for metadata.user_id
    payment.failed   → past_due
    payment.refunded → cancelled
    """
    clock = clock or get_clock()
    payment_reference = payment.get("id")
    user_id = (payment.get("metadata") or {}).get("user_id")

    if not payment_reference:
        raise InvalidInputError("Payment event without payment id", kind="invalid_payment")

    if event_type == "payment.paid":
        sub = _find_by_reference(db, payment_reference)
        if sub:
            return renew_subscription(db, sub.id, clock)
        if not user_id:
            logger.warning(f"Paid event {payment_reference} without user_id")
            return None
        return activate_from_payment(
            db,
            owner_id=int(user_id),
            payment_reference=payment_reference,
            amount=minor_to_major(payment.get("amount") or 0),
            currency=payment.get("currency") or settings.subscription_currency,
            clock=clock,
            redis=redis,
        )

    if event_type == "payment.failed":
        logger.warning(f"Payment failed for user {user_id}: {payment_reference}")
        return mark_past_due(db, payment_reference, clock)

    if event_type == "payment.refunded":
        logger.info(f"Payment refunded for user {user_id}: {payment_reference}")
        sub = _find_by_reference(db, payment_reference)
        if not sub or sub.status == SubscriptionStatus.CANCELLED:
            return sub
        return _cancel(db, sub, clock.now(), redis)

    logger.info(f"Unhandled payment event: {event_type}")
    return None
