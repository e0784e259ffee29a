# backend/slotbook/services/businesses.py
"""
Publishing bookable inventory: businesses and their services.

Only entitled owners may publish. Hours and service fields are validated
here, at edit time, so malformed data rarely reaches the scheduling core.
"""

import logging
from datetime import time

from redis import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..models import Businesses, Services, UserRole, Users
from .errors import (
    AuthorizationError,
    EntitlementError,
    InvalidInputError,
    NotFoundError,
)
from .scheduling import validate_business_hours
from .subscriptions import is_entitled, require_entitlement, start_trial, trial_eligible

logger = logging.getLogger(__name__)

PUBLISHER_ROLES = (UserRole.OWNER, UserRole.ADMIN)


def _get_user(db: Session, user_id: int) -> Users:
    user = db.get(Users, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


def _get_owned_business(db: Session, business_id: int, actor_id: int) -> Businesses:
    business = db.get(Businesses, business_id)
    if not business:
        raise NotFoundError("Business", business_id)
    if business.user_id != actor_id:
        raise AuthorizationError()
    return business


def _validate_service_fields(name, duration, price) -> None:
    if name is not None and not name.strip():
        raise InvalidInputError("Service name can't be blank", kind="invalid_service")
    if duration is not None and (
        not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0
    ):
        raise InvalidInputError(
            "Duration must be a whole number of minutes greater than 0",
            kind="invalid_duration",
            details={"duration": duration},
        )
    if price is not None and price < 0:
        raise InvalidInputError(
            "Price must be greater than or equal to 0",
            kind="invalid_price",
            details={"price": price},
        )


def _ensure_unique_service_name(db: Session, business_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.query(Services.id).filter(
        Services.business_id == business_id,
        Services.name == name,
    )
    if exclude_id is not None:
        query = query.filter(Services.id != exclude_id)
    if query.first():
        raise InvalidInputError(
            f"Service name '{name}' is already used in this business",
            kind="duplicate_name",
        )


# ── Businesses ───────────────────────────────────────────────────────────


def create_business(
    db: Session,
    owner_id: int,
    name: str,
    open_time: time | None = None,
    close_time: time | None = None,
    description: str | None = None,
    phone_number: str | None = None,
    location: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    clock: Clock | None = None,
    redis: Redis | None = None,
) -> Businesses:
    """
    Create a business for an owner (or admin).

    An owner without a subscription in force gets their trial started
    automatically if they never had one; otherwise payment is required.
    """
    clock = clock or get_clock()
    owner = _get_user(db, owner_id)
    if owner.role not in PUBLISHER_ROLES:
        raise AuthorizationError("Only owners and admins can create businesses")

    if not name or not name.strip():
        raise InvalidInputError("Business name can't be blank", kind="invalid_business")
    validate_business_hours(open_time, close_time)

    if not is_entitled(db, owner, clock.now()):
        if not trial_eligible(db, owner.id) or start_trial(db, owner.id, clock, redis) is None:
            raise EntitlementError(
                "A subscription is required to create businesses",
                kind="payment_required",
            )
        logger.info(f"Trial auto-started for owner_id={owner.id} on business creation")

    business = Businesses(
        user_id=owner.id,
        name=name.strip(),
        open_time=open_time,
        close_time=close_time,
        description=description,
        phone_number=phone_number,
        location=location,
        latitude=latitude,
        longitude=longitude,
        created_at=clock.now(),
    )
    db.add(business)
    db.commit()
    db.refresh(business)
    logger.info(f"Business created: business_id={business.id}, owner_id={owner.id}")
    return business


def update_business_hours(
    db: Session,
    business_id: int,
    actor_id: int,
    open_time: time | None,
    close_time: time | None,
) -> Businesses:
    """
    Change opening hours. Existing bookings are left as they are; the
    new hours apply to bookings created from now on.
    """
    business = _get_owned_business(db, business_id, actor_id)
    validate_business_hours(open_time, close_time)

    business.open_time = open_time
    business.close_time = close_time
    db.commit()
    db.refresh(business)
    logger.info(
        f"Business hours updated: business_id={business.id}, "
        f"open={open_time}, close={close_time}"
    )
    return business


def list_businesses(db: Session) -> list[Businesses]:
    return db.query(Businesses).order_by(Businesses.name, Businesses.id).all()


def get_business(db: Session, business_id: int) -> Businesses:
    business = db.get(Businesses, business_id)
    if not business:
        raise NotFoundError("Business", business_id)
    return business


def destroy_business(db: Session, business_id: int, actor_id: int) -> None:
    """
    Delete a business with its services, their bookings and the calendar.
    Allowed for the owning user or an admin.
    """
    business = get_business(db, business_id)
    actor = _get_user(db, actor_id)
    if business.user_id != actor.id and actor.role != UserRole.ADMIN:
        raise AuthorizationError()

    db.delete(business)
    db.commit()
    logger.info(f"Business deleted: business_id={business_id}, actor_id={actor_id}")


# ── Services ─────────────────────────────────────────────────────────────


def create_service(
    db: Session,
    business_id: int,
    actor_id: int,
    name: str,
    duration: int,
    price: float,
    description: str | None = None,
    clock: Clock | None = None,
) -> Services:
    """Publish a bookable service. Requires the owner to be entitled."""
    clock = clock or get_clock()
    business = _get_owned_business(db, business_id, actor_id)
    require_entitlement(db, business.owner, clock.now())

    if name is None or duration is None or price is None:
        raise InvalidInputError("Name, duration and price are required", kind="invalid_service")
    _validate_service_fields(name, duration, price)
    name = name.strip()
    _ensure_unique_service_name(db, business.id, name)

    service = Services(
        business_id=business.id,
        name=name,
        duration=duration,
        price=price,
        description=description,
        created_at=clock.now(),
    )
    db.add(service)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise InvalidInputError(
            f"Service name '{name}' is already used in this business",
            kind="duplicate_name",
        ) from e
    db.refresh(service)
    logger.info(f"Service created: service_id={service.id}, business_id={business.id}")
    return service


def update_service(
    db: Session,
    service_id: int,
    actor_id: int,
    **changes,
) -> Services:
    """
    Update name / duration / price / description.

    A new duration only affects bookings created afterwards; existing
    bookings keep the end_time computed when they were made.
    """
    service = get_service(db, service_id)
    if service.business.user_id != actor_id:
        raise AuthorizationError()

    allowed = {"name", "duration", "price", "description"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidInputError(f"Unknown service fields: {', '.join(sorted(unknown))}")

    _validate_service_fields(changes.get("name"), changes.get("duration"), changes.get("price"))
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
        _ensure_unique_service_name(db, service.business_id, changes["name"], exclude_id=service.id)

    for field, value in changes.items():
        if value is None and field != "description":
            continue
        setattr(service, field, value)

    db.commit()
    db.refresh(service)
    logger.info(f"Service updated: service_id={service.id}, fields={sorted(changes)}")
    return service


def list_services(db: Session, business_id: int) -> list[Services]:
    business = get_business(db, business_id)
    return (
        db.query(Services)
        .filter(Services.business_id == business.id)
        .order_by(Services.name, Services.id)
        .all()
    )


def get_service(db: Session, service_id: int) -> Services:
    service = db.get(Services, service_id)
    if not service:
        raise NotFoundError("Service", service_id)
    return service


def destroy_service(db: Session, service_id: int, actor_id: int) -> None:
    """Delete a service and its bookings. Only the business owner may."""
    service = get_service(db, service_id)
    if service.business.user_id != actor_id:
        raise AuthorizationError()

    db.delete(service)
    db.commit()
    logger.info(f"Service deleted: service_id={service_id}, actor_id={actor_id}")
