# backend/slotbook/models/enums.py
"""
Closed status/role vocabularies.

Values are what gets persisted; transitions are enforced by the
lifecycle services, never by plain attribute assignment.
"""

from enum import Enum


class UserRole(str, Enum):
    CLIENT = "client"
    OWNER = "owner"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        """Occupies its interval (counts for conflict detection)."""
        return self is not BookingStatus.CANCELLED


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def grants_entitlement(self) -> bool:
        return self in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


def enum_values(enum_cls) -> list[str]:
    """values_callable for SQLAlchemy Enum columns (persist .value, not .name)."""
    return [member.value for member in enum_cls]
