from .enums import BookingStatus, SubscriptionStatus, UserRole
from .tables import (
    Base,
    Bookings,
    Businesses,
    CalendarEvents,
    Services,
    Subscriptions,
    Users,
    metadata,
)

__all__ = [
    "Base",
    "metadata",
    "Users",
    "Businesses",
    "Services",
    "Bookings",
    "CalendarEvents",
    "Subscriptions",
    "UserRole",
    "BookingStatus",
    "SubscriptionStatus",
]
