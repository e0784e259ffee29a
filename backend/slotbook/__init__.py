"""slotbook: service-booking scheduler backend."""

__version__ = "0.1.0"
