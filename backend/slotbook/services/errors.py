# backend/slotbook/services/errors.py
"""
Domain errors for the scheduling core.

Every error carries a machine-readable ``kind`` so callers (UI, HTTP
layer) can present a targeted message or route to another flow, plus a
``to_http_exception()`` conversion used by the FastAPI error handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainError(Exception):
    """Base class for all scheduling-core errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_kind: str = "error"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.kind = kind or self.default_kind
        self.code = self.kind.upper()
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "kind": self.kind,
                "details": self.details,
            },
        )


class BookingValidationError(DomainError):
    """Requested booking interval is not acceptable.

    kind: ``hours`` | ``conflict`` | ``invalid_duration`` | ``in_past``
    """

    status_code = HTTP_422_UNPROCESSABLE
    default_kind = "conflict"

    KINDS = ("hours", "conflict", "invalid_duration", "in_past")

    def __init__(self, kind: str, message: Optional[str] = None, details=None):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown booking validation kind: {kind}")
        super().__init__(message or _BOOKING_MESSAGES[kind], kind=kind, details=details)
        if kind == "conflict":
            self.status_code = status.HTTP_409_CONFLICT


_BOOKING_MESSAGES = {
    "hours": "Booking must be within business hours",
    "conflict": "This time slot conflicts with an existing booking",
    "invalid_duration": "Service duration must be a positive number of minutes",
    "in_past": "Booking start must be in the future",
}


class InvalidInputError(DomainError):
    """Malformed owner-supplied data (hours, duration, price, names)."""

    status_code = HTTP_422_UNPROCESSABLE
    default_kind = "invalid_input"


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_kind = "unauthorized"

    def __init__(self, message: str = "You are not authorized to perform this action", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_kind = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            details={"resource": resource, "id": resource_id},
        )


class TooLateError(DomainError):
    """Cancellation attempted inside the lead-time window."""

    status_code = HTTP_422_UNPROCESSABLE
    default_kind = "too_late"


class InvalidTransitionError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_kind = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from {current} to {target}",
            details={"from": current, "to": target},
        )


class EntitlementError(DomainError):
    """Owner lacks a subscription in force.

    kind: ``trial_available`` (route to trial start) or
    ``payment_required`` (route to payment).
    """

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_kind = "payment_required"


class DuplicatePaymentError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_kind = "duplicate_payment"

    def __init__(self, payment_reference: str):
        super().__init__(
            f"Payment {payment_reference} already used for an existing subscription",
            details={"payment_reference": payment_reference},
        )


@dataclass(frozen=True)
class IntegrityWarning:
    """Non-fatal failure of a derived artifact (the parent operation succeeded)."""

    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
