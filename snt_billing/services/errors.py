"""Billing error taxonomy.

Every failure the engine reports carries a machine-readable ``code`` so the
caller can render a specific message, an HTTP status for the API layer and a
``kind`` from the fixed taxonomy below.
"""

from fastapi import status


class ErrorKind:
    """Error categories."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"


class BillingError(Exception):
    """Base billing error."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(BillingError):
    """Malformed or missing input. Never retried by the engine."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, code: str = "BAD_REQUEST"):
        super().__init__(message, code, status.HTTP_400_BAD_REQUEST)


class NotFoundError(BillingError):
    """Charge, invoice or payment absent in the caller's tenant."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code, status.HTTP_404_NOT_FOUND)


class ConflictError(BillingError):
    """Operation is invalid for the current state of the entity."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, code: str, http_status: int = status.HTTP_409_CONFLICT):
        super().__init__(message, code, http_status)


class UnauthorizedError(BillingError):
    """Caller may not act on this entity."""

    kind = ErrorKind.UNAUTHORIZED

    def __init__(
        self,
        message: str = "Access denied",
        code: str = "UNAUTHORIZED",
        http_status: int = status.HTTP_403_FORBIDDEN,
    ):
        super().__init__(message, code, http_status)


class InternalError(BillingError):
    """Transaction failed mid-write and was rolled back."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Internal error", code: str = "INTERNAL"):
        super().__init__(message, code, status.HTTP_500_INTERNAL_SERVER_ERROR)


# Conflict reason codes
CHARGE_ALREADY_PUBLISHED = "CHARGE_ALREADY_PUBLISHED"
CHARGE_NOT_DRAFT = "CHARGE_NOT_DRAFT"
CHARGE_NOT_EDITABLE = "CHARGE_NOT_EDITABLE"
CANNOT_REMOVE_PAID_PARTICIPANT = "CANNOT_REMOVE_PAID_PARTICIPANT"
INVOICE_NOT_CANCELABLE = "INVOICE_NOT_CANCELABLE"
INVOICE_CANCELED = "INVOICE_CANCELED"
INVOICE_ALREADY_PAID = "INVOICE_ALREADY_PAID"


__all__ = [
    "ErrorKind",
    "BillingError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
    "InternalError",
    "CHARGE_ALREADY_PUBLISHED",
    "CHARGE_NOT_DRAFT",
    "CHARGE_NOT_EDITABLE",
    "CANNOT_REMOVE_PAID_PARTICIPANT",
    "INVOICE_NOT_CANCELABLE",
    "INVOICE_CANCELED",
    "INVOICE_ALREADY_PAID",
]
