"""
Application error taxonomy.

Every domain failure raised by the services is a ``SupplyHubError``
subclass carrying a human readable message, the HTTP status it maps to and
arbitrary keyword context for structured logging. The API layer renders
them through a single exception handler registered in ``supplyhub.main``.
"""

from typing import Any


class SupplyHubError(Exception):
    """Base exception for domain errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": {
                key: str(value) if value is not None else None
                for key, value in self.context.items()
            },
        }


class NotFoundError(SupplyHubError):
    """Entity absent, or not visible to the caller."""

    status_code = 404
    error_code = "NOT_FOUND"


class ForbiddenError(SupplyHubError):
    """Caller is authenticated but not allowed to perform the operation."""

    status_code = 403
    error_code = "FORBIDDEN"


class ConflictError(SupplyHubError):
    """Operation is illegal in the entity's current state."""

    status_code = 409
    error_code = "CONFLICT"


class InvalidInputError(SupplyHubError):
    status_code = 400
    error_code = "INVALID_INPUT"


class InvalidCodeError(SupplyHubError):
    """Delivery verification code mismatch, tampering or expiry."""

    status_code = 400
    error_code = "INVALID_CODE"
