"""Application error taxonomy.

Domain code raises these; the API layer maps each class to one HTTP status
through a single exception handler. None of them are retried internally.

- ValidationError: malformed id, bad day count, bad date, bad input
- NotFoundError: the addressed record does not exist
- ConflictError: the request is well-formed but the current state forbids it
- ForbiddenError: the caller may not act on this resource
- AuthenticationError: no caller identity was supplied
"""
from __future__ import annotations
from enum import Enum
from typing import Any


class ConflictReason(str, Enum):
    UNAVAILABLE = "unavailable"
    INVALID_STATUS = "invalid_status"
    PAYMENT_NOT_CONFIRMED = "payment_not_confirmed"
    STOCK_IN_USE = "stock_in_use"
    HAS_RENTALS = "has_rentals"


class AppError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "reason": self.reason,
            "message": self.message,
        }


class ValidationError(AppError):
    status_code = 422
    code = "validation_error"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"

    def __init__(self, message: str, reason: ConflictReason):
        super().__init__(message, reason=reason.value)
        self.conflict_reason = reason


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthenticated"
