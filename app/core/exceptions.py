"""
core/exceptions.py
------------------
Typed application errors.

Services raise these; main.py turns them into the uniform error envelope:

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}

NotFound is also used for rows that exist but belong to another tenant, so
callers cannot test for cross-tenant existence.
"""

from typing import Any

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: Any = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_UNAUTHORIZED"
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "AUTH_FORBIDDEN"
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InvalidInput(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_INPUT"
    default_message = "Invalid request"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Conflict"


class AlreadyProcessed(Conflict):
    code = "PURCHASE_ALREADY_PROCESSED"
    default_message = "Purchase request has already been processed"


class InsufficientBudget(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "PURCHASE_INSUFFICIENT_BUDGET"
    default_message = "Insufficient budget"


class InternalError(AppError):
    pass
