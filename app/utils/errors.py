"""
Application error taxonomy

Domain errors carry a fixed HTTP status and a machine-readable code; the
handlers registered in ``app.main`` render them as JSON.
"""
from typing import Any, Optional


class AppError(Exception):
    """Operational failure with a status code and stable public message"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_ERROR",
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.status_code} {self.code}: {self.message}>"


class ValidationError(AppError):
    """A precondition on user-supplied data failed"""

    def __init__(self, message: str, details: Optional[Any] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, 400, code, details)


class AuthenticationError(AppError):
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, 401, "AUTHENTICATION_ERROR")


class AuthorizationError(AppError):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, 403, "AUTHORIZATION_ERROR")


class NotFoundError(AppError):
    """Entity absent or not publicly visible"""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404, "NOT_FOUND")


class ConflictError(AppError):
    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, 409, "CONFLICT_ERROR")


class ExternalServiceError(AppError):
    def __init__(self, service: str, details: Optional[Any] = None):
        super().__init__(f"External service error: {service}", 502, "EXTERNAL_SERVICE_ERROR", details)


class TransactionTimeoutError(AppError):
    """The booking transaction exceeded its budget and was rolled back"""

    def __init__(self, budget_seconds: float):
        super().__init__(
            f"Booking transaction exceeded {budget_seconds:g}s",
            500,
            "BOOKING_TRANSACTION_TIMEOUT"
        )
        self.budget_seconds = budget_seconds


# Errors that propagate verbatim to the top-level handler
DOMAIN_ERRORS = (ValidationError, NotFoundError, ConflictError, AuthenticationError, AuthorizationError)
