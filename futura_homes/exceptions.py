"""Exception hierarchy for the back office.

Each error carries the HTTP status the API layer answers with.
"""

from typing import List, Optional


class FuturaError(Exception):
    """Base exception for all back office errors."""

    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error or message


class ValidationError(FuturaError):
    """Raised when input is missing or out of range."""

    status_code = 400


class BusinessRuleError(FuturaError):
    """Raised when a request is well-formed but a business rule forbids it."""

    status_code = 400


class NotFoundError(FuturaError):
    """Raised when a referenced entity does not exist."""

    status_code = 404


class ConflictError(FuturaError):
    """Raised when the request duplicates an existing record."""

    status_code = 409


class RateLimitExceeded(FuturaError):
    """Raised when a caller exceeds its request allowance."""

    status_code = 429

    def __init__(self, message: str, retry_after_minutes: int = 0):
        super().__init__(message, error="Rate limit exceeded")
        self.retry_after_minutes = retry_after_minutes


class PlanChangeRejected(BusinessRuleError):
    """Raised when one or more plan-change gates fail."""

    def __init__(self, validation_errors: List[str]):
        super().__init__("Plan change is not allowed", error="Validation failed")
        self.validation_errors = list(validation_errors)


class StorageError(FuturaError):
    """Raised when the storage backend fails."""


class PlanChangeFailed(FuturaError):
    """Raised when a plan change fails partway and compensation was attempted."""

    def __init__(self, message: str, compensated: bool):
        super().__init__(message)
        self.compensated = compensated


class ForbiddenError(FuturaError):
    """Raised when the acting user's role may not perform the action."""

    status_code = 403
