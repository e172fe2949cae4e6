"""
Domain errors raised by the service layer.

Routers never catch these; the handler registered in app.main renders them as
{"error": <code>, "message": <text>, **data} with the class's status code.
"""
from typing import Any


class DropServiceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, **data: Any):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.data}


class NotFoundError(DropServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DropServiceError):
    status_code = 409
    code = "CONFLICT"


class BusinessRuleViolation(DropServiceError):
    """A well-formed request that the drop rules refuse."""

    status_code = 400
    code = "BUSINESS_RULE_VIOLATION"


class InsufficientReputation(BusinessRuleViolation):
    code = "INSUFFICIENT_REPUTATION"


class SelfValidation(BusinessRuleViolation):
    code = "SELF_VALIDATION"


class DropNotActive(BusinessRuleViolation):
    code = "DROP_NOT_ACTIVE"


class DuplicateValidation(BusinessRuleViolation):
    code = "DUPLICATE_VALIDATION"


class RateLimitExceeded(DropServiceError):
    status_code = 429
    code = "RATE_LIMITED"


class WeeklyLimitReached(RateLimitExceeded):
    code = "WEEKLY_LIMIT_REACHED"


class DependencyFailure(DropServiceError):
    status_code = 500
    code = "DEPENDENCY_FAILURE"


class InvalidCursor(DropServiceError):
    status_code = 400
    code = "INVALID_CURSOR"
