from typing import Any


class AppError(Exception):
    """
    Base class for business errors raised by the services.

    ``kind`` is stable and meant for callers to branch on; ``message`` is
    human readable and may change.
    """

    status_code = 500
    kind = "error"
    default_message = "Application error"

    def __init__(self, message: str | None = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class UnauthorizedError(AppError):
    status_code = 401
    kind = "unauthorized"
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    kind = "forbidden"
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    kind = "not_found"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 400
    kind = "conflict"
    default_message = "Resource conflict"


class InvalidStateError(AppError):
    status_code = 400
    kind = "invalid_state"
    default_message = "Invalid state"


class CapacityExceededError(InvalidStateError):
    kind = "capacity_exceeded"
    default_message = "Event has reached its maximum capacity"


class InfrastructureError(AppError):
    status_code = 500
    kind = "infrastructure"
    default_message = "Internal Server Error"


class RateLimitExceededError(AppError):
    status_code = 429
    kind = "rate_limited"
    default_message = "Too many requests, please try again later"
