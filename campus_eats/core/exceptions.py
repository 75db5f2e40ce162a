"""
Domain Exceptions

Every error a service can raise derives from CampusEatsError. Each class
carries the HTTP status it maps to and, for not-found/forbidden, a generic
public message so responses never reveal whether another user's order
exists. The detailed message is kept on the exception for logging.
"""

from typing import Any, Optional


class CampusEatsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    error: str = "Bad Request"
    public_message: Optional[str] = None

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message)
        self.message = message or self.error
        self.context = context

    @property
    def detail(self) -> str:
        """Message safe to show to the caller."""
        return self.public_message or self.message


class ValidationError(CampusEatsError):
    """Malformed or missing input."""
    status_code = 400
    error = "Validation Error"


class NotFoundError(CampusEatsError):
    """Referenced entity does not exist."""
    status_code = 404
    error = "Not Found"
    public_message = "Resource not found"


class UnauthorizedError(CampusEatsError):
    """No authenticated user on the request."""
    status_code = 401
    error = "Unauthorized"
    public_message = "Unauthorized"


class ForbiddenError(CampusEatsError):
    """Caller lacks rights over the entity."""
    status_code = 403
    error = "Forbidden"
    public_message = "Access denied"


class InvalidStateError(CampusEatsError):
    """Operation not legal in the entity's current lifecycle state."""
    status_code = 409
    error = "Invalid State"


class InvalidTransitionError(InvalidStateError):
    """Requested order status is not reachable from the current one."""
    error = "Invalid Transition"


class InsufficientTokensError(CampusEatsError):
    """Token balance below the required cost."""
    status_code = 400
    error = "Insufficient Tokens"

    def __init__(self, message: str = "Insufficient tokens", **context: Any):
        super().__init__(message, **context)


class ConflictError(CampusEatsError):
    """A concurrent mutation won the race, or a uniqueness rule was hit."""
    status_code = 409
    error = "Conflict"


class ServiceUnavailableError(CampusEatsError):
    """The service cannot fulfil the request in its current configuration."""
    status_code = 503
    error = "Service Unavailable"


class RewardCatalogEmptyError(ServiceUnavailableError):
    """The reward wheel has no selectable entries."""

    def __init__(self, message: str = "Reward wheel is not available", **context: Any):
        super().__init__(message, **context)
