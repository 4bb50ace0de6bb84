"""
DevTinder — Domain error taxonomy.

Services raise these; the FastAPI exception handler in ``devtinder.main``
and the WebSocket adapter translate them into user-facing outcomes.  No
store exception or stack detail crosses that boundary.
"""

from __future__ import annotations


class DevTinderError(Exception):
    """Base class for every error a service may raise to its caller."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DevTinderError):
    """Malformed or self-referential input."""

    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(DevTinderError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(DevTinderError):
    """Non-member access or cross-user mutation."""

    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFoundError(DevTinderError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(DevTinderError):
    """Re-interaction with a pair already in a terminal state."""

    status_code = 409
    default_message = "You have already interacted with this user"


class RateLimitError(DevTinderError):
    status_code = 429
    default_message = "Too many messages, slow down"


class ConcurrencyError(DevTinderError):
    """Lost a uniqueness or conditional-update race.

    Raised and retried inside the services.  It only reaches a caller when
    every retry lost, in which case it is reported as a conflict.
    """

    status_code = 409
    default_message = "The resource was modified concurrently, please retry"
