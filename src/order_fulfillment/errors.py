"""Error taxonomy for the order lifecycle.

Validation failures use protean's ``ValidationError`` with its
``{"field": ["message"]}`` shape, and missing records use protean's
``ObjectNotFoundError``, so errors raised by the repository and by engine
code look the same to callers. The API layer maps each class to an HTTP
status in ``order_fulfillment.api.errors``.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

NotFound = ObjectNotFoundError


class InvalidTransition(ValidationError):
    """The requested status is not a legal successor of the current one."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})


class Unauthorized(Exception):
    """The actor neither owns the order nor holds a staff/admin role."""

    def __init__(self, message: str = "Not authorized to access this order"):
        self.message = message
        super().__init__(message)


class ExternalServiceError(Exception):
    """A payment gateway or notifier call failed or timed out."""

    def __init__(self, service: str, message: str, *, timed_out: bool = False):
        self.service = service
        self.message = message
        self.timed_out = timed_out
        super().__init__(f"{service}: {message}")


class TrackingNumberExhausted(Exception):
    """No unused tracking number could be allocated within the retry budget."""


__all__ = [
    "ExternalServiceError",
    "InvalidTransition",
    "NotFound",
    "ObjectNotFoundError",
    "TrackingNumberExhausted",
    "Unauthorized",
    "ValidationError",
]
