"""
Lifecycle error types.

Kept in their own module so the HTTP layer, the sweep and tests share one
set of exception classes.
"""


class LifecycleError(Exception):
    """Base class for rejected lifecycle operations."""

    status_code = 400


class InvalidStateError(LifecycleError):
    """Raised when a request is not in a state that allows the operation."""

    status_code = 400


class ExtensionNotAllowedError(InvalidStateError):
    """Raised when the decision deadline cannot be extended."""


class NotFoundError(LifecycleError):
    """Raised for unknown requests/offers or offers outside the request."""

    status_code = 404

