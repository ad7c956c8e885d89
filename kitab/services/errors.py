"""
Domain errors raised by the kitab services.

Routers let these propagate; the handlers registered in ``kitab.main``
turn them into JSON responses.
"""


class KitabServiceError(Exception):
    """Base exception for all service failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(KitabServiceError):
    """Caller input violates a precondition (amount, quantity, duration, profile)."""

    status_code = 400


class NotFoundError(KitabServiceError):
    """Referenced order, payment or book does not exist."""

    status_code = 404


class ConcurrencyError(KitabServiceError):
    """Another writer changed the same order while this request was in flight."""

    status_code = 409


class CollaboratorError(KitabServiceError):
    """The database or identity store failed."""

    status_code = 503
