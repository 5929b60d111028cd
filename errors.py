"""
Error taxonomy surfaced by the rental engines.
"""


class RentalError(Exception):
    """Base class for errors that map directly to an HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RentalError):
    """Entity absent, or the caller is not a party to it."""
    status_code = 404


class BadRequestError(RentalError):
    """Precondition, ownership or state-machine violation."""
    status_code = 400


class ForbiddenError(RentalError):
    status_code = 403


class ConflictError(RentalError):
    """Scheduling overlap or duplicate unique key."""
    status_code = 409
