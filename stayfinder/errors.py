"""
Error kinds returned by the booking core.

Every failure a caller can see is one of these; storage exceptions are
wrapped in StorageError before they leave the core.
"""


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    status_code = 400


class InvalidRangeError(ValidationError):
    pass


class CapacityError(ValidationError):
    pass


class ConflictError(BookingError):
    status_code = 409


class AuthorizationError(BookingError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class NotFoundError(BookingError):
    status_code = 404

    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource.capitalize()} not found")


class InvalidStateError(BookingError):
    status_code = 400


class StorageError(BookingError):
    status_code = 503
