"""
Exceptions raised by the booking client.
Raised in api.py and the booking flow, caught by the CLI for clean error output.
"""


class BookingClientError(Exception):
    """Base exception for all booking client errors."""
    pass


class ApiError(BookingClientError):
    """Raised when the booking API cannot be reached or answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SlotCapacityError(BookingClientError):
    """Raised when a slot is added to a selection that already holds the package's maximum."""
    pass


class SlotNotSelectableError(BookingClientError):
    """Raised when a hidden or unavailable slot is clicked."""
    pass


class LockConflictError(BookingClientError):
    """Raised when the API refuses to lock the selected slots, usually because they were just taken."""
    pass


class LockAlreadyHeldError(BookingClientError):
    """Raised when a second reservation lock is requested while one is still held."""
    pass


class LockExpiredError(BookingClientError):
    """Raised when the reservation lock ran out or was rejected by the API."""
    pass


class BookingCreateError(BookingClientError):
    """Raised when the booking could not be created. The lock is still held."""
    pass


class StepError(BookingClientError):
    """Raised when a booking flow action is not valid in the current step."""
    pass


class AuthError(BookingClientError):
    """Raised when logging in fails."""
    pass
