"""
Domain-specific exception hierarchy for the booking slot application.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class DataSourceError(SchedulingError):
    """Raised when schedule data cannot be fetched, parsed or written."""


class InvalidRequestError(SchedulingError, ValueError):
    """Raised when a caller passes arguments the scheduler cannot act on."""


class SlotUnavailableError(SchedulingError):
    """Raised when a requested slot is no longer bookable at commit time."""


class CancellationNotAllowedError(SchedulingError):
    """Raised when an appointment can no longer be cancelled."""


class NotFoundError(SchedulingError):
    """Raised when a referenced record does not exist."""
