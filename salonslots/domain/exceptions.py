"""
Domain-specific exception hierarchy for the slot engine.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InputError(SlotEngineError, ValueError):
    """Raised when caller input is malformed; rejected before any schedule work."""


class NotFoundError(InputError):
    """Raised when a salon, service, staff member or appointment id is unknown."""


class SlotUnavailableError(SlotEngineError):
    """
    Raised when a previously offered slot is no longer free at commit time.

    Callers should re-fetch availability and let the customer pick again.
    """


class ConcurrencyConflictError(SlotUnavailableError):
    """Raised when a commit lost a race at the storage layer."""


class UpstreamDataError(SlotEngineError):
    """Raised when schedule or appointment data cannot be fetched."""


class AppointmentStateError(SlotEngineError):
    """Raised on an illegal appointment status transition."""
