"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import (
    BookingResult,
    BookingService,
    BookingStoreProtocol,
    BookingSubmission,
    CustomerDetails,
    UnitOfWorkProtocol,
)
from .schedule_builder import DayScheduleBuilder, ScheduleSourceProtocol, clip_to_day

__all__ = [
    "BookingResult",
    "BookingService",
    "BookingStoreProtocol",
    "BookingSubmission",
    "CustomerDetails",
    "DayScheduleBuilder",
    "ScheduleSourceProtocol",
    "UnitOfWorkProtocol",
    "clip_to_day",
]
