"""
Domain layer - Pure business logic without external dependencies.
"""

from .aggregator import SlotAggregator
from .appointments import Appointment, AppointmentStatus
from .intervals import intersect_ranges, merge_ranges, overlaps, subtract_ranges
from .models import (
    AppointmentBlock,
    AvailableSlot,
    BookingRequest,
    BookingRules,
    DaySchedule,
    TimeRange,
)
from .slot_generator import SlotGenerator
from .validator import validate_slot

__all__ = [
    "Appointment",
    "AppointmentBlock",
    "AppointmentStatus",
    "AvailableSlot",
    "BookingRequest",
    "BookingRules",
    "DaySchedule",
    "SlotAggregator",
    "SlotGenerator",
    "TimeRange",
    "intersect_ranges",
    "merge_ranges",
    "overlaps",
    "subtract_ranges",
    "validate_slot",
]
