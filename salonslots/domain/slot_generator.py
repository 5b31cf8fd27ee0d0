"""
Core business logic for generating bookable slots of one staff member.

Pure domain logic: no API calls, no database, no clock.
"""

import logging
import math
from typing import List

from .exceptions import InputError
from .intervals import intersect_ranges, subtract_ranges
from .models import AvailableSlot, DaySchedule, TimeRange
from .timeutils import minutes_to_datetime

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Generates fixed-duration candidate slots for one staff member and day.

    Algorithm:
    1. Look up the staff member's working hours (none = not working, no slots)
    2. Intersect salon opening hours with the staff hours
    3. Subtract the staff member's appointments
    4. Subtract blocked times
    5. Walk each free range on the granularity grid and emit every slot
       that still fits before the range ends
    """

    def __init__(self, timezone: str):
        self.timezone = timezone

    def generate(
        self,
        schedule: DaySchedule,
        staff_id: str,
        duration_minutes: int,
        granularity: int,
    ) -> List[AvailableSlot]:
        """
        Generate all candidate slots for a staff member on the schedule's day.

        Args:
            schedule: The day's opening hours, staff hours and occupancy
            staff_id: Staff member to generate slots for
            duration_minutes: Length of each slot; non-positive yields no slots
            granularity: Step between start times, starts align to multiples of it

        Returns:
            Slots ordered by start time

        Raises:
            InputError: If granularity is not positive
        """
        if granularity <= 0:
            raise InputError(f"Granularity must be positive, got {granularity}")

        if duration_minutes <= 0:
            logger.debug("Nothing to schedule for duration %s", duration_minutes)
            return []

        slots: List[AvailableSlot] = []

        for free in self.free_ranges(schedule, staff_id):
            start = math.ceil(free.start_minutes / granularity) * granularity

            while start + duration_minutes <= free.end_minutes:
                slots.append(
                    AvailableSlot(
                        date=schedule.date,
                        start_minutes=start,
                        end_minutes=start + duration_minutes,
                        staff_id=staff_id,
                        datetime=minutes_to_datetime(schedule.date, start, self.timezone),
                    )
                )
                start += granularity

        return slots

    def free_ranges(self, schedule: DaySchedule, staff_id: str) -> List[TimeRange]:
        """Return the staff member's bookable free time on the schedule's day."""
        staff_hours = schedule.hours_for(staff_id)
        if not staff_hours:
            return []

        free = intersect_ranges(schedule.opening_hours, staff_hours)
        free = subtract_ranges(free, schedule.appointments_for(staff_id))
        free = subtract_ranges(free, schedule.blocked_times)

        return sorted(free, key=lambda r: r.start_minutes)
