"""
Runs the slot generator across days and staff and groups the result by date.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pendulum

from .models import AvailableSlot, BookingRequest, BookingRules, DaySchedule
from .slot_generator import SlotGenerator
from .timeutils import date_key, local_today


class SlotAggregator:
    """
    Aggregates slots for a booking request over a range of day schedules.

    ``now`` is always passed in by the caller and evaluated once per call, so
    a single request is internally consistent and tests can pin it.
    """

    def __init__(self, generator: SlotGenerator):
        self.generator = generator

    @property
    def timezone(self) -> str:
        return self.generator.timezone

    def aggregate(
        self,
        schedules: Iterable[DaySchedule],
        request: BookingRequest,
        rules: BookingRules,
        now: datetime,
    ) -> Dict[str, List[AvailableSlot]]:
        """
        Calculate available slots for multiple days and staff members.

        Args:
            schedules: One schedule per calendar day
            request: Duration and optional preferred staff member
            rules: Lead time, horizon and granularity policy
            now: Reference instant for the lead-time and horizon filters

        Returns:
            Dict mapping "YYYY-MM-DD" to slots sorted by (start, staff id).
            Days without slots are omitted.
        """
        earliest_start = pendulum.instance(now).add(minutes=rules.min_lead_time_minutes)
        last_day = local_today(now, self.timezone).add(days=rules.max_booking_horizon_days)

        slots_by_date: Dict[str, List[AvailableSlot]] = {}

        for schedule in schedules:
            if schedule.date > last_day:
                continue

            staff_ids = [request.staff_id] if request.staff_id else schedule.staff_ids()
            day_slots: List[AvailableSlot] = []

            for staff_id in staff_ids:
                staff_slots = self.generator.generate(
                    schedule,
                    staff_id,
                    request.total_duration_minutes,
                    rules.slot_granularity_minutes,
                )
                day_slots.extend(
                    slot for slot in staff_slots if slot.datetime >= earliest_start
                )

            day_slots.sort(key=lambda slot: (slot.start_minutes, slot.staff_id))

            if day_slots:
                slots_by_date[date_key(schedule.date)] = day_slots

        return slots_by_date

    def find_next_available_slot(
        self,
        schedules: Iterable[DaySchedule],
        request: BookingRequest,
        rules: BookingRules,
        now: datetime,
    ) -> Optional[AvailableSlot]:
        """Return the chronologically earliest slot, or None."""
        earliest: Optional[AvailableSlot] = None

        for day_slots in self.aggregate(schedules, request, rules, now).values():
            for slot in day_slots:
                if earliest is None or slot.datetime < earliest.datetime:
                    earliest = slot

        return earliest
