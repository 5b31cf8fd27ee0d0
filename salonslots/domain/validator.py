"""
Commit-time re-check of a previously offered slot.

Must run inside the commit transaction, against a schedule rebuilt from
freshly read data, never the schedule that produced the offer.
"""

from .intervals import intersect_ranges, overlaps
from .models import AvailableSlot, DaySchedule, TimeRange
from .timeutils import MINUTES_PER_DAY


def validate_slot(schedule: DaySchedule, slot: AvailableSlot, duration_minutes: int) -> bool:
    """
    Check that a slot is still free.

    All checks must pass:
    1. The slot lies fully within one bookable range (opening hours intersected
       with the staff member's hours, net of absences)
    2. No appointment of that staff member overlaps it
    3. No blocked time overlaps it

    Returns False on any failure; the caller treats that as "slot taken".
    """
    end_minutes = slot.start_minutes + duration_minutes
    if duration_minutes <= 0 or end_minutes > MINUTES_PER_DAY:
        return False
    wanted = TimeRange(slot.start_minutes, end_minutes)

    staff_hours = schedule.hours_for(slot.staff_id)
    if not staff_hours:
        return False

    bookable = intersect_ranges(schedule.opening_hours, staff_hours)
    if not any(free.contains(wanted) for free in bookable):
        return False

    if any(overlaps(wanted, busy) for busy in schedule.appointments_for(slot.staff_id)):
        return False

    if any(overlaps(wanted, blocked) for blocked in schedule.blocked_times):
        return False

    return True
