"""
Assembles ``DaySchedule`` values from raw datastore records.

The builder owns all timezone handling on the read path: weekday selection
and instant -> minute-of-day conversion both happen in the salon timezone.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Sequence

from ..domain.appointments import Appointment
from ..domain.exceptions import SlotEngineError, UpstreamDataError
from ..domain.intervals import merge_ranges, subtract_ranges
from ..domain.models import AppointmentBlock, DaySchedule, TimeRange
from ..domain.records import (
    BlockedTimeRecord,
    OpeningHoursRecord,
    StaffAbsenceRecord,
    WorkingHoursRecord,
)
from ..domain.timeutils import (
    MINUTES_PER_DAY,
    date_key,
    datetime_to_minutes,
    day_bounds,
    day_of_week,
    to_date,
)

logger = logging.getLogger(__name__)


class ScheduleSourceProtocol(Protocol):
    """Read access to the schedule data the builder needs."""

    def get_opening_hours(self, salon_id: str, day_of_week: int) -> List[OpeningHoursRecord]:
        """Return opening-hour rows for a weekday (0=Sunday)."""

    def get_working_hours(
        self, staff_ids: Sequence[str], day_of_week: int
    ) -> List[WorkingHoursRecord]:
        """Return working-hour rows of the given staff for a weekday."""

    def get_absences(self, staff_ids: Sequence[str], day: date) -> List[StaffAbsenceRecord]:
        """Return absences of the given staff that cover the day."""

    def get_appointments(
        self,
        salon_id: str,
        staff_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> List[Appointment]:
        """Return appointments of the given staff overlapping [start, end)."""

    def get_blocked_times(
        self, salon_id: str, start: datetime, end: datetime
    ) -> List[BlockedTimeRecord]:
        """Return salon-wide and staff-scoped blocks overlapping [start, end)."""


def clip_to_day(
    starts_at: datetime,
    ends_at: datetime,
    day: date,
    timezone: str,
) -> Optional[TimeRange]:
    """
    Convert an instant range to the minute-of-day range it covers on ``day``.

    Parts falling on other days are cut off. Returns None when nothing of the
    range lies on the day.
    """
    day_start, day_end = day_bounds(day, timezone)
    if ends_at <= day_start or starts_at >= day_end:
        return None

    start_minutes = 0 if starts_at <= day_start else datetime_to_minutes(starts_at, timezone)
    end_minutes = MINUTES_PER_DAY if ends_at >= day_end else datetime_to_minutes(ends_at, timezone)

    if start_minutes >= end_minutes:
        return None
    return TimeRange(start_minutes, end_minutes)


class DayScheduleBuilder:
    """
    Builds the per-day read projection consumed by the slot engine.

    Staff hours come out already net of breaks, absences and staff-scoped
    blocked times, so the generator never special-cases any of them.
    """

    def __init__(self, source: ScheduleSourceProtocol, timezone: str) -> None:
        self._source = source
        self.timezone = timezone

    def build(
        self,
        salon_id: str,
        day,
        staff_ids: Sequence[str],
        now: datetime,
    ) -> DaySchedule:
        """
        Build the schedule of one calendar day.

        Args:
            salon_id: Salon whose opening hours and blocks apply
            day: Calendar date in the salon timezone
            staff_ids: Staff members to include
            now: Reference instant; reservations whose hold elapsed before it
                no longer occupy time

        Raises:
            UpstreamDataError: If the datastore fails
        """
        day = to_date(day)
        weekday = day_of_week(day)
        day_start, day_end = day_bounds(day, self.timezone)
        staff_ids = list(staff_ids)

        try:
            opening_rows = self._source.get_opening_hours(salon_id, weekday)
            working_rows = self._source.get_working_hours(staff_ids, weekday)
            absences = self._source.get_absences(staff_ids, day)
            appointments = self._source.get_appointments(salon_id, staff_ids, day_start, day_end)
            blocks = self._source.get_blocked_times(salon_id, day_start, day_end)
        except SlotEngineError:
            raise
        except Exception as exc:
            raise UpstreamDataError(
                f"Could not load schedule data for {date_key(day)}: {exc}"
            ) from exc

        opening_hours = merge_ranges(
            row.to_range()
            for row in opening_rows
            if row.is_active and not row.is_closed and row.day_of_week == weekday
        )

        salon_blocks: List[TimeRange] = []
        staff_blocks: Dict[str, List[TimeRange]] = {}
        for block in blocks:
            clipped = clip_to_day(block.starts_at, block.ends_at, day, self.timezone)
            if clipped is None:
                continue
            if block.staff_id is None:
                salon_blocks.append(clipped)
            else:
                staff_blocks.setdefault(block.staff_id, []).append(clipped)

        staff_schedules = {
            staff_id: tuple(
                self._net_staff_hours(
                    day,
                    [row for row in working_rows if row.staff_id == staff_id],
                    [absence for absence in absences if absence.staff_id == staff_id],
                    staff_blocks.get(staff_id, []),
                )
            )
            for staff_id in staff_ids
        }

        appointment_blocks: List[AppointmentBlock] = []
        for appointment in appointments:
            if appointment.staff_id not in staff_schedules or not appointment.occupies(now):
                continue
            clipped = clip_to_day(appointment.starts_at, appointment.ends_at, day, self.timezone)
            if clipped is None:
                continue
            appointment_blocks.append(
                AppointmentBlock(
                    staff_id=appointment.staff_id,
                    start_minutes=clipped.start_minutes,
                    duration_minutes=clipped.duration_minutes(),
                )
            )

        logger.debug(
            "Built schedule for %s: %d opening range(s), %d staff, %d appointment(s), %d block(s)",
            date_key(day),
            len(opening_hours),
            len(staff_schedules),
            len(appointment_blocks),
            len(salon_blocks),
        )

        return DaySchedule(
            date=day,
            opening_hours=tuple(opening_hours),
            staff_schedules=staff_schedules,
            appointments=tuple(appointment_blocks),
            blocked_times=tuple(merge_ranges(salon_blocks)),
        )

    def build_range(
        self,
        salon_id: str,
        start_date,
        days: int,
        staff_ids: Sequence[str],
        now: datetime,
    ) -> List[DaySchedule]:
        """Build schedules for ``days`` consecutive dates starting at ``start_date``."""
        start_date = to_date(start_date)
        return [
            self.build(salon_id, start_date.add(days=offset), staff_ids, now)
            for offset in range(days)
        ]

    @staticmethod
    def _net_staff_hours(
        day: date,
        rows: List[WorkingHoursRecord],
        absences: List[StaffAbsenceRecord],
        blocks: List[TimeRange],
    ) -> List[TimeRange]:
        """Working hours of one staff member minus breaks, absences and blocks."""
        hours: List[TimeRange] = []
        for row in rows:
            if not row.applies_to(day):
                continue
            pieces = [row.to_range()]
            break_range = row.break_range()
            if break_range is not None:
                pieces = subtract_ranges(pieces, [break_range])
            hours.extend(pieces)

        hours = merge_ranges(hours)

        for absence in absences:
            if not absence.covers(day):
                continue
            if absence.is_all_day:
                return []
            hours = subtract_ranges(
                hours, [TimeRange(absence.start_minutes, absence.end_minutes)]
            )

        return subtract_ranges(hours, blocks)
