"""
Tests for building day schedules from datastore records.
"""

import pendulum
import pytest

from salonslots.domain.appointments import Appointment, AppointmentStatus
from salonslots.domain.exceptions import UpstreamDataError
from salonslots.domain.models import TimeRange
from salonslots.domain.records import (
    BlockedTimeRecord,
    StaffAbsenceRecord,
    WorkingHoursRecord,
)
from salonslots.services.schedule_builder import DayScheduleBuilder, clip_to_day

SALON_ID = "salon-1"
TZ = "Europe/Zurich"


def _appointment(id, staff_id, start, end, status=AppointmentStatus.CONFIRMED, reserved_until=None):
    return Appointment(
        id=id,
        salon_id=SALON_ID,
        customer_id="cust-1",
        staff_id=staff_id,
        starts_at=pendulum.parse(start, tz=TZ),
        ends_at=pendulum.parse(end, tz=TZ),
        status=status,
        reserved_until=reserved_until,
    )


class BrokenSource:
    """Datastore stub whose reads fail."""

    def get_opening_hours(self, salon_id, day_of_week):
        raise ConnectionError("database unreachable")


class TestClipToDay:
    """Tests for clip_to_day."""

    def test_inside_day(self):
        """Instants inside the day map to local minutes."""
        result = clip_to_day(
            pendulum.datetime(2026, 11, 3, 10, 0, tz=TZ),
            pendulum.datetime(2026, 11, 3, 11, 30, tz=TZ),
            pendulum.date(2026, 11, 3),
            TZ,
        )

        assert result == TimeRange(600, 690)

    def test_spanning_midnight(self):
        """Each day keeps only its own part."""
        start = pendulum.datetime(2026, 11, 3, 23, 0, tz=TZ)
        end = pendulum.datetime(2026, 11, 4, 1, 0, tz=TZ)

        assert clip_to_day(start, end, pendulum.date(2026, 11, 3), TZ) == TimeRange(1380, 1440)
        assert clip_to_day(start, end, pendulum.date(2026, 11, 4), TZ) == TimeRange(0, 60)
        assert clip_to_day(start, end, pendulum.date(2026, 11, 5), TZ) is None


class TestDayScheduleBuilder:
    """Tests for DayScheduleBuilder."""

    def test_weekday_rows_and_break(self, store, tuesday, now):
        """Tuesday rows are picked; the lunch break is cut out of Alice's hours."""
        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, tuesday, ["alice", "bob"], now)

        assert schedule.date == tuesday
        assert schedule.opening_hours == (TimeRange(540, 1080),)
        assert schedule.hours_for("alice") == (TimeRange(540, 720), TimeRange(780, 1020))
        assert schedule.hours_for("bob") == (TimeRange(600, 1080),)

    def test_sunday_is_closed(self, store, now):
        """Closed rows yield no opening hours."""
        sunday = pendulum.date(2026, 11, 8)

        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, sunday, ["alice", "bob"], now)

        assert schedule.opening_hours == ()
        assert schedule.hours_for("alice") == ()

    def test_all_day_absence(self, store, tuesday, now):
        """An all-day absence removes the staff member's hours."""
        store.add_absence(StaffAbsenceRecord("alice", tuesday, tuesday.add(days=2), reason="vacation"))

        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, tuesday, ["alice", "bob"], now)

        assert schedule.hours_for("alice") == ()
        assert schedule.hours_for("bob") == (TimeRange(600, 1080),)

    def test_partial_absence(self, store, tuesday, now):
        """A partial absence is subtracted like a break."""
        store.add_absence(StaffAbsenceRecord("alice", tuesday, tuesday, 14 * 60, 16 * 60))

        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, tuesday, ["alice"], now)

        assert schedule.hours_for("alice") == (
            TimeRange(540, 720), TimeRange(780, 840), TimeRange(960, 1020),
        )

    def test_validity_window(self, store, tuesday, now):
        """Rows outside their validity window are ignored."""
        store.add_working_hours(
            WorkingHoursRecord("carla", 2, 600, 900, valid_from=tuesday.add(days=7))
        )
        builder = DayScheduleBuilder(store, TZ)

        assert builder.build(SALON_ID, tuesday, ["carla"], now).hours_for("carla") == ()
        assert builder.build(
            SALON_ID, tuesday.add(days=7), ["carla"], now
        ).hours_for("carla") == (TimeRange(600, 900),)

    def test_blocked_times(self, store, tuesday, now):
        """Salon blocks go to blocked_times; staff blocks only cut that staff member's hours."""
        store.add_blocked_time(SALON_ID, BlockedTimeRecord(
            pendulum.datetime(2026, 11, 3, 16, 0, tz=TZ),
            pendulum.datetime(2026, 11, 3, 18, 0, tz=TZ),
            block_type="event",
        ))
        store.add_blocked_time(SALON_ID, BlockedTimeRecord(
            pendulum.datetime(2026, 11, 3, 10, 0, tz=TZ),
            pendulum.datetime(2026, 11, 3, 11, 0, tz=TZ),
            staff_id="bob",
            block_type="meeting",
        ))

        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, tuesday, ["alice", "bob"], now)

        assert schedule.blocked_times == (TimeRange(960, 1080),)
        assert schedule.hours_for("bob") == (TimeRange(660, 1080),)
        assert schedule.hours_for("alice") == (TimeRange(540, 720), TimeRange(780, 1020))

    def test_appointments_respect_holds(self, store, tuesday, now):
        """Expired holds and cancelled appointments do not occupy time."""
        store.add_appointment(_appointment("a1", "alice", "2026-11-03 09:00", "2026-11-03 09:30"))
        store.add_appointment(_appointment(
            "a2", "alice", "2026-11-03 10:00", "2026-11-03 10:30",
            status=AppointmentStatus.RESERVED, reserved_until=now.add(minutes=10),
        ))
        store.add_appointment(_appointment(
            "a3", "alice", "2026-11-03 11:00", "2026-11-03 11:30",
            status=AppointmentStatus.RESERVED, reserved_until=now.subtract(minutes=1),
        ))
        store.add_appointment(_appointment(
            "a4", "alice", "2026-11-03 14:00", "2026-11-03 14:30",
            status=AppointmentStatus.CANCELLED,
        ))

        schedule = DayScheduleBuilder(store, TZ).build(SALON_ID, tuesday, ["alice"], now)

        assert schedule.appointments_for("alice") == [TimeRange(540, 570), TimeRange(600, 630)]

    def test_overnight_appointment_is_clipped(self, store, tuesday, now):
        """The part after midnight lands on the next day's schedule."""
        store.add_appointment(_appointment("a1", "bob", "2026-11-03 23:00", "2026-11-04 01:00"))
        builder = DayScheduleBuilder(store, TZ)

        assert builder.build(SALON_ID, tuesday, ["bob"], now).appointments_for("bob") == [
            TimeRange(1380, 1440)
        ]
        assert builder.build(SALON_ID, tuesday.add(days=1), ["bob"], now).appointments_for("bob") == [
            TimeRange(0, 60)
        ]

    def test_build_range(self, store, tuesday, now):
        """Consecutive days are built in order."""
        schedules = DayScheduleBuilder(store, TZ).build_range(SALON_ID, tuesday, 3, ["alice"], now)

        assert [s.date for s in schedules] == [tuesday, tuesday.add(days=1), tuesday.add(days=2)]

    def test_upstream_failure_is_wrapped(self, tuesday, now):
        """Datastore failures surface as UpstreamDataError."""
        builder = DayScheduleBuilder(BrokenSource(), TZ)

        with pytest.raises(UpstreamDataError, match="database unreachable"):
            builder.build(SALON_ID, tuesday, ["alice"], now)
