"""
Tests for domain models and time conversions.
"""

import pendulum
import pytest

from salonslots.domain.exceptions import InputError
from salonslots.domain.models import (
    AppointmentBlock,
    AvailableSlot,
    BookingRules,
    DaySchedule,
    TimeRange,
)
from salonslots.domain.timeutils import (
    datetime_to_minutes,
    day_bounds,
    day_of_week,
    local_today,
    minutes_to_datetime,
    minutes_to_time,
    parse_date,
    time_to_minutes,
)

TZ = "Europe/Zurich"


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        tr = TimeRange(9 * 60, 17 * 60)

        assert tr.start_minutes == 540
        assert tr.end_minutes == 1020
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Start after end is rejected with an InputError (a ValueError)."""
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(17 * 60, 9 * 60)

    def test_empty_range_raises_error(self):
        """Zero-length ranges are not allowed."""
        with pytest.raises(InputError):
            TimeRange(600, 600)

    def test_end_of_day_is_allowed(self):
        """A range may end exactly at midnight (1440)."""
        assert TimeRange(1380, 1440).duration_minutes() == 60

    @pytest.mark.parametrize("start,end", [(-15, 60), (0, 1445), (1440, 1450)])
    def test_out_of_day_bounds_raise(self, start, end):
        """Ranges never leave the day."""
        with pytest.raises(InputError):
            TimeRange(start, end)

    def test_overlaps(self):
        """Test overlap detection; touching ranges do not overlap."""
        tr1 = TimeRange.from_times("09:00", "12:00")
        tr2 = TimeRange.from_times("11:00", "14:00")
        tr3 = TimeRange.from_times("14:00", "17:00")

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr2.overlaps(tr3)
        assert not tr1.overlaps(tr3)

    def test_intersect(self):
        """Test intersection calculation."""
        tr1 = TimeRange.from_times("09:00", "12:00")
        tr2 = TimeRange.from_times("11:00", "14:00")

        assert tr1.intersect(tr2) == TimeRange.from_times("11:00", "12:00")
        assert tr1.intersect(TimeRange.from_times("12:00", "13:00")) is None

    def test_contains(self):
        """Containment includes equal bounds."""
        outer = TimeRange.from_times("09:00", "12:00")

        assert outer.contains(TimeRange.from_times("09:00", "12:00"))
        assert outer.contains(TimeRange.from_times("10:00", "11:00"))
        assert not outer.contains(TimeRange.from_times("11:30", "12:30"))

    def test_str(self):
        """Ranges print as HH:MM-HH:MM."""
        assert str(TimeRange(555, 1440)) == "09:15-24:00"


class TestAppointmentBlock:
    """Tests for AppointmentBlock."""

    def test_end_minutes(self):
        """End is start plus duration."""
        block = AppointmentBlock("alice", 600, 45)

        assert block.end_minutes == 645
        assert block.to_range() == TimeRange(600, 645)

    def test_non_positive_duration_raises(self):
        """Appointments need a positive duration."""
        with pytest.raises(InputError):
            AppointmentBlock("alice", 600, 0)


class TestDaySchedule:
    """Tests for DaySchedule lookups."""

    def test_missing_staff_has_no_hours(self):
        """A staff member without an entry does not work that day."""
        schedule = DaySchedule(
            date=pendulum.date(2026, 11, 3),
            staff_schedules={"alice": (TimeRange(540, 1020),)},
        )

        assert schedule.staff_ids() == ["alice"]
        assert schedule.hours_for("bob") == ()

    def test_appointments_for_filters_by_staff(self):
        """Only the staff member's own appointments are returned."""
        schedule = DaySchedule(
            date=pendulum.date(2026, 11, 3),
            appointments=(
                AppointmentBlock("alice", 600, 30),
                AppointmentBlock("bob", 660, 30),
            ),
        )

        assert schedule.appointments_for("alice") == [TimeRange(600, 630)]


class TestAvailableSlot:
    """Tests for AvailableSlot."""

    def test_format_display(self):
        """Slots render in German with weekday and time span."""
        day = pendulum.date(2026, 11, 3)
        slot = AvailableSlot(
            date=day,
            start_minutes=600,
            end_minutes=630,
            staff_id="alice",
            datetime=minutes_to_datetime(day, 600, TZ),
        )

        assert slot.format_display() == "Dienstag, 03.11.2026 | 10:00 – 10:30 Uhr (30 Min.)"
        assert slot.date_key == "2026-11-03"
        assert slot.duration_minutes == 30


class TestBookingRules:
    """Tests for BookingRules validation."""

    def test_defaults(self):
        """Defaults match the usual salon policy."""
        rules = BookingRules()

        assert rules.min_lead_time_minutes == 120
        assert rules.max_booking_horizon_days == 60
        assert rules.slot_granularity_minutes == 15
        assert rules.reservation_hold_minutes == 15
        assert rules.auto_confirm_online_bookings is False

    def test_invalid_granularity(self):
        """Only 5, 10, 15, 30 and 60 minute grids are allowed."""
        with pytest.raises(InputError, match="slot_granularity_minutes"):
            BookingRules(slot_granularity_minutes=7)

    def test_invalid_horizon(self):
        """The horizon must be at least one day."""
        with pytest.raises(InputError):
            BookingRules(max_booking_horizon_days=0)


class TestTimeConversions:
    """Tests for minute-of-day conversions."""

    def test_time_to_minutes(self):
        """HH:MM parses to minutes since midnight, 24:00 included."""
        assert time_to_minutes("09:15") == 555
        assert time_to_minutes("24:00") == 1440
        assert minutes_to_time(555) == "09:15"

    @pytest.mark.parametrize("value", ["25:00", "10:60", "ten", "", "24:30"])
    def test_invalid_times(self, value):
        """Malformed or out-of-range times raise InputError."""
        with pytest.raises(InputError):
            time_to_minutes(value)

    def test_day_of_week_starts_on_sunday(self):
        """Sunday is 0 and Saturday 6."""
        assert day_of_week(pendulum.date(2026, 11, 1)) == 0
        assert day_of_week(pendulum.date(2026, 11, 3)) == 2
        assert day_of_week(pendulum.date(2026, 11, 7)) == 6

    def test_parse_date(self):
        """Strict YYYY-MM-DD parsing."""
        assert parse_date("2026-11-03") == pendulum.date(2026, 11, 3)

        with pytest.raises(InputError):
            parse_date("2026-13-01")

    def test_end_of_day_maps_to_next_midnight(self):
        """Minute 1440 is midnight of the following day."""
        value = minutes_to_datetime(pendulum.date(2026, 11, 3), 1440, TZ)

        assert value == pendulum.datetime(2026, 11, 4, 0, 0, tz=TZ)

    def test_wall_clock_on_dst_day(self):
        """On the spring-forward day 10:00 is still 10:00 local time."""
        day = pendulum.date(2026, 3, 29)
        value = minutes_to_datetime(day, 600, TZ)

        assert value.hour == 10
        assert value.offset == 2 * 3600

        start, end = day_bounds(day, TZ)
        assert end.timestamp() - start.timestamp() == 23 * 3600

    def test_datetime_to_minutes_uses_salon_timezone(self):
        """UTC instants convert to local minute-of-day."""
        instant = pendulum.datetime(2026, 11, 3, 9, 30, tz="UTC")

        assert datetime_to_minutes(instant, TZ) == 630

    def test_local_today(self):
        """Late UTC evening is already the next day in Zurich."""
        instant = pendulum.datetime(2026, 11, 2, 23, 30, tz="UTC")

        assert local_today(instant, TZ) == pendulum.date(2026, 11, 3)
