"""
Domain models for minute-of-day ranges, day schedules and slots.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from pendulum import DateTime

from .exceptions import InputError
from .timeutils import MINUTES_PER_DAY, date_key, minutes_to_time, time_to_minutes

VALID_GRANULARITIES = (5, 10, 15, 30, 60)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open range [start, end) of minutes within one day.

    Invariant: 0 <= start < end <= 1440. A range never spans midnight.
    """
    start_minutes: int
    end_minutes: int

    def __post_init__(self):
        if not isinstance(self.start_minutes, int) or not isinstance(self.end_minutes, int):
            raise InputError(
                f"Range bounds must be integers, got {self.start_minutes!r}-{self.end_minutes!r}"
            )
        if not 0 <= self.start_minutes < MINUTES_PER_DAY:
            raise InputError(f"Start {self.start_minutes} is outside the day")
        if not 0 < self.end_minutes <= MINUTES_PER_DAY:
            raise InputError(f"End {self.end_minutes} is outside the day")
        if self.start_minutes >= self.end_minutes:
            raise InputError(
                f"Start time {self.start_minutes} must be before end time {self.end_minutes}"
            )

    @classmethod
    def from_times(cls, start: str, end: str) -> "TimeRange":
        """Build a range from "HH:MM" strings."""
        return cls(time_to_minutes(start), time_to_minutes(end))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end_minutes - self.start_minutes

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not."""
        return self.start_minutes < other.end_minutes and other.start_minutes < self.end_minutes

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies fully within this range."""
        return self.start_minutes <= other.start_minutes and other.end_minutes <= self.end_minutes

    def intersect(self, other: "TimeRange") -> Optional["TimeRange"]:
        """
        Calculate the intersection of two ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeRange(
            max(self.start_minutes, other.start_minutes),
            min(self.end_minutes, other.end_minutes),
        )

    def __str__(self) -> str:
        return f"{minutes_to_time(self.start_minutes)}-{minutes_to_time(self.end_minutes)}"


@dataclass(frozen=True)
class AppointmentBlock:
    """An active appointment occupying a staff member's time on one day."""
    staff_id: str
    start_minutes: int
    duration_minutes: int

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise InputError(f"Appointment duration must be positive, got {self.duration_minutes}")

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    def to_range(self) -> TimeRange:
        return TimeRange(self.start_minutes, min(self.end_minutes, MINUTES_PER_DAY))


@dataclass(frozen=True)
class DaySchedule:
    """
    Everything the slot engine needs to know about one calendar day.

    Built fresh per availability query and discarded afterwards. Staff hours
    are already net of absences; a missing or empty entry means the staff
    member does not work that day.
    """
    date: date
    opening_hours: Tuple[TimeRange, ...] = ()
    staff_schedules: Dict[str, Tuple[TimeRange, ...]] = field(default_factory=dict)
    appointments: Tuple[AppointmentBlock, ...] = ()
    blocked_times: Tuple[TimeRange, ...] = ()

    def staff_ids(self) -> List[str]:
        return list(self.staff_schedules.keys())

    def hours_for(self, staff_id: str) -> Tuple[TimeRange, ...]:
        return tuple(self.staff_schedules.get(staff_id, ()))

    def appointments_for(self, staff_id: str) -> List[TimeRange]:
        """Return the occupied ranges of one staff member."""
        return [
            block.to_range()
            for block in self.appointments
            if block.staff_id == staff_id
        ]


@dataclass(frozen=True)
class AvailableSlot:
    """
    A candidate, not yet committed offer.

    Never stored; it is stale as soon as the underlying schedule changes.
    """
    date: date
    start_minutes: int
    end_minutes: int
    staff_id: str
    datetime: DateTime

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minutes)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minutes)

    @property
    def date_key(self) -> str:
        return date_key(self.date)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def time_range(self) -> TimeRange:
        return TimeRange(self.start_minutes, self.end_minutes)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Wochentag, DD.MM.YYYY | HH:MM – HH:MM Uhr
        """
        weekday_names = {
            0: "Montag",
            1: "Dienstag",
            2: "Mittwoch",
            3: "Donnerstag",
            4: "Freitag",
            5: "Samstag",
            6: "Sonntag"
        }

        weekday = weekday_names[self.date.weekday()]
        date_str = self.date.strftime("%d.%m.%Y")
        time_str = f"{self.start_time} – {self.end_time} Uhr"

        return f"{weekday}, {date_str} | {time_str} ({self.duration_minutes} Min.)"


@dataclass(frozen=True)
class BookingRequest:
    """What the customer asked for; no staff id means any qualified staff."""
    salon_id: str
    service_ids: Tuple[str, ...]
    total_duration_minutes: int
    staff_id: Optional[str] = None


@dataclass(frozen=True)
class BookingRules:
    """
    Per-salon booking policy.

    Attributes:
        min_lead_time_minutes: Minimum notice between now and a bookable slot
        max_booking_horizon_days: How many days ahead slots are offered
        slot_granularity_minutes: Step between candidate start times
        reservation_hold_minutes: How long a soft reservation is held
        auto_confirm_online_bookings: Skip the reserved state on commit
        cancellation_cutoff_hours: Customer cancellations must happen before this
        allow_customer_cancellation: Whether customers may cancel at all
        max_concurrent_reservations_per_customer: Cap on live holds per customer
    """
    min_lead_time_minutes: int = 120
    max_booking_horizon_days: int = 60
    slot_granularity_minutes: int = 15
    reservation_hold_minutes: int = 15
    auto_confirm_online_bookings: bool = False
    cancellation_cutoff_hours: int = 24
    allow_customer_cancellation: bool = True
    max_concurrent_reservations_per_customer: int = 2

    def __post_init__(self):
        if self.min_lead_time_minutes < 0:
            raise InputError("min_lead_time_minutes must not be negative")
        if self.max_booking_horizon_days <= 0:
            raise InputError("max_booking_horizon_days must be greater than zero")
        if self.slot_granularity_minutes not in VALID_GRANULARITIES:
            raise InputError(
                f"slot_granularity_minutes must be one of {VALID_GRANULARITIES}, "
                f"got {self.slot_granularity_minutes}"
            )
        if self.reservation_hold_minutes <= 0:
            raise InputError("reservation_hold_minutes must be greater than zero")
        if self.cancellation_cutoff_hours < 0:
            raise InputError("cancellation_cutoff_hours must not be negative")
