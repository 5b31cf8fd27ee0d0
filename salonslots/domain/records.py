"""
Raw records as supplied by the datastore.

The schedule builder turns these into ``DaySchedule`` values. Minute fields
use the same minute-of-day space as ``TimeRange``; instants are
timezone-aware datetimes.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from .models import TimeRange


@dataclass(frozen=True)
class Salon:
    id: str
    name: str
    timezone: str = "Europe/Zurich"


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    duration_minutes: int
    price: float = 0.0
    online_bookable: bool = True
    is_active: bool = True


@dataclass(frozen=True)
class StaffMember:
    id: str
    display_name: str
    service_ids: Tuple[str, ...] = ()
    is_active: bool = True
    can_book_online: bool = True

    def can_perform(self, service_ids) -> bool:
        return all(service_id in self.service_ids for service_id in service_ids)


@dataclass(frozen=True)
class Customer:
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class OpeningHoursRecord:
    """Weekly opening hours; several rows per weekday are allowed."""
    day_of_week: int  # 0=Sunday, 6=Saturday
    open_minutes: int
    close_minutes: int
    is_closed: bool = False
    is_active: bool = True

    def to_range(self) -> TimeRange:
        return TimeRange(self.open_minutes, self.close_minutes)


@dataclass(frozen=True)
class WorkingHoursRecord:
    """
    Weekly working hours of a staff member.

    The optional break is removed from the range; valid_from/valid_to limit
    the row to a period (None = unbounded).
    """
    staff_id: str
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_minutes: int
    end_minutes: int
    break_start_minutes: Optional[int] = None
    break_end_minutes: Optional[int] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    is_active: bool = True

    def applies_to(self, day: date) -> bool:
        if not self.is_active:
            return False
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_to is not None and day > self.valid_to:
            return False
        return True

    def to_range(self) -> TimeRange:
        return TimeRange(self.start_minutes, self.end_minutes)

    def break_range(self) -> Optional[TimeRange]:
        if self.break_start_minutes is None or self.break_end_minutes is None:
            return None
        return TimeRange(self.break_start_minutes, self.break_end_minutes)


@dataclass(frozen=True)
class StaffAbsenceRecord:
    """Vacation, sick leave and the like; no minutes means the whole day."""
    staff_id: str
    start_date: date
    end_date: date
    start_minutes: Optional[int] = None
    end_minutes: Optional[int] = None
    reason: str = "other"

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def is_all_day(self) -> bool:
        return self.start_minutes is None or self.end_minutes is None


@dataclass(frozen=True)
class BlockedTimeRecord:
    """Ad-hoc closure; salon-wide when staff_id is None."""
    starts_at: datetime
    ends_at: datetime
    staff_id: Optional[str] = None
    block_type: str = "other"
    title: str = ""
