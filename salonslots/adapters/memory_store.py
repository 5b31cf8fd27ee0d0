"""
In-memory datastore for the booking service.

Used by the CLI and the tests instead of a database. It loads salon data
from a JSON file and enforces the same guarantees a transactional database
would: exclusive write scopes per (staff member, date), all-or-nothing
commits and an overlap check on commit that plays the role of an exclusion
constraint.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pendulum

from ..domain.appointments import Appointment, AppointmentStatus
from ..domain.exceptions import (
    ConcurrencyConflictError,
    InputError,
    NotFoundError,
    SlotEngineError,
    UpstreamDataError,
)
from ..domain.models import BookingRules
from ..domain.records import (
    BlockedTimeRecord,
    Customer,
    OpeningHoursRecord,
    Salon,
    Service,
    StaffAbsenceRecord,
    StaffMember,
    WorkingHoursRecord,
)
from ..domain.timeutils import date_key, time_to_minutes, to_date

logger = logging.getLogger(__name__)

SAMPLE_DATA_FILE = Path(__file__).parent / "sample_salon_data.json"


class UnitOfWork:
    """Writes staged inside ``InMemoryBookingStore.transaction``."""

    def __init__(self, staff_id: str, day: date, now: datetime) -> None:
        self.staff_id = staff_id
        self.day = day
        self.now = now
        self.customers: List[Customer] = []
        self.appointments: List[Appointment] = []
        self.reservation_caps: Dict[str, int] = {}

    def insert_customer(self, customer: Customer) -> None:
        self.customers.append(customer)

    def insert_appointment(self, appointment: Appointment) -> None:
        self.appointments.append(appointment)

    def limit_live_reservations(self, customer_id: str, cap: int) -> None:
        self.reservation_caps[customer_id] = cap


class InMemoryBookingStore:
    """
    Thread-safe in-memory implementation of ``BookingStoreProtocol``.

    Reads return copies, so callers never observe or cause half-applied
    state.
    """

    def __init__(self, lock_timeout: float = 10.0) -> None:
        """
        Initialize an empty store.

        Args:
            lock_timeout: Seconds to wait for a (staff, date) write scope
                before giving up with ConcurrencyConflictError
        """
        self.lock_timeout = lock_timeout
        self._data_lock = threading.RLock()
        self._scope_guard = threading.Lock()
        self._scope_locks: Dict[Tuple[str, str], threading.Lock] = {}

        self._salons: Dict[str, Salon] = {}
        self._rules: Dict[str, BookingRules] = {}
        self._services: Dict[str, Service] = {}
        self._staff: Dict[str, List[StaffMember]] = {}
        self._customers: Dict[str, Customer] = {}
        self._opening_hours: Dict[str, List[OpeningHoursRecord]] = {}
        self._working_hours: List[WorkingHoursRecord] = []
        self._absences: List[StaffAbsenceRecord] = []
        self._blocked_times: Dict[str, List[BlockedTimeRecord]] = {}
        self._appointments: Dict[str, Appointment] = {}

    # ── Seeding ──────────────────────────────────────────────────────────

    def add_salon(self, salon: Salon, rules: Optional[BookingRules] = None) -> None:
        with self._data_lock:
            self._salons[salon.id] = salon
            if rules is not None:
                self._rules[salon.id] = rules

    def add_service(self, service: Service) -> None:
        with self._data_lock:
            self._services[service.id] = service

    def add_staff(self, salon_id: str, member: StaffMember) -> None:
        with self._data_lock:
            self._staff.setdefault(salon_id, []).append(member)

    def add_customer(self, customer: Customer) -> None:
        with self._data_lock:
            self._customers[customer.id] = customer

    def add_opening_hours(self, salon_id: str, record: OpeningHoursRecord) -> None:
        with self._data_lock:
            self._opening_hours.setdefault(salon_id, []).append(record)

    def add_working_hours(self, record: WorkingHoursRecord) -> None:
        with self._data_lock:
            self._working_hours.append(record)

    def add_absence(self, record: StaffAbsenceRecord) -> None:
        with self._data_lock:
            self._absences.append(record)

    def add_blocked_time(self, salon_id: str, record: BlockedTimeRecord) -> None:
        with self._data_lock:
            self._blocked_times.setdefault(salon_id, []).append(record)

    def add_appointment(self, appointment: Appointment) -> None:
        """Insert an appointment directly, bypassing write scopes and checks."""
        with self._data_lock:
            self._appointments[appointment.id] = replace(appointment)

    # ── Schedule reads ───────────────────────────────────────────────────

    def get_opening_hours(self, salon_id: str, day_of_week: int) -> List[OpeningHoursRecord]:
        with self._data_lock:
            return [
                record for record in self._opening_hours.get(salon_id, [])
                if record.day_of_week == day_of_week
            ]

    def get_working_hours(
        self, staff_ids: Sequence[str], day_of_week: int
    ) -> List[WorkingHoursRecord]:
        with self._data_lock:
            return [
                record for record in self._working_hours
                if record.staff_id in staff_ids and record.day_of_week == day_of_week
            ]

    def get_absences(self, staff_ids: Sequence[str], day: date) -> List[StaffAbsenceRecord]:
        with self._data_lock:
            return [
                record for record in self._absences
                if record.staff_id in staff_ids and record.covers(day)
            ]

    def get_appointments(
        self,
        salon_id: str,
        staff_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> List[Appointment]:
        with self._data_lock:
            return [
                replace(appointment)
                for appointment in self._appointments.values()
                if appointment.salon_id == salon_id
                and appointment.staff_id in staff_ids
                and appointment.starts_at < end
                and appointment.ends_at > start
            ]

    def get_blocked_times(
        self, salon_id: str, start: datetime, end: datetime
    ) -> List[BlockedTimeRecord]:
        with self._data_lock:
            return [
                record for record in self._blocked_times.get(salon_id, [])
                if record.starts_at < end and record.ends_at > start
            ]

    # ── Booking reads ────────────────────────────────────────────────────

    def get_salon(self, salon_id: str) -> Optional[Salon]:
        with self._data_lock:
            return self._salons.get(salon_id)

    def get_booking_rules(self, salon_id: str) -> Optional[BookingRules]:
        with self._data_lock:
            return self._rules.get(salon_id)

    def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        with self._data_lock:
            return [self._services[sid] for sid in service_ids if sid in self._services]

    def get_staff(self, salon_id: str) -> List[StaffMember]:
        with self._data_lock:
            return list(self._staff.get(salon_id, []))

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        with self._data_lock:
            return self._customers.get(customer_id)

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        with self._data_lock:
            appointment = self._appointments.get(appointment_id)
            return replace(appointment) if appointment is not None else None

    def list_appointments(self) -> List[Appointment]:
        with self._data_lock:
            return [replace(appointment) for appointment in self._appointments.values()]

    def count_live_reservations(self, customer_id: str, now: datetime) -> int:
        with self._data_lock:
            return sum(
                1 for appointment in self._appointments.values()
                if appointment.customer_id == customer_id
                and appointment.status is AppointmentStatus.RESERVED
                and not appointment.hold_expired(now)
            )

    def find_expired_reservations(self, now: datetime) -> List[str]:
        with self._data_lock:
            return [
                appointment.id for appointment in self._appointments.values()
                if appointment.hold_expired(now)
            ]

    # ── Writes ───────────────────────────────────────────────────────────

    def compare_and_set_status(
        self,
        appointment_id: str,
        target: AppointmentStatus,
        condition: Callable[[Appointment], bool],
        reason: Optional[str] = None,
    ) -> Optional[Appointment]:
        """
        Atomically move an appointment to ``target`` if ``condition`` holds.

        Raises:
            NotFoundError: If the appointment does not exist
            AppointmentStateError: If the lifecycle forbids the transition
        """
        with self._data_lock:
            appointment = self._appointments.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Unknown appointment: {appointment_id}")
            if not condition(appointment):
                return None

            updated = replace(appointment)
            updated.transition_to(target)
            if reason is not None:
                updated.cancellation_reason = reason
            self._appointments[appointment_id] = updated
            return replace(updated)

    @contextmanager
    def transaction(self, staff_id: str, day, now: datetime) -> Iterator[UnitOfWork]:
        """
        Exclusive write scope for one staff member and date.

        Staged writes are applied when the block exits normally and dropped
        when it raises.

        Raises:
            ConcurrencyConflictError: If the scope cannot be acquired in time,
                or a staged appointment overlaps one committed meanwhile
            InputError: If a capped customer would hold too many reservations
        """
        day = to_date(day)
        lock = self._scope_lock(staff_id, day)
        if not lock.acquire(timeout=self.lock_timeout):
            raise ConcurrencyConflictError(
                f"Timed out waiting for the booking scope of {staff_id} on {date_key(day)}"
            )

        try:
            unit_of_work = UnitOfWork(staff_id, day, now)
            yield unit_of_work
            self._commit(unit_of_work)
        finally:
            lock.release()

    def _scope_lock(self, staff_id: str, day: date) -> threading.Lock:
        key = (staff_id, date_key(day))
        with self._scope_guard:
            return self._scope_locks.setdefault(key, threading.Lock())

    def _commit(self, unit_of_work: UnitOfWork) -> None:
        with self._data_lock:
            for appointment in unit_of_work.appointments:
                if appointment.status not in (
                    AppointmentStatus.RESERVED, AppointmentStatus.CONFIRMED
                ):
                    continue
                conflict = self._find_overlap(appointment, unit_of_work.now)
                if conflict is not None:
                    raise ConcurrencyConflictError(
                        f"Appointment overlaps {conflict.id} of staff {appointment.staff_id}"
                    )

            for customer_id, cap in unit_of_work.reservation_caps.items():
                live = self.count_live_reservations(customer_id, unit_of_work.now)
                staged = sum(
                    1 for appointment in unit_of_work.appointments
                    if appointment.customer_id == customer_id
                    and appointment.status is AppointmentStatus.RESERVED
                )
                if live + staged > cap:
                    raise InputError(f"Customer already holds {live} open reservation(s)")

            for customer in unit_of_work.customers:
                self._customers[customer.id] = customer
            for appointment in unit_of_work.appointments:
                self._appointments[appointment.id] = replace(appointment)

        logger.debug(
            "Committed %d customer(s) and %d appointment(s) for %s on %s",
            len(unit_of_work.customers),
            len(unit_of_work.appointments),
            unit_of_work.staff_id,
            date_key(unit_of_work.day),
        )

    def _find_overlap(self, candidate: Appointment, now: datetime) -> Optional[Appointment]:
        for existing in self._appointments.values():
            if (
                existing.staff_id == candidate.staff_id
                and existing.id != candidate.id
                and existing.occupies(now)
                and existing.starts_at < candidate.ends_at
                and candidate.starts_at < existing.ends_at
            ):
                return existing
        return None

    # ── Loading ──────────────────────────────────────────────────────────

    @classmethod
    def from_json(cls, data_file: Path = SAMPLE_DATA_FILE, **kwargs) -> "InMemoryBookingStore":
        """
        Load a store from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            UpstreamDataError: If the content cannot be parsed
        """
        if not data_file.exists():
            raise FileNotFoundError(f"Salon data file not found: {data_file}")

        with open(data_file, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise UpstreamDataError(f"Invalid JSON in {data_file}: {exc}") from exc

        return cls.from_dict(data, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs) -> "InMemoryBookingStore":
        """
        Build a store from plain data.

        Times of day are "HH:MM" strings, dates "YYYY-MM-DD" and instants
        ISO 8601 strings.
        """
        store = cls(**kwargs)

        try:
            for salon in data.get("salons", []):
                rules = salon.get("booking_rules")
                store.add_salon(
                    Salon(id=salon["id"], name=salon["name"], timezone=salon.get("timezone", "Europe/Zurich")),
                    BookingRules(**rules) if rules else None,
                )

            for service in data.get("services", []):
                store.add_service(Service(**service))

            for member in data.get("staff", []):
                member = dict(member)
                salon_id = member.pop("salon_id")
                member["service_ids"] = tuple(member.get("service_ids", ()))
                store.add_staff(salon_id, StaffMember(**member))

            for customer in data.get("customers", []):
                store.add_customer(Customer(**customer))

            for row in data.get("opening_hours", []):
                store.add_opening_hours(
                    row["salon_id"],
                    OpeningHoursRecord(
                        day_of_week=row["day_of_week"],
                        open_minutes=time_to_minutes(row["open"]),
                        close_minutes=time_to_minutes(row["close"]),
                        is_closed=row.get("is_closed", False),
                    ),
                )

            for row in data.get("working_hours", []):
                store.add_working_hours(
                    WorkingHoursRecord(
                        staff_id=row["staff_id"],
                        day_of_week=row["day_of_week"],
                        start_minutes=time_to_minutes(row["start"]),
                        end_minutes=time_to_minutes(row["end"]),
                        break_start_minutes=_optional_minutes(row.get("break_start")),
                        break_end_minutes=_optional_minutes(row.get("break_end")),
                        valid_from=_optional_date(row.get("valid_from")),
                        valid_to=_optional_date(row.get("valid_to")),
                    )
                )

            for row in data.get("absences", []):
                store.add_absence(
                    StaffAbsenceRecord(
                        staff_id=row["staff_id"],
                        start_date=to_date(row["start_date"]),
                        end_date=to_date(row["end_date"]),
                        start_minutes=_optional_minutes(row.get("start")),
                        end_minutes=_optional_minutes(row.get("end")),
                        reason=row.get("reason", "other"),
                    )
                )

            for row in data.get("blocked_times", []):
                store.add_blocked_time(
                    row["salon_id"],
                    BlockedTimeRecord(
                        starts_at=pendulum.parse(row["starts_at"]),
                        ends_at=pendulum.parse(row["ends_at"]),
                        staff_id=row.get("staff_id"),
                        block_type=row.get("block_type", "other"),
                        title=row.get("title", ""),
                    ),
                )

            for row in data.get("appointments", []):
                reserved_until = row.get("reserved_until")
                store.add_appointment(
                    Appointment(
                        id=row["id"],
                        salon_id=row["salon_id"],
                        customer_id=row["customer_id"],
                        staff_id=row["staff_id"],
                        starts_at=pendulum.parse(row["starts_at"]),
                        ends_at=pendulum.parse(row["ends_at"]),
                        status=AppointmentStatus(row.get("status", "confirmed")),
                        reserved_until=pendulum.parse(reserved_until) if reserved_until else None,
                        service_ids=tuple(row.get("service_ids", ())),
                    )
                )
        except (KeyError, TypeError, ValueError, SlotEngineError) as exc:
            raise UpstreamDataError(f"Invalid salon data: {exc}") from exc

        return store


def _optional_minutes(value: Optional[str]) -> Optional[int]:
    return time_to_minutes(value) if value else None


def _optional_date(value: Optional[str]):
    return to_date(value) if value else None
