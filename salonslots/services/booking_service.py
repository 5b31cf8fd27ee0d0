"""
Application services for offering and committing appointment slots.

The service coordinates reading schedule data via a datastore adapter and
delegates the actual availability calculation to the domain-level
``SlotAggregator``. Committing a slot re-validates it inside a write scope
held per (staff member, date), so two customers racing for the same slot
end with exactly one booking and one ``SlotUnavailableError``.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Union

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..domain.aggregator import SlotAggregator
from ..domain.appointments import Appointment, AppointmentStatus
from ..domain.exceptions import (
    AppointmentStateError,
    ConcurrencyConflictError,
    InputError,
    NotFoundError,
    SlotUnavailableError,
)
from ..domain.models import AvailableSlot, BookingRequest, BookingRules, DaySchedule
from ..domain.records import Customer, Salon, Service, StaffMember
from ..domain.slot_generator import SlotGenerator
from ..domain.timeutils import MINUTES_PER_DAY, local_today, minutes_to_datetime, to_date
from ..domain.validator import validate_slot
from .schedule_builder import DayScheduleBuilder, ScheduleSourceProtocol

logger = logging.getLogger(__name__)


class UnitOfWorkProtocol(Protocol):
    """Writes staged inside a commit scope; applied together or not at all."""

    def insert_customer(self, customer: Customer) -> None:
        """Stage a new customer row."""

    def insert_appointment(self, appointment: Appointment) -> None:
        """Stage a new appointment row."""

    def limit_live_reservations(self, customer_id: str, cap: int) -> None:
        """Refuse the commit if the customer would end up above ``cap`` live reservations."""


class BookingStoreProtocol(ScheduleSourceProtocol, Protocol):
    """Protocol describing the datastore behaviour needed by the service."""

    def get_salon(self, salon_id: str) -> Optional[Salon]:
        """Return the salon or None."""

    def get_booking_rules(self, salon_id: str) -> Optional[BookingRules]:
        """Return the salon's rules, None to fall back to defaults."""

    def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        """Return the known services among the ids."""

    def get_staff(self, salon_id: str) -> List[StaffMember]:
        """Return all staff members of the salon."""

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Return the customer or None."""

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Return a copy of the appointment or None."""

    def count_live_reservations(self, customer_id: str, now: datetime) -> int:
        """Count the customer's reservations whose hold has not elapsed."""

    def find_expired_reservations(self, now: datetime) -> List[str]:
        """Return ids of reservations whose hold elapsed before ``now``."""

    def compare_and_set_status(
        self,
        appointment_id: str,
        target: AppointmentStatus,
        condition: Callable[[Appointment], bool],
        reason: Optional[str] = None,
    ) -> Optional[Appointment]:
        """
        Atomically move an appointment to ``target`` if ``condition`` holds.

        Returns the updated appointment, or None when the condition failed.
        """

    def transaction(
        self, staff_id: str, day: date, now: datetime
    ) -> AbstractContextManager[UnitOfWorkProtocol]:
        """Exclusive write scope for one staff member and date."""


class CustomerDetails(BaseModel):
    """Either an existing customer id or the details of a new customer."""
    customer_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    accepted_terms: bool = False
    accepted_privacy: bool = False

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        """Require a plausible e-mail address."""
        if value is not None and "@" not in value:
            raise ValueError(f"Invalid e-mail address: {value}")
        return value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        """Require at least seven characters for a phone number."""
        if value is not None and len(value.strip()) < 7:
            raise ValueError("Phone number is too short")
        return value

    @model_validator(mode="after")
    def validate_identity(self) -> "CustomerDetails":
        """Ensure consent was given and the customer can be identified."""
        if not (self.accepted_terms and self.accepted_privacy):
            raise ValueError("Terms and privacy policy must be accepted")
        if self.customer_id:
            return self
        if not all((self.first_name, self.last_name, self.email, self.phone)):
            raise ValueError(
                "New customers need first_name, last_name, email and phone"
            )
        return self


class BookingSubmission(BaseModel):
    """A chosen slot plus customer information."""
    salon_id: str
    service_ids: List[str] = Field(min_length=1)
    staff_id: str
    day: date
    start_minutes: int = Field(ge=0, lt=MINUTES_PER_DAY)
    customer: CustomerDetails

    @classmethod
    def for_slot(cls, slot: AvailableSlot, **values) -> "BookingSubmission":
        """Build a submission for a slot previously returned by the service."""
        return cls(
            day=slot.date,
            start_minutes=slot.start_minutes,
            staff_id=slot.staff_id,
            **values,
        )


@dataclass(frozen=True)
class BookingResult:
    appointment_id: str
    confirmation_number: str
    status: AppointmentStatus
    starts_at: DateTime
    ends_at: DateTime
    reserved_until: Optional[DateTime] = None


@dataclass(frozen=True)
class _SlotSearch:
    aggregator: SlotAggregator
    schedules: List[DaySchedule]
    request: BookingRequest
    rules: BookingRules
    now: DateTime


class BookingService:
    """
    Offers slots and commits bookings against a datastore.

    Dependency inversion toward a protocol makes it easy to plug in a real
    database adapter or the in-memory store used in tests.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        default_rules: Optional[BookingRules] = None,
    ) -> None:
        self._store = store
        self._default_rules = default_rules or BookingRules()

    # ── Read path ────────────────────────────────────────────────────────

    def get_available_slots(
        self,
        salon_id: str,
        service_ids: Sequence[str],
        staff_id: Optional[str] = None,
        start_date=None,
        days_to_fetch: int = 14,
        now: Optional[datetime] = None,
    ) -> Dict[str, List[AvailableSlot]]:
        """
        Calculate bookable slots grouped by "YYYY-MM-DD".

        Args:
            salon_id: Salon to book at
            service_ids: Services booked together; their durations add up
            staff_id: Preferred staff member, None for any qualified staff
            start_date: First day to look at, defaults to today (salon time)
            days_to_fetch: Number of days, clamped to the booking horizon
            now: Reference instant, defaults to the current time

        Raises:
            InputError: On unknown ids or malformed arguments
            UpstreamDataError: If schedule data cannot be loaded
        """
        search = self._prepare_search(salon_id, service_ids, staff_id, start_date, days_to_fetch, now)
        if search is None:
            return {}
        return search.aggregator.aggregate(search.schedules, search.request, search.rules, search.now)

    def find_next_available_slot(
        self,
        salon_id: str,
        service_ids: Sequence[str],
        staff_id: Optional[str] = None,
        start_date=None,
        days_to_fetch: int = 14,
        now: Optional[datetime] = None,
    ) -> Optional[AvailableSlot]:
        """Return the earliest bookable slot, or None."""
        search = self._prepare_search(salon_id, service_ids, staff_id, start_date, days_to_fetch, now)
        if search is None:
            return None
        return search.aggregator.find_next_available_slot(
            search.schedules, search.request, search.rules, search.now
        )

    def _prepare_search(
        self,
        salon_id: str,
        service_ids: Sequence[str],
        staff_id: Optional[str],
        start_date,
        days_to_fetch: int,
        now: Optional[datetime],
    ) -> Optional[_SlotSearch]:
        """Resolve the inputs of a slot search; None when nothing can be offered."""
        if days_to_fetch <= 0:
            raise InputError(f"days_to_fetch must be greater than zero, got {days_to_fetch}")

        salon = self._get_salon(salon_id)
        now = self._now(now, salon.timezone)
        rules = self._rules_for(salon.id)
        services = self._get_services(service_ids)
        roster = self._roster(salon.id, service_ids, staff_id)

        if not roster:
            logger.info("No bookable staff for services %s at %s", list(service_ids), salon.id)
            return None

        today = local_today(now, salon.timezone)
        first_day = to_date(start_date) if start_date is not None else today
        last_day = today.add(days=rules.max_booking_horizon_days)
        days = min(days_to_fetch, last_day.toordinal() - first_day.toordinal() + 1)
        if days <= 0:
            return None

        request = BookingRequest(
            salon_id=salon.id,
            service_ids=tuple(service_ids),
            total_duration_minutes=sum(service.duration_minutes for service in services),
            staff_id=staff_id,
        )

        builder = DayScheduleBuilder(self._store, salon.timezone)
        return _SlotSearch(
            aggregator=SlotAggregator(SlotGenerator(salon.timezone)),
            schedules=builder.build_range(salon.id, first_day, days, roster, now),
            request=request,
            rules=rules,
            now=now,
        )

    # ── Commit path ──────────────────────────────────────────────────────

    def create_booking(
        self,
        submission: Union[BookingSubmission, dict],
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Commit a chosen slot.

        The slot is re-validated against freshly read data while the
        (staff, date) write scope is held. Nothing is written when
        validation fails.

        Raises:
            InputError: On malformed submissions or unknown ids
            SlotUnavailableError: If the slot was taken in the meantime
            ConcurrencyConflictError: If the commit lost a race in the store
        """
        submission = self._coerce_submission(submission)
        salon = self._get_salon(submission.salon_id)
        now = self._now(now, salon.timezone)
        rules = self._rules_for(salon.id)
        services = self._get_services(submission.service_ids)
        staff_id = self._roster(salon.id, submission.service_ids, submission.staff_id)[0]

        duration = sum(service.duration_minutes for service in services)
        end_minutes = submission.start_minutes + duration
        if end_minutes > MINUTES_PER_DAY:
            raise InputError("Appointment would run past midnight")

        day = to_date(submission.day)
        slot = AvailableSlot(
            date=day,
            start_minutes=submission.start_minutes,
            end_minutes=end_minutes,
            staff_id=staff_id,
            datetime=minutes_to_datetime(day, submission.start_minutes, salon.timezone),
        )

        if slot.datetime < now.add(minutes=rules.min_lead_time_minutes):
            raise SlotUnavailableError(
                f"Slot {slot.date_key} {slot.start_time} is no longer bookable"
            )

        customer_id = self._check_customer(submission.customer, rules, now)
        builder = DayScheduleBuilder(self._store, salon.timezone)

        try:
            with self._store.transaction(staff_id, day, now) as unit_of_work:
                schedule = builder.build(salon.id, day, [staff_id], now)
                if not validate_slot(schedule, slot, duration):
                    logger.info(
                        "Slot %s %s for staff %s is no longer available",
                        slot.date_key, slot.start_time, staff_id,
                    )
                    raise SlotUnavailableError(
                        f"Slot {slot.date_key} {slot.start_time} is no longer available"
                    )

                if customer_id is None:
                    customer = self._new_customer(submission.customer)
                    unit_of_work.insert_customer(customer)
                    customer_id = customer.id

                if rules.auto_confirm_online_bookings:
                    status, reserved_until = AppointmentStatus.CONFIRMED, None
                else:
                    status = AppointmentStatus.RESERVED
                    reserved_until = now.add(minutes=rules.reservation_hold_minutes)
                    # Bookings for other staff or dates hold other scopes
                    unit_of_work.limit_live_reservations(
                        customer_id, rules.max_concurrent_reservations_per_customer
                    )

                appointment = Appointment(
                    id=str(uuid.uuid4()),
                    salon_id=salon.id,
                    customer_id=customer_id,
                    staff_id=staff_id,
                    starts_at=slot.datetime,
                    ends_at=slot.datetime.add(minutes=duration),
                    status=status,
                    reserved_until=reserved_until,
                    service_ids=tuple(submission.service_ids),
                    customer_notes=submission.customer.notes,
                )
                unit_of_work.insert_appointment(appointment)

        except ConcurrencyConflictError:
            logger.warning(
                "Lost booking race for staff %s on %s %s", staff_id, slot.date_key, slot.start_time
            )
            raise

        logger.info(
            "Booked %s for staff %s on %s %s (%s)",
            appointment.confirmation_number, staff_id, slot.date_key, slot.start_time, status.value,
        )

        return BookingResult(
            appointment_id=appointment.id,
            confirmation_number=appointment.confirmation_number,
            status=status,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            reserved_until=reserved_until,
        )

    # ── Lifecycle ────────────────────────────────────────────────────────

    def confirm_reservation(self, appointment_id: str, now: Optional[datetime] = None) -> Appointment:
        """
        Promote a soft reservation to a confirmed appointment.

        Uses the same compare-and-set discipline as the expiry reaper: only a
        reservation whose hold is still live can be promoted.

        Raises:
            SlotUnavailableError: If the hold elapsed or was released
        """
        now = self._now(now)
        updated = self._store.compare_and_set_status(
            appointment_id,
            AppointmentStatus.CONFIRMED,
            lambda appointment: appointment.status is AppointmentStatus.RESERVED
            and not appointment.hold_expired(now),
        )
        if updated is not None:
            logger.info("Confirmed reservation %s", appointment_id)
            return updated

        current = self._get_appointment(appointment_id)
        if current.status is AppointmentStatus.CONFIRMED:
            return current
        if current.status in (AppointmentStatus.RESERVED, AppointmentStatus.CANCELLED):
            raise SlotUnavailableError(f"Reservation {appointment_id} has expired")
        raise AppointmentStateError(
            f"Appointment {appointment_id} is {current.status.value}, not reserved"
        )

    def release_expired_reservations(self, now: Optional[datetime] = None) -> int:
        """
        Release every reservation whose hold elapsed before ``now``.

        Idempotent: already released or promoted reservations are skipped.
        Returns the number of reservations released by this call.
        """
        now = self._now(now)
        released = 0

        for appointment_id in self._store.find_expired_reservations(now):
            updated = self._store.compare_and_set_status(
                appointment_id,
                AppointmentStatus.CANCELLED,
                lambda appointment: appointment.hold_expired(now),
                reason="expired",
            )
            if updated is not None:
                released += 1

        logger.info("Released %d expired reservation(s)", released)
        return released

    def cancel_booking(
        self,
        appointment_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        by_customer: bool = True,
    ) -> Appointment:
        """
        Cancel an appointment.

        Customer cancellations respect the salon's cancellation policy and
        cutoff; staff cancellations only need a cancellable status.

        Raises:
            AppointmentStateError: If the policy or the status forbids it
        """
        now = self._now(now)
        appointment = self._get_appointment(appointment_id)

        if by_customer:
            rules = self._rules_for(appointment.salon_id)
            if not rules.allow_customer_cancellation:
                raise AppointmentStateError("Customer cancellation is not allowed")
            cutoff = pendulum.instance(appointment.starts_at).subtract(
                hours=rules.cancellation_cutoff_hours
            )
            if now > cutoff:
                raise AppointmentStateError(
                    f"Cancellation cutoff of {rules.cancellation_cutoff_hours}h has passed"
                )

        updated = self._store.compare_and_set_status(
            appointment_id,
            AppointmentStatus.CANCELLED,
            lambda current: current.status not in (
                AppointmentStatus.COMPLETED,
                AppointmentStatus.CANCELLED,
                AppointmentStatus.NO_SHOW,
            ),
            reason=reason or ("Cancelled by customer" if by_customer else "Cancelled by salon"),
        )
        if updated is None:
            raise AppointmentStateError(f"Appointment {appointment_id} cannot be cancelled")

        logger.info("Cancelled appointment %s", appointment_id)
        return updated

    def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """
        Apply a staff-side transition such as check-in or completion.

        Confirmation goes through ``confirm_reservation``. A reservation whose
        hold elapsed no longer owns its time and can only be cancelled.

        Raises:
            SlotUnavailableError: If the reservation's hold elapsed
            AppointmentStateError: If the lifecycle forbids the transition
        """
        status = AppointmentStatus(status)
        if status is AppointmentStatus.CONFIRMED:
            return self.confirm_reservation(appointment_id, now)

        now = self._now(now)
        updated = self._store.compare_and_set_status(
            appointment_id,
            status,
            lambda current: status is AppointmentStatus.CANCELLED or not current.hold_expired(now),
        )
        if updated is None:
            raise SlotUnavailableError(f"Reservation {appointment_id} has expired")
        return updated

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _now(now: Optional[datetime], timezone: str = "UTC") -> DateTime:
        return pendulum.instance(now) if now is not None else pendulum.now(timezone)

    @staticmethod
    def _coerce_submission(submission) -> BookingSubmission:
        if isinstance(submission, BookingSubmission):
            return submission
        try:
            return BookingSubmission.model_validate(submission)
        except ValidationError as exc:
            raise InputError(f"Invalid booking: {exc}") from exc

    def _rules_for(self, salon_id: str) -> BookingRules:
        return self._store.get_booking_rules(salon_id) or self._default_rules

    def _get_salon(self, salon_id: str) -> Salon:
        salon = self._store.get_salon(salon_id)
        if salon is None:
            raise NotFoundError(f"Unknown salon: {salon_id}")
        return salon

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self._store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Unknown appointment: {appointment_id}")
        return appointment

    def _get_services(self, service_ids: Sequence[str]) -> List[Service]:
        """Resolve services; all must exist and be bookable online."""
        if not service_ids:
            raise InputError("At least one service is required")

        services = {service.id: service for service in self._store.get_services(service_ids)}
        missing = [service_id for service_id in service_ids if service_id not in services]
        if missing:
            raise NotFoundError(f"Unknown service(s): {', '.join(missing)}")

        not_bookable = [
            service_id for service_id in service_ids
            if not (services[service_id].is_active and services[service_id].online_bookable)
        ]
        if not_bookable:
            raise InputError(f"Service(s) not bookable online: {', '.join(not_bookable)}")

        return [services[service_id] for service_id in service_ids]

    def _roster(
        self,
        salon_id: str,
        service_ids: Sequence[str],
        staff_id: Optional[str],
    ) -> List[str]:
        """
        Resolve the staff to search.

        A preferred staff member must exist and be qualified; without one,
        every active, online-bookable staff member qualified for all
        services is returned.
        """
        staff = self._store.get_staff(salon_id)

        if staff_id is not None:
            member = next((member for member in staff if member.id == staff_id), None)
            if member is None:
                raise NotFoundError(f"Unknown staff member: {staff_id}")
            if not (member.is_active and member.can_book_online and member.can_perform(service_ids)):
                raise InputError(f"Staff member {staff_id} cannot be booked for these services")
            return [member.id]

        return [
            member.id
            for member in staff
            if member.is_active and member.can_book_online and member.can_perform(service_ids)
        ]

    def _check_customer(
        self,
        details: CustomerDetails,
        rules: BookingRules,
        now: DateTime,
    ) -> Optional[str]:
        """Return the existing customer id, enforcing the live-reservation cap."""
        if not details.customer_id:
            return None

        if self._store.get_customer(details.customer_id) is None:
            raise NotFoundError(f"Unknown customer: {details.customer_id}")

        live = self._store.count_live_reservations(details.customer_id, now)
        if live >= rules.max_concurrent_reservations_per_customer:
            raise InputError(
                f"Customer already holds {live} open reservation(s)"
            )
        return details.customer_id

    @staticmethod
    def _new_customer(details: CustomerDetails) -> Customer:
        return Customer(
            id=str(uuid.uuid4()),
            first_name=details.first_name,
            last_name=details.last_name,
            email=details.email,
            phone=details.phone,
            notes=details.notes,
        )
