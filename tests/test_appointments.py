"""
Tests for the appointment lifecycle.
"""

import pendulum
import pytest

from salonslots.domain.appointments import (
    CONFIRMATION_ALPHABET,
    Appointment,
    AppointmentStatus,
    can_transition,
    generate_confirmation_number,
)
from salonslots.domain.exceptions import AppointmentStateError

TZ = "Europe/Zurich"


def _appointment(status=AppointmentStatus.RESERVED, reserved_until=None) -> Appointment:
    starts_at = pendulum.datetime(2026, 11, 3, 10, 0, tz=TZ)
    if status is AppointmentStatus.RESERVED and reserved_until is None:
        reserved_until = pendulum.datetime(2026, 11, 2, 8, 15, tz=TZ)
    return Appointment(
        id="appt-1",
        salon_id="salon-1",
        customer_id="cust-1",
        staff_id="alice",
        starts_at=starts_at,
        ends_at=starts_at.add(minutes=30),
        status=status,
        reserved_until=reserved_until,
    )


class TestAppointmentStatus:
    """Tests for allowed transitions."""

    @pytest.mark.parametrize("current,target", [
        (AppointmentStatus.RESERVED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.RESERVED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CHECKED_IN),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.NO_SHOW),
        (AppointmentStatus.CHECKED_IN, AppointmentStatus.IN_PROGRESS),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED),
    ])
    def test_allowed(self, current, target):
        """Forward moves and exits are allowed."""
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (AppointmentStatus.CONFIRMED, AppointmentStatus.RESERVED),
        (AppointmentStatus.RESERVED, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
    ])
    def test_forbidden(self, current, target):
        """Backward moves, skips and leaving terminal states are not."""
        assert not can_transition(current, target)


class TestAppointment:
    """Tests for Appointment."""

    def test_reserved_needs_hold(self):
        """A reservation without reserved_until is rejected."""
        starts_at = pendulum.datetime(2026, 11, 3, 10, 0, tz=TZ)

        with pytest.raises(AppointmentStateError):
            Appointment(
                id="appt-1",
                salon_id="salon-1",
                customer_id="cust-1",
                staff_id="alice",
                starts_at=starts_at,
                ends_at=starts_at.add(minutes=30),
            )

    def test_end_before_start_raises(self):
        """Appointments must have a positive length."""
        starts_at = pendulum.datetime(2026, 11, 3, 10, 0, tz=TZ)

        with pytest.raises(AppointmentStateError):
            Appointment(
                id="appt-1",
                salon_id="salon-1",
                customer_id="cust-1",
                staff_id="alice",
                starts_at=starts_at,
                ends_at=starts_at,
                status=AppointmentStatus.CONFIRMED,
            )

    def test_hold_expiry(self):
        """A reservation occupies time until its hold elapses."""
        appointment = _appointment()

        assert appointment.occupies(pendulum.datetime(2026, 11, 2, 8, 10, tz=TZ))
        assert appointment.occupies(pendulum.datetime(2026, 11, 2, 8, 15, tz=TZ))
        assert appointment.hold_expired(pendulum.datetime(2026, 11, 2, 8, 16, tz=TZ))
        assert not appointment.occupies(pendulum.datetime(2026, 11, 2, 8, 16, tz=TZ))

    def test_inactive_statuses_do_not_occupy(self):
        """Cancelled and completed appointments free the time."""
        now = pendulum.datetime(2026, 11, 2, 8, 0, tz=TZ)

        assert _appointment(AppointmentStatus.CONFIRMED).occupies(now)
        assert not _appointment(AppointmentStatus.CANCELLED).occupies(now)
        assert not _appointment(AppointmentStatus.COMPLETED).occupies(now)

    def test_transition_clears_hold(self):
        """Confirming drops reserved_until."""
        appointment = _appointment()

        appointment.transition_to(AppointmentStatus.CONFIRMED)

        assert appointment.status is AppointmentStatus.CONFIRMED
        assert appointment.reserved_until is None

    def test_illegal_transition_raises(self):
        """Moving a cancelled appointment is refused."""
        appointment = _appointment(AppointmentStatus.CANCELLED)

        with pytest.raises(AppointmentStateError, match="cancelled to confirmed"):
            appointment.transition_to(AppointmentStatus.CONFIRMED)


class TestConfirmationNumber:
    """Tests for confirmation numbers."""

    def test_format(self):
        """Eight characters from the unambiguous alphabet."""
        number = generate_confirmation_number()

        assert len(number) == 8
        assert set(number) <= set(CONFIRMATION_ALPHABET)

    def test_new_appointments_get_a_number(self):
        """Each appointment draws its own code."""
        numbers = {_appointment().confirmation_number for _ in range(20)}

        assert len(numbers) > 1
