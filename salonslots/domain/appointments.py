"""
Appointment lifecycle.

reserved -> confirmed -> checked_in -> in_progress -> completed, with
cancelled and no_show reachable from every state before completion.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .exceptions import AppointmentStateError

CONFIRMATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CONFIRMATION_LENGTH = 8


class AppointmentStatus(str, Enum):
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# States that occupy staff time
ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.RESERVED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.CHECKED_IN,
    AppointmentStatus.IN_PROGRESS,
})

_EXITS = {AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.RESERVED: frozenset({AppointmentStatus.CONFIRMED} | _EXITS),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CHECKED_IN} | _EXITS),
    AppointmentStatus.CHECKED_IN: frozenset({AppointmentStatus.IN_PROGRESS} | _EXITS),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED} | _EXITS),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS[current]


def generate_confirmation_number() -> str:
    """Return a random code without easily confused characters (0/O, 1/I)."""
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(CONFIRMATION_LENGTH))


@dataclass
class Appointment:
    """An appointment row as held by the datastore."""
    id: str
    salon_id: str
    customer_id: str
    staff_id: str
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus = AppointmentStatus.RESERVED
    reserved_until: Optional[datetime] = None
    confirmation_number: str = field(default_factory=generate_confirmation_number)
    service_ids: Tuple[str, ...] = ()
    source: str = "online"
    customer_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None

    def __post_init__(self):
        if self.ends_at <= self.starts_at:
            raise AppointmentStateError(
                f"Appointment {self.id} must end after it starts"
            )
        if self.status is AppointmentStatus.RESERVED and self.reserved_until is None:
            raise AppointmentStateError(
                f"Reserved appointment {self.id} needs a reserved_until"
            )

    def hold_expired(self, now: datetime) -> bool:
        return (
            self.status is AppointmentStatus.RESERVED
            and self.reserved_until is not None
            and self.reserved_until < now
        )

    def occupies(self, now: datetime) -> bool:
        """Whether this appointment blocks its staff member's time."""
        return self.status in ACTIVE_STATUSES and not self.hold_expired(now)

    def transition_to(self, target: AppointmentStatus) -> None:
        """
        Move to another status.

        Raises:
            AppointmentStateError: If the lifecycle does not allow the move
        """
        if not can_transition(self.status, target):
            raise AppointmentStateError(
                f"Cannot move appointment {self.id} from {self.status.value} to {target.value}"
            )
        self.status = target
        if target is not AppointmentStatus.RESERVED:
            self.reserved_until = None
