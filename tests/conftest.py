"""
Shared fixtures: a small salon with two staff members in Europe/Zurich.

Opening hours Mon-Sat 09:00-18:00, closed on Sunday.
Alice works Mon-Fri 09:00-17:00 with a lunch break 12:00-13:00.
Bob works Mon-Sat 10:00-18:00.
"""

import pendulum
import pytest

from salonslots.adapters.memory_store import InMemoryBookingStore
from salonslots.domain.models import BookingRules
from salonslots.domain.records import (
    Customer,
    OpeningHoursRecord,
    Salon,
    Service,
    StaffMember,
    WorkingHoursRecord,
)
from salonslots.services.booking_service import BookingService

TZ = "Europe/Zurich"
SALON_ID = "salon-1"


@pytest.fixture
def tuesday():
    return pendulum.date(2026, 11, 3)


@pytest.fixture
def now():
    """Monday morning before the Tuesday used by most tests."""
    return pendulum.datetime(2026, 11, 2, 8, 0, tz=TZ)


@pytest.fixture
def rules():
    return BookingRules()


@pytest.fixture
def store(rules):
    store = InMemoryBookingStore(lock_timeout=5.0)
    store.add_salon(Salon(SALON_ID, "Salon Test", TZ), rules)

    store.add_service(Service("cut", "Haarschnitt", 30))
    store.add_service(Service("color", "Färben", 60))
    store.add_service(Service("consult", "Beratung", 15, online_bookable=False))

    store.add_staff(SALON_ID, StaffMember("alice", "Alice", ("cut", "color", "consult")))
    store.add_staff(SALON_ID, StaffMember("bob", "Bob", ("cut",)))

    store.add_customer(
        Customer("cust-1", "Heidi", "Muster", "heidi@example.ch", "+41 44 123 45 67")
    )

    for weekday in range(1, 7):
        store.add_opening_hours(SALON_ID, OpeningHoursRecord(weekday, 9 * 60, 18 * 60))
        store.add_working_hours(WorkingHoursRecord("bob", weekday, 10 * 60, 18 * 60))
    store.add_opening_hours(SALON_ID, OpeningHoursRecord(0, 0, 24 * 60, is_closed=True))

    for weekday in range(1, 6):
        store.add_working_hours(
            WorkingHoursRecord(
                "alice", weekday, 9 * 60, 17 * 60,
                break_start_minutes=12 * 60, break_end_minutes=13 * 60,
            )
        )

    return store


@pytest.fixture
def service(store):
    return BookingService(store)


@pytest.fixture
def new_customer():
    return {
        "first_name": "Max",
        "last_name": "Muster",
        "email": "max@example.ch",
        "phone": "+41 79 000 00 00",
        "accepted_terms": True,
        "accepted_privacy": True,
    }
