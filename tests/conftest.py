"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from booking_engine.notifications import LoggingChannel, NotificationDispatcher
from booking_engine.scheduling import AvailabilityResolver, BookingManager, SlotGenerator
from booking_engine.schemas import (
    Actor,
    ActorRole,
    Availability,
    Booking,
    BookingStatus,
    Service,
    ServiceProvider,
)
from booking_engine.storage import InMemoryStore

# Monday 2024-06-03 08:00 in New York
NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
NY = "America/New_York"
PROVIDER_ID = "prov-1"
SERVICE_ID = "svc-1"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def fixed_clock() -> datetime:
    return NOW


def clock_at(instant: datetime):
    """Clock frozen at an arbitrary instant."""
    return lambda: instant


def ny(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Aware New York wall-clock time."""
    return datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(NY))


def make_service(
    service_id: str = SERVICE_ID,
    duration: int = 30,
    buffer_time: int = 0,
    provider_id: str = PROVIDER_ID,
) -> Service:
    return Service(
        id=service_id,
        name="Consultation",
        duration=duration,
        buffer_time=buffer_time,
        provider_id=provider_id,
    )


def make_store(
    tz: Optional[str] = NY,
    service: Optional[Service] = None,
    store_cls: type[InMemoryStore] = InMemoryStore,
) -> InMemoryStore:
    """Provider available Monday to Friday 09:00-17:00 local, no settings row."""
    store = store_cls()
    store.add_provider(ServiceProvider(
        id=PROVIDER_ID,
        name="Dr. Test",
        email="dr.test@example.com",
        timezone=tz,
        services=[service or make_service()],
        availability=[
            Availability(
                provider_id=PROVIDER_ID,
                day_of_week=dow,
                start_time="09:00",
                end_time="17:00",
            )
            for dow in range(1, 6)
        ],
    ))
    return store


def make_booking(
    start: datetime,
    minutes: int = 30,
    status: BookingStatus = BookingStatus.CONFIRMED,
    user_id: str = USER_ID,
    provider_id: str = PROVIDER_ID,
    **kwargs,
) -> Booking:
    """Helper to create a Booking with sensible defaults."""
    return Booking(
        user_id=user_id,
        provider_id=provider_id,
        service_id=SERVICE_ID,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        status=status,
        created_at=NOW,
        updated_at=NOW,
        **kwargs,
    )


def booking_request(start: datetime, **overrides) -> dict:
    """Raw create request as a presentation layer would send it."""
    request = {
        "service_id": SERVICE_ID,
        "provider_id": PROVIDER_ID,
        "start_time": start,
    }
    request.update(overrides)
    return request


def requester(user_id: str = USER_ID) -> Actor:
    return Actor(user_id=user_id)


def provider_actor() -> Actor:
    return Actor(user_id=PROVIDER_ID, role=ActorRole.PROVIDER)


def admin_actor() -> Actor:
    return Actor(user_id="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def store():
    return make_store()


@pytest.fixture
def channel():
    return LoggingChannel()


@pytest.fixture
def dispatcher(store, channel):
    return NotificationDispatcher(store, channel, clock=fixed_clock)


@pytest.fixture
def manager(store, dispatcher):
    return BookingManager(store, dispatcher=dispatcher, clock=fixed_clock)


@pytest.fixture
def resolver(store):
    return AvailabilityResolver(store, clock=fixed_clock)


@pytest.fixture
def slot_generator(store):
    return SlotGenerator(store, clock=fixed_clock)


@pytest.fixture
def wednesday() -> date:
    return date(2024, 6, 5)
