"""
In-memory reference implementation of the scheduling store.

Used by the test suite and the developer console. Booking writes are
serialized through an ``asyncio.Lock`` and checked against the same
exclusion rule a production backend enforces with a range constraint.
Records are copied on the way in and out so callers never share state
with the store.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from booking_engine.intervals import to_utc
from booking_engine.schemas import (
    Availability,
    Booking,
    BookingNotification,
    BookingStatus,
    BreakTime,
    DeliveryStatus,
    ScheduleSettings,
    SchedulingLogEntry,
    Service,
    ServiceProvider,
)
from booking_engine.storage.base import ConstraintViolation, SchedulingStore, StoreError

logger = logging.getLogger(__name__)


def _overlapping(a: Booking, b: Booking) -> bool:
    return a.start_time < b.end_time and a.end_time > b.start_time


class InMemoryStore(SchedulingStore):
    """Dict-backed store with an atomic exclusion check on booking writes."""

    def __init__(self) -> None:
        self._providers: dict[str, ServiceProvider] = {}
        self._services: dict[str, Service] = {}
        self._availability: dict[str, Availability] = {}
        self._breaks: dict[str, BreakTime] = {}
        self._settings: dict[str, ScheduleSettings] = {}
        self._bookings: dict[str, Booking] = {}
        self._notifications: dict[str, BookingNotification] = {}
        self._logs: list[SchedulingLogEntry] = []
        self._lock = asyncio.Lock()

    # --- Seeding (synchronous, configuration is provider-owned) ---

    def add_provider(self, provider: ServiceProvider) -> ServiceProvider:
        self._providers[provider.id] = provider.model_copy(deep=True)
        for service in provider.services:
            self.add_service(service)
        for row in provider.availability:
            self.add_availability(row)
        return provider

    def add_service(self, service: Service) -> Service:
        self._services[service.id] = service.model_copy(deep=True)
        return service

    def add_availability(self, row: Availability) -> Availability:
        self._availability[row.id] = row.model_copy(deep=True)
        return row

    def add_break_time(self, row: BreakTime) -> BreakTime:
        self._breaks[row.id] = row.model_copy(deep=True)
        return row

    def set_schedule_settings(self, schedule_settings: ScheduleSettings) -> ScheduleSettings:
        self._settings[schedule_settings.provider_id] = schedule_settings.model_copy(deep=True)
        return schedule_settings

    def reset(self) -> None:
        """Clear all records. Used by test fixtures for isolation."""
        self._providers.clear()
        self._services.clear()
        self._availability.clear()
        self._breaks.clear()
        self._settings.clear()
        self._bookings.clear()
        self._notifications.clear()
        self._logs.clear()

    # --- Provider configuration ---

    async def get_provider(self, provider_id: str) -> Optional[ServiceProvider]:
        provider = self._providers.get(provider_id)
        return provider.model_copy(deep=True) if provider else None

    async def get_service(self, service_id: str) -> Optional[Service]:
        service = self._services.get(service_id)
        return service.model_copy(deep=True) if service else None

    async def list_availability(self, provider_id: str) -> list[Availability]:
        return [
            row.model_copy(deep=True)
            for row in self._availability.values()
            if row.provider_id == provider_id
        ]

    async def list_break_times(self, provider_id: str) -> list[BreakTime]:
        return [
            row.model_copy(deep=True)
            for row in self._breaks.values()
            if row.provider_id == provider_id
        ]

    async def get_schedule_settings(self, provider_id: str) -> Optional[ScheduleSettings]:
        found = self._settings.get(provider_id)
        return found.model_copy(deep=True) if found else None

    # --- Bookings ---

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def list_bookings(
        self,
        *,
        provider_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
        series_id: Optional[str] = None,
    ) -> list[Booking]:
        wanted = set(statuses) if statuses is not None else None
        start_utc = to_utc(start) if start is not None else None
        end_utc = to_utc(end) if end is not None else None
        results = []
        for booking in self._bookings.values():
            if provider_id is not None and booking.provider_id != provider_id:
                continue
            if user_id is not None and booking.user_id != user_id:
                continue
            if wanted is not None and booking.status not in wanted:
                continue
            if series_id is not None and series_id not in (booking.id, booking.parent_booking_id):
                continue
            if end_utc is not None and booking.start_time >= end_utc:
                continue
            if start_utc is not None and booking.end_time <= start_utc:
                continue
            results.append(booking.model_copy(deep=True))
        results.sort(key=lambda b: (b.start_time, b.id))
        return results

    def _check_exclusion(self, candidates: Sequence[Booking]) -> None:
        """Raise ConstraintViolation if any active candidate overlaps another active booking."""
        candidate_ids = {b.id for b in candidates}
        existing = [
            b for b in self._bookings.values()
            if b.occupies_time and b.id not in candidate_ids
        ]
        active = [b for b in candidates if b.occupies_time]
        for index, booking in enumerate(active):
            clashes = [
                other.id for other in existing
                if other.provider_id == booking.provider_id and _overlapping(booking, other)
            ]
            clashes.extend(
                other.id for other in active[index + 1:]
                if other.provider_id == booking.provider_id and _overlapping(booking, other)
            )
            if clashes:
                raise ConstraintViolation(
                    f"Booking {booking.id} at {booking.start_time.isoformat()} overlaps "
                    f"{len(clashes)} existing booking(s).",
                    conflicting_ids=clashes,
                )

    async def insert_bookings(self, bookings: Sequence[Booking]) -> list[Booking]:
        async with self._lock:
            duplicates = [b.id for b in bookings if b.id in self._bookings]
            if duplicates:
                raise StoreError(f"Duplicate booking id(s): {duplicates}")
            self._check_exclusion(bookings)
            for booking in bookings:
                self._bookings[booking.id] = booking.model_copy(deep=True)
        logger.debug("Inserted %d booking(s)", len(bookings))
        return [b.model_copy(deep=True) for b in bookings]

    def _apply(self, booking_id: str, changes: dict[str, Any]) -> Booking:
        current = self._bookings.get(booking_id)
        if current is None:
            raise StoreError(f"Booking {booking_id} does not exist")
        return Booking.model_validate({**current.model_dump(), **changes})

    async def update_booking(self, booking_id: str, changes: dict[str, Any]) -> Booking:
        updated = await self.update_bookings([booking_id], changes)
        return updated[0]

    async def update_bookings(
        self, booking_ids: Sequence[str], changes: dict[str, Any]
    ) -> list[Booking]:
        async with self._lock:
            updated = [self._apply(booking_id, changes) for booking_id in booking_ids]
            self._check_exclusion(updated)
            for booking in updated:
                self._bookings[booking.id] = booking
        return [b.model_copy(deep=True) for b in updated]

    # --- Notifications & audit log ---

    async def insert_notification(self, notification: BookingNotification) -> BookingNotification:
        self._notifications[notification.id] = notification.model_copy(deep=True)
        return notification

    async def update_notification(
        self,
        notification_id: str,
        delivery_status: DeliveryStatus,
        error_message: Optional[str] = None,
    ) -> BookingNotification:
        current = self._notifications.get(notification_id)
        if current is None:
            raise StoreError(f"Notification {notification_id} does not exist")
        updated = current.model_copy(
            update={"delivery_status": delivery_status, "error_message": error_message}
        )
        self._notifications[notification_id] = updated
        return updated.model_copy(deep=True)

    async def list_notifications(
        self,
        *,
        booking_id: Optional[str] = None,
        delivery_status: Optional[DeliveryStatus] = None,
    ) -> list[BookingNotification]:
        return [
            n.model_copy(deep=True)
            for n in self._notifications.values()
            if (booking_id is None or n.booking_id == booking_id)
            and (delivery_status is None or n.delivery_status == delivery_status)
        ]

    async def insert_log(self, entry: SchedulingLogEntry) -> SchedulingLogEntry:
        self._logs.append(entry.model_copy(deep=True))
        return entry

    async def list_logs(self, booking_id: Optional[str] = None) -> list[SchedulingLogEntry]:
        return [
            e.model_copy(deep=True)
            for e in self._logs
            if booking_id is None or e.booking_id == booking_id
        ]
