"""
Data-access contract between the scheduling engine and its backend.

The engine never talks to a database client directly. Every component
receives a ``SchedulingStore`` instance, which a deployment implements on
top of its persistence layer and which tests replace with ``InMemoryStore``.

Writes that touch bookings must enforce an exclusion constraint: two
non-cancelled bookings of the same provider may not overlap. A write that
would violate it raises ``ConstraintViolation`` atomically, which is how
concurrent requests for the same slot are serialized.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

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


class StoreError(Exception):
    """A backend read or write failed."""


class ConstraintViolation(StoreError):
    """A write was rejected because it would overlap an existing booking."""

    def __init__(self, message: str, conflicting_ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids)


class SchedulingStore(ABC):
    """Async persistence contract consumed by the scheduling engine."""

    # --- Provider configuration (read) ---

    @abstractmethod
    async def get_provider(self, provider_id: str) -> Optional[ServiceProvider]:
        ...

    @abstractmethod
    async def get_service(self, service_id: str) -> Optional[Service]:
        ...

    @abstractmethod
    async def list_availability(self, provider_id: str) -> list[Availability]:
        ...

    @abstractmethod
    async def list_break_times(self, provider_id: str) -> list[BreakTime]:
        ...

    @abstractmethod
    async def get_schedule_settings(self, provider_id: str) -> Optional[ScheduleSettings]:
        ...

    # --- Bookings ---

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
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
        """Bookings matching every given filter, ordered by start time.

        ``start``/``end`` select bookings overlapping [start, end).
        ``series_id`` selects the parent booking and all its occurrences.
        """

    @abstractmethod
    async def insert_bookings(self, bookings: Sequence[Booking]) -> list[Booking]:
        """Insert all bookings or none of them.

        Raises:
            ConstraintViolation: If any booking overlaps an active booking
                of the same provider, or two given bookings overlap.
        """

    async def insert_booking(self, booking: Booking) -> Booking:
        inserted = await self.insert_bookings([booking])
        return inserted[0]

    @abstractmethod
    async def update_booking(self, booking_id: str, changes: dict[str, Any]) -> Booking:
        """Apply field changes to one booking, enforcing the exclusion constraint."""

    @abstractmethod
    async def update_bookings(
        self, booking_ids: Sequence[str], changes: dict[str, Any]
    ) -> list[Booking]:
        """Apply the same field changes to several bookings atomically."""

    # --- Notifications & audit log ---

    @abstractmethod
    async def insert_notification(self, notification: BookingNotification) -> BookingNotification:
        ...

    @abstractmethod
    async def update_notification(
        self,
        notification_id: str,
        delivery_status: DeliveryStatus,
        error_message: Optional[str] = None,
    ) -> BookingNotification:
        ...

    @abstractmethod
    async def list_notifications(
        self,
        *,
        booking_id: Optional[str] = None,
        delivery_status: Optional[DeliveryStatus] = None,
    ) -> list[BookingNotification]:
        ...

    @abstractmethod
    async def insert_log(self, entry: SchedulingLogEntry) -> SchedulingLogEntry:
        ...

    @abstractmethod
    async def list_logs(self, booking_id: Optional[str] = None) -> list[SchedulingLogEntry]:
        ...
