"""
Notification recording and delivery.

Each notification is stored as ``pending`` before delivery and then
updated to ``sent`` or ``failed``. Delivery problems are recorded and
logged here and never reach the booking operation that triggered them.

Usage:
    dispatcher = NotificationDispatcher(store, channel=LoggingChannel())
    await dispatcher.dispatch(booking, NotificationType.CONFIRMATION)
    await dispatcher.send_reminders()
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from booking_engine.config import settings
from booking_engine.errors import SchedulingError
from booking_engine.intervals import local_date
from booking_engine.notifications.templates import build_message
from booking_engine.schemas import (
    Booking,
    BookingNotification,
    BookingStatus,
    DeliveryStatus,
    NotificationType,
    ServiceProvider,
)
from booking_engine.schemas.base import Clock, utc_now
from booking_engine.storage import SchedulingStore, StoreError

logger = logging.getLogger(__name__)


class NotificationChannel(ABC):
    """Transport that delivers a notification to the booking's user."""

    @abstractmethod
    async def send(self, notification: BookingNotification, booking: Booking) -> None:
        """Deliver or raise. Any exception marks the notification as failed."""


class LoggingChannel(NotificationChannel):
    """Writes notifications to the log and keeps them for inspection."""

    def __init__(self) -> None:
        self.sent: list[BookingNotification] = []

    async def send(self, notification: BookingNotification, booking: Booking) -> None:
        logger.info(
            "[%s] to user %s: %s",
            notification.type.value, booking.user_id, notification.message,
        )
        self.sent.append(notification)


class NotificationDispatcher:
    """Builds, records and delivers booking notifications."""

    def __init__(
        self,
        store: SchedulingStore,
        channel: Optional[NotificationChannel] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.channel = channel or LoggingChannel()
        self.clock = clock

    @staticmethod
    def _booking_timezone(booking: Booking, provider: Optional[ServiceProvider]) -> str:
        """Zone the booking was made in, else the provider's, else the default."""
        if booking.timezone:
            return booking.timezone
        if provider is not None and provider.timezone:
            return provider.timezone
        return settings.scheduling.default_timezone

    async def _timezone_for(self, booking: Booking) -> str:
        provider = await self.store.get_provider(booking.provider_id)
        return self._booking_timezone(booking, provider)

    async def build_message(self, booking: Booking, notification_type: NotificationType) -> str:
        service = await self.store.get_service(booking.service_id)
        provider = await self.store.get_provider(booking.provider_id)
        return build_message(
            notification_type, booking, service, provider, self._booking_timezone(booking, provider)
        )

    async def dispatch(
        self,
        booking: Booking,
        notification_type: NotificationType,
        message: Optional[str] = None,
    ) -> Optional[BookingNotification]:
        """
        Record and deliver one notification.

        Returns:
            The stored notification with its delivery outcome, or None if
            it could not be recorded at all.
        """
        try:
            text = message or await self.build_message(booking, notification_type)
            record = await self.store.insert_notification(BookingNotification(
                type=notification_type,
                booking_id=booking.id,
                message=text,
                sent_at=self.clock(),
            ))
        except (StoreError, SchedulingError):
            logger.exception(
                "Could not record %s notification for booking %s",
                notification_type.value, booking.id,
            )
            return None
        return await self._deliver(record, booking)

    async def _deliver(
        self, notification: BookingNotification, booking: Booking
    ) -> BookingNotification:
        status, error = DeliveryStatus.SENT, None
        try:
            await self.channel.send(notification, booking)
        except Exception as e:
            status, error = DeliveryStatus.FAILED, str(e) or type(e).__name__
            logger.warning(
                "Delivery of %s notification %s failed: %s",
                notification.type.value, notification.id, error,
            )

        try:
            return await self.store.update_notification(notification.id, status, error)
        except StoreError:
            logger.exception("Could not update delivery status of notification %s", notification.id)
            return notification.model_copy(
                update={"delivery_status": status, "error_message": error}
            )

    async def send_reminders(self) -> list[BookingNotification]:
        """
        Send reminders for confirmed bookings starting on the reminder day.

        The reminder day is today plus ``REMINDER_LEAD_DAYS`` in the
        booking's timezone. ``reminder_sent`` is set only after a
        successful delivery, so failed reminders are retried by the next
        sweep.
        """
        now = self.clock()
        lead = timedelta(days=settings.notifications.reminder_lead_days)
        candidates = await self.store.list_bookings(
            start=now, statuses=[BookingStatus.CONFIRMED]
        )

        sent: list[BookingNotification] = []
        for booking in candidates:
            if booking.reminder_sent:
                continue
            tz = await self._timezone_for(booking)
            try:
                due = local_date(booking.start_time, tz) == local_date(now, tz) + lead
            except SchedulingError:
                logger.exception("Skipping reminder for booking %s", booking.id)
                continue
            if not due:
                continue

            notification = await self.dispatch(booking, NotificationType.REMINDER)
            if notification is None or notification.delivery_status != DeliveryStatus.SENT:
                continue
            try:
                await self.store.update_booking(booking.id, {"reminder_sent": True})
            except StoreError:
                logger.exception("Could not flag reminder as sent for booking %s", booking.id)
                continue
            sent.append(notification)

        logger.info("Reminder sweep sent %d of %d candidate(s)", len(sent), len(candidates))
        return sent

    async def retry_failed(self) -> list[BookingNotification]:
        """Re-attempt delivery of every failed notification."""
        retried: list[BookingNotification] = []
        for notification in await self.store.list_notifications(
            delivery_status=DeliveryStatus.FAILED
        ):
            booking = await self.store.get_booking(notification.booking_id)
            if booking is None:
                logger.warning(
                    "Skipping retry of notification %s: booking %s no longer exists",
                    notification.id, notification.booking_id,
                )
                continue
            retried.append(await self._deliver(notification, booking))
        return retried
