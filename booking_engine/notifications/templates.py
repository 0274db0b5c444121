"""Default notification messages built from booking, service and provider fields."""

from typing import Optional

from booking_engine.config import settings
from booking_engine.intervals import to_zone
from booking_engine.schemas import (
    Booking,
    BookingStatus,
    NotificationType,
    Service,
    ServiceProvider,
)

_MODIFICATION_HEADLINES: dict[BookingStatus, str] = {
    BookingStatus.COMPLETED: "Your booking has been marked as completed.",
    BookingStatus.NO_SHOW: "You were marked as no-show for your booking.",
}


def format_local_time(booking: Booking, tz_name: str, date_format: Optional[str] = None) -> str:
    """Start time of a booking rendered in the given timezone."""
    local = to_zone(booking.start_time, tz_name)
    return local.strftime(date_format or settings.notifications.date_format)


def build_headline(notification_type: NotificationType, booking: Booking) -> str:
    """First sentence of a message, chosen by type and current booking status."""
    if notification_type == NotificationType.CONFIRMATION:
        if booking.status == BookingStatus.CONFIRMED:
            return "Your booking has been confirmed."
        return "Your booking has been created and is pending confirmation."
    if notification_type == NotificationType.CANCELLATION:
        return "Your booking has been cancelled."
    if notification_type == NotificationType.REMINDER:
        return "Reminder: you have an upcoming booking."
    return _MODIFICATION_HEADLINES.get(booking.status, "Your booking has been updated.")


def build_message(
    notification_type: NotificationType,
    booking: Booking,
    service: Optional[Service],
    provider: Optional[ServiceProvider],
    tz_name: str,
    date_format: Optional[str] = None,
) -> str:
    """Build the full human-readable notification text."""
    parts = [build_headline(notification_type, booking)]

    what = service.name if service else "Appointment"
    if provider is not None:
        what = f"{what} with {provider.name}"
    parts.append(f"{what} on {format_local_time(booking, tz_name, date_format)} ({tz_name}).")

    if booking.notes and notification_type != NotificationType.CANCELLATION:
        parts.append(f"Notes: {booking.notes}")
    return " ".join(parts)
