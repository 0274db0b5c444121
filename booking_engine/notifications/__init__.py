from booking_engine.notifications.dispatcher import (
    LoggingChannel,
    NotificationChannel,
    NotificationDispatcher,
)
from booking_engine.notifications.templates import build_message

__all__ = [
    "LoggingChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "build_message",
]
