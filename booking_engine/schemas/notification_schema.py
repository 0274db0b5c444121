"""Notification records emitted by booking lifecycle events."""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from booking_engine.schemas.base import new_id


class NotificationType(str, Enum):
    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
    MODIFICATION = "modification"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class BookingNotification(BaseModel):
    """Append-only log of a notification and its delivery outcome."""

    id: str = Field(default_factory=new_id)
    type: NotificationType
    booking_id: str
    message: str
    sent_at: dt.datetime
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    error_message: Optional[str] = None
