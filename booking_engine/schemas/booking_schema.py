"""Booking, recurrence rule and audit log data models."""

import datetime as dt
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_engine.intervals import to_utc
from booking_engine.schemas.base import new_id


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


OPEN_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)
# Everything except cancelled still holds its time on the calendar
OCCUPYING_STATUSES = frozenset(set(BookingStatus) - {BookingStatus.CANCELLED})


class _RuleBase(BaseModel):
    """Fields shared by every recurrence frequency."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    interval: int = Field(default=1, ge=1)
    count: Optional[int] = Field(default=None, ge=1)
    until: Optional[dt.date] = None


class DailyRule(_RuleBase):
    frequency: Literal["daily"] = "daily"


class WeeklyRule(_RuleBase):
    frequency: Literal["weekly"] = "weekly"
    by_day: Optional[list[int]] = None

    @field_validator("by_day")
    @classmethod
    def _check_days(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is None:
            return None
        if not value:
            raise ValueError("by_day must not be empty")
        if any(not 0 <= day <= 6 for day in value):
            raise ValueError("by_day values must be 0-6 (0 = Sunday)")
        return sorted(set(value))


class MonthlyRule(_RuleBase):
    frequency: Literal["monthly"] = "monthly"
    by_month_day: Optional[list[int]] = None

    @field_validator("by_month_day")
    @classmethod
    def _check_month_days(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is None:
            return None
        if not value:
            raise ValueError("by_month_day must not be empty")
        if any(not 1 <= day <= 31 for day in value):
            raise ValueError("by_month_day values must be 1-31")
        return sorted(set(value))


RecurrenceRule = Annotated[
    Union[DailyRule, WeeklyRule, MonthlyRule],
    Field(discriminator="frequency"),
]


def _aware_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError("datetimes must carry a timezone")
    return to_utc(value)


class Booking(BaseModel):
    """A persisted booking. Instants are stored in UTC."""

    id: str = Field(default_factory=new_id)
    user_id: str
    provider_id: str
    service_id: str
    start_time: dt.datetime
    end_time: dt.datetime
    status: BookingStatus = BookingStatus.PENDING
    notes: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None
    parent_booking_id: Optional[str] = None
    # IANA zone the booking was made in; drives local dates and wall-clock times
    timezone: Optional[str] = None
    reminder_sent: bool = False
    cancelled_at: Optional[dt.datetime] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("start_time", "end_time", "cancelled_at", "created_at", "updated_at")
    @classmethod
    def _normalize_instant(cls, value: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return _aware_utc(value)

    @model_validator(mode="after")
    def _check_times(self) -> "Booking":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.recurrence_rule is not None and self.parent_booking_id is not None:
            raise ValueError("generated occurrences cannot carry a recurrence rule")
        return self

    @property
    def occupies_time(self) -> bool:
        return self.status != BookingStatus.CANCELLED

    @property
    def series_id(self) -> str:
        """Id of the parent booking for series members, else the booking's own id."""
        return self.parent_booking_id or self.id


class BookingRequest(BaseModel):
    """Validated request to create a booking."""

    model_config = ConfigDict(extra="forbid")

    service_id: str = Field(min_length=1)
    provider_id: str = Field(min_length=1)
    start_time: dt.datetime
    notes: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None
    timezone: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def _normalize_start(cls, value: dt.datetime) -> dt.datetime:
        return _aware_utc(value)


class ActorRole(str, Enum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    ADMIN = "admin"


class Actor(BaseModel):
    """The authenticated user performing a lifecycle operation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: ActorRole = ActorRole.REQUESTER

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class SchedulingEvent(str, Enum):
    BOOKING_CREATED = "booking_created"
    STATUS_CHANGED = "status_changed"
    BOOKING_UPDATED = "booking_updated"


class SchedulingLogEntry(BaseModel):
    """Append-only audit record of a booking mutation."""
    id: str = Field(default_factory=new_id)
    event_type: SchedulingEvent
    booking_id: Optional[str] = None
    user_id: Optional[str] = None
    provider_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: dt.datetime
