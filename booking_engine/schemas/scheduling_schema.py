"""Provider configuration models: services, availability, breaks and policy."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from booking_engine.config import settings
from booking_engine.intervals import day_of_week, parse_hhmm
from booking_engine.schemas.base import new_id


class Service(BaseModel):
    """A bookable service. Duration and buffer drive slot sizing."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    duration: int = Field(gt=0)
    buffer_time: int = Field(default=0, ge=0)
    price: float = Field(default=0.0, ge=0)
    provider_id: str


class _TimeWindowRow(BaseModel):
    """Shared shape of availability and break rows (provider-local HH:MM)."""

    id: str = Field(default_factory=new_id)
    provider_id: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    date: Optional[dt.date] = None
    start_time: str
    end_time: str
    is_recurring: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        parse_hhmm(value)
        return value.strip()

    @model_validator(mode="after")
    def _check_shape(self) -> "_TimeWindowRow":
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("start_time must be before end_time")
        if self.is_recurring and (self.day_of_week is None or self.date is not None):
            raise ValueError("recurring rows need day_of_week and no date")
        if not self.is_recurring and (self.date is None or self.day_of_week is not None):
            raise ValueError("date-specific rows need date and no day_of_week")
        return self

    def applies_to(self, day: dt.date) -> bool:
        if self.is_recurring:
            return self.day_of_week == day_of_week(day)
        return self.date == day


class Availability(_TimeWindowRow):
    """Time during which a provider accepts bookings."""


class BreakTime(_TimeWindowRow):
    """Time subtracted from a provider's availability."""


class ServiceProvider(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: Optional[str] = None
    timezone: Optional[str] = None
    services: list[Service] = Field(default_factory=list)
    availability: list[Availability] = Field(default_factory=list)


class WorkingHours(BaseModel):
    start: str = "09:00"
    end: str = "17:00"
    is_working_day: bool = True

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        parse_hhmm(value)
        return value.strip()

    @model_validator(mode="after")
    def _check_order(self) -> "WorkingHours":
        if parse_hhmm(self.start) >= parse_hhmm(self.end):
            raise ValueError("working hours start must be before end")
        return self


def _default_working_hours() -> dict[int, WorkingHours]:
    # Sunday and Saturday off, Monday to Friday 09:00-17:00
    return {
        dow: WorkingHours(is_working_day=dow not in (0, 6))
        for dow in range(7)
    }


class ScheduleSettings(BaseModel):
    """Per-provider booking policy. Governs policy, not raw availability."""

    id: str = Field(default_factory=new_id)
    provider_id: str
    min_advance_time: int = Field(
        default_factory=lambda: settings.policy.min_advance_minutes, ge=0
    )
    max_advance_time: int = Field(
        default_factory=lambda: settings.policy.max_advance_days, gt=0
    )
    allow_cancellation: bool = Field(
        default_factory=lambda: settings.policy.allow_cancellation
    )
    cancellation_time_limit: int = Field(
        default_factory=lambda: settings.policy.cancellation_limit_hours, gt=0
    )
    working_hours: dict[int, WorkingHours] = Field(default_factory=_default_working_hours)
    holiday_dates: list[dt.date] = Field(default_factory=list)

    @field_validator("working_hours")
    @classmethod
    def _check_weekdays(cls, value: dict[int, WorkingHours]) -> dict[int, WorkingHours]:
        invalid = [dow for dow in value if not 0 <= dow <= 6]
        if invalid:
            raise ValueError(f"working_hours keys must be 0-6, got {invalid}")
        return value

    def is_holiday(self, day: dt.date) -> bool:
        return day in self.holiday_dates


class TimeSlot(BaseModel):
    """A candidate slot computed on demand. Never persisted."""
    id: str
    start_time: dt.datetime
    end_time: dt.datetime
    is_available: bool
    is_booked: bool = False
    unavailable_reason: Optional[str] = None


class ScheduleDay(BaseModel):
    date: dt.date
    time_slots: list[TimeSlot] = Field(default_factory=list)
    closed_reason: Optional[str] = None


class AvailabilityResponse(BaseModel):
    """Slots for a date range, as rendered by the booking calendar."""
    days: list[ScheduleDay] = Field(default_factory=list)
    timezone: str
