"""
Availability resolution for one provider and one calendar day.

Combines, in the provider's local timezone:
- recurring weekly availability rows and date-specific override rows
- working hours from the provider's schedule settings
- recurring and date-specific break times
- holiday dates and the min/max advance-booking window

Usage:
    resolver = AvailabilityResolver(store)
    day = await resolver.resolve_day(provider_id, date(2024, 6, 5), service, "America/New_York")
    if day.is_open:
        for window in day.windows: ...
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Union

from booking_engine.config import settings
from booking_engine.errors import NotFoundError, PersistenceError, ValidationError
from booking_engine.intervals import (
    Interval,
    clip_intervals,
    combine_local,
    day_of_week,
    get_zone,
    local_day_bounds,
    merge_intervals,
    subtract_intervals,
    to_utc,
)
from booking_engine.schemas import (
    Availability,
    BreakTime,
    ScheduleSettings,
    Service,
    ServiceProvider,
)
from booking_engine.schemas.base import Clock, utc_now
from booking_engine.storage import SchedulingStore, StoreError

logger = logging.getLogger(__name__)


async def read_store(awaitable):
    """Await a store read, surfacing backend failures as PersistenceError."""
    try:
        return await awaitable
    except StoreError as exc:
        raise PersistenceError(f"Store read failed: {exc}") from exc


class ClosedReason(str, Enum):
    """Why a day or a slot cannot be booked."""
    HOLIDAY = "holiday"
    PAST = "past"
    MIN_ADVANCE = "min_advance"
    MAX_ADVANCE = "max_advance"
    NON_WORKING_DAY = "non_working_day"
    NO_AVAILABILITY = "no_availability"


@dataclass
class DayAvailability:
    """Resolved open windows for one local calendar day."""
    date: date
    timezone: str
    windows: list[Interval] = field(default_factory=list)
    closed_reason: Optional[ClosedReason] = None

    @property
    def is_open(self) -> bool:
        return bool(self.windows)


def default_settings(provider_id: str) -> ScheduleSettings:
    """Policy used when a provider never saved schedule settings."""
    return ScheduleSettings(provider_id=provider_id)


def booking_window(schedule: ScheduleSettings, now: datetime) -> tuple[datetime, datetime]:
    """Earliest and latest instants a booking may start at, in UTC."""
    now_utc = to_utc(now)
    earliest = now_utc + timedelta(minutes=schedule.min_advance_time)
    latest = now_utc + timedelta(days=schedule.max_advance_time)
    return earliest, latest


def day_policy_reason(
    day: date, tz_name: str, schedule: ScheduleSettings, now: datetime
) -> Optional[ClosedReason]:
    """Day-level policy check; None when the day may hold bookable slots."""
    if schedule.is_holiday(day):
        return ClosedReason.HOLIDAY
    day_start, day_end = local_day_bounds(day, tz_name)
    if day_end <= to_utc(now):
        return ClosedReason.PAST
    earliest, latest = booking_window(schedule, now)
    if day_end <= earliest:
        return ClosedReason.MIN_ADVANCE
    if day_start > latest:
        return ClosedReason.MAX_ADVANCE
    return None


def _row_interval(row: Union[Availability, BreakTime], day: date, tz_name: str) -> Interval:
    return Interval(
        combine_local(day, row.start_time, tz_name),
        combine_local(day, row.end_time, tz_name),
    )


def resolve_windows(
    day: date,
    tz_name: str,
    availability: Iterable[Availability],
    breaks: Iterable[BreakTime],
    schedule: ScheduleSettings,
    override_policy: Optional[str] = None,
) -> tuple[list[Interval], Optional[ClosedReason]]:
    """Open local windows for a day before advance-time policy is applied.

    A date-specific availability row replaces the recurring rows for that
    date under the ``replace`` policy and is unioned with them under
    ``merge``. Working hours gate and clip recurring rows only.
    """
    policy = override_policy or settings.scheduling.override_policy
    rows = list(availability)
    recurring = [r for r in rows if r.is_recurring and r.applies_to(day)]
    overrides = [r for r in rows if not r.is_recurring and r.applies_to(day)]

    reason: Optional[ClosedReason] = None
    recurring_windows: list[Interval] = []
    if not (overrides and policy == "replace"):
        recurring_windows = [_row_interval(r, day, tz_name) for r in recurring]
        hours = schedule.working_hours.get(day_of_week(day))
        if hours is not None and not hours.is_working_day:
            recurring_windows = []
            reason = ClosedReason.NON_WORKING_DAY
        elif hours is not None and recurring_windows:
            bounds = Interval(
                combine_local(day, hours.start, tz_name),
                combine_local(day, hours.end, tz_name),
            )
            recurring_windows = clip_intervals(recurring_windows, bounds)

    windows = merge_intervals(
        recurring_windows + [_row_interval(r, day, tz_name) for r in overrides]
    )
    windows = subtract_intervals(windows, break_intervals(breaks, day, tz_name))

    if not windows:
        return [], reason or ClosedReason.NO_AVAILABILITY
    return windows, None


def break_intervals(breaks: Iterable[BreakTime], day: date, tz_name: str) -> list[Interval]:
    """Break times applying to a day as local intervals."""
    return [_row_interval(b, day, tz_name) for b in breaks if b.applies_to(day)]


class AvailabilityResolver:
    """Loads provider configuration from the store and resolves open windows."""

    def __init__(
        self,
        store: SchedulingStore,
        clock: Clock = utc_now,
        override_policy: Optional[str] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.override_policy = override_policy or settings.scheduling.override_policy

    async def get_provider(self, provider_id: str) -> ServiceProvider:
        provider = await read_store(self.store.get_provider(provider_id))
        if provider is None:
            raise NotFoundError("Provider", provider_id)
        return provider

    async def load_settings(self, provider_id: str) -> ScheduleSettings:
        found = await read_store(self.store.get_schedule_settings(provider_id))
        return found or default_settings(provider_id)

    def resolve_timezone(self, provider: ServiceProvider, tz_name: Optional[str]) -> str:
        """Explicit timezone, else the provider's, else the configured default."""
        name = tz_name or provider.timezone or settings.scheduling.default_timezone
        get_zone(name)
        return name

    async def resolve_day(
        self,
        provider_id: str,
        day: date,
        service: Service,
        tz_name: Optional[str] = None,
    ) -> DayAvailability:
        provider = await self.get_provider(provider_id)
        tz = self.resolve_timezone(provider, tz_name)
        schedule = await self.load_settings(provider_id)
        availability = await read_store(self.store.list_availability(provider_id))
        breaks = await read_store(self.store.list_break_times(provider_id))
        return self.resolve_loaded(day, tz, service, availability, breaks, schedule, self.clock())

    def resolve_loaded(
        self,
        day: date,
        tz: str,
        service: Service,
        availability: list[Availability],
        breaks: list[BreakTime],
        schedule: ScheduleSettings,
        now: datetime,
    ) -> DayAvailability:
        reason = day_policy_reason(day, tz, schedule, now)
        if reason is not None:
            logger.debug("Day %s closed: %s", day.isoformat(), reason.value)
            return DayAvailability(date=day, timezone=tz, closed_reason=reason)

        windows, reason = resolve_windows(
            day, tz, availability, breaks, schedule, self.override_policy
        )
        # windows too short for one service are not bookable
        windows = [w for w in windows if w.duration_minutes >= service.duration]
        if not windows:
            return DayAvailability(
                date=day, timezone=tz, closed_reason=reason or ClosedReason.NO_AVAILABILITY
            )
        return DayAvailability(date=day, timezone=tz, windows=windows)

    async def get_available_days(
        self,
        provider_id: str,
        service: Service,
        year: int,
        month: int,
        tz_name: Optional[str] = None,
    ) -> list[date]:
        """Dates of a month with at least one open window."""
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be 1-12, got {month}.")
        provider = await self.get_provider(provider_id)
        tz = self.resolve_timezone(provider, tz_name)
        schedule = await self.load_settings(provider_id)
        availability = await read_store(self.store.list_availability(provider_id))
        breaks = await read_store(self.store.list_break_times(provider_id))
        now = self.clock()

        _, days_in_month = calendar.monthrange(year, month)
        open_days = []
        for day_number in range(1, days_in_month + 1):
            day = date(year, month, day_number)
            resolved = self.resolve_loaded(day, tz, service, availability, breaks, schedule, now)
            if resolved.is_open:
                open_days.append(day)
        return open_days
