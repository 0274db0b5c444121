"""
Slot generation for the booking calendar.

Slots are cut from each open window starting at the window's start:
each slot lasts ``duration`` minutes and the next one begins
``duration + buffer_time`` minutes later, as long as the slot still ends
inside the window. Stepping happens on UTC instants so a slot is always
exactly ``duration`` minutes long, including on DST transition days.

Every candidate is then checked against existing bookings, breaks and
the advance-booking policy; the first failing check becomes the slot's
``unavailable_reason``.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from booking_engine.config import settings
from booking_engine.errors import NotFoundError, ValidationError
from booking_engine.intervals import Interval, local_day_bounds, to_utc
from booking_engine.schemas import (
    OCCUPYING_STATUSES,
    AvailabilityResponse,
    Booking,
    ScheduleDay,
    ScheduleSettings,
    Service,
    TimeSlot,
)
from booking_engine.scheduling.availability import (
    AvailabilityResolver,
    ClosedReason,
    booking_window,
    break_intervals,
    read_store,
)
from booking_engine.scheduling.conflicts import has_conflict
from booking_engine.schemas.base import Clock, utc_now
from booking_engine.storage import SchedulingStore

logger = logging.getLogger(__name__)

BOOKED = "booked"
ON_BREAK = "break"


def generate_slot_intervals(
    windows: Iterable[Interval], duration: int, buffer_time: int = 0
) -> list[Interval]:
    """Cut windows into fixed-size candidate slots, ordered by start (UTC)."""
    if duration <= 0:
        raise ValidationError(f"Service duration must be positive, got {duration}.")
    if buffer_time < 0:
        raise ValidationError(f"Buffer time must not be negative, got {buffer_time}.")

    length = timedelta(minutes=duration)
    step = timedelta(minutes=duration + buffer_time)
    slots: list[Interval] = []
    for window in windows:
        cursor = to_utc(window.start)
        window_end = to_utc(window.end)
        while cursor + length <= window_end:
            slots.append(Interval(cursor, cursor + length))
            cursor += step
    slots.sort(key=lambda s: s.start)
    return slots


def evaluate_slot(
    slot: Interval,
    day: date,
    bookings: list[Booking],
    breaks: list[Interval],
    schedule: ScheduleSettings,
    now: datetime,
) -> TimeSlot:
    """Apply booking, break and policy checks to one candidate slot."""
    earliest, latest = booking_window(schedule, now)
    is_booked = has_conflict(slot, bookings)

    reason: Optional[str] = None
    if schedule.is_holiday(day):
        reason = ClosedReason.HOLIDAY.value
    elif slot.start < to_utc(now):
        reason = ClosedReason.PAST.value
    elif slot.start < earliest:
        reason = ClosedReason.MIN_ADVANCE.value
    elif slot.start > latest:
        reason = ClosedReason.MAX_ADVANCE.value
    elif is_booked:
        reason = BOOKED
    elif has_conflict(slot, breaks):
        reason = ON_BREAK

    return TimeSlot(
        id=slot.start.isoformat(),
        start_time=slot.start,
        end_time=slot.end,
        is_available=reason is None,
        is_booked=is_booked,
        unavailable_reason=reason,
    )


class SlotGenerator:
    """Builds the ordered slot list for a provider/service pair."""

    def __init__(
        self,
        store: SchedulingStore,
        resolver: Optional[AvailabilityResolver] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.clock = clock
        self.resolver = resolver or AvailabilityResolver(store, clock=clock)

    async def _load_service(self, provider_id: str, service_id: str) -> Service:
        service = await read_store(self.store.get_service(service_id))
        if service is None:
            raise NotFoundError("Service", service_id)
        if service.provider_id != provider_id:
            raise ValidationError(
                f"Service {service_id} is not offered by provider {provider_id}.",
                service_id=service_id,
                provider_id=provider_id,
            )
        return service

    async def get_time_slots(
        self,
        provider_id: str,
        service_id: str,
        day: date,
        tz_name: Optional[str] = None,
        only_available: bool = False,
    ) -> list[TimeSlot]:
        """Slots for one local day, ascending by start time."""
        response = await self.get_schedule(
            provider_id, service_id, day, day, tz_name, only_available
        )
        return response.days[0].time_slots

    async def get_schedule(
        self,
        provider_id: str,
        service_id: str,
        start_date: date,
        end_date: date,
        tz_name: Optional[str] = None,
        only_available: bool = False,
    ) -> AvailabilityResponse:
        """One ScheduleDay per date in [start_date, end_date]."""
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date.")
        span = (end_date - start_date).days + 1
        max_span = settings.scheduling.max_schedule_range_days
        if span > max_span:
            raise ValidationError(f"Date range of {span} days exceeds the {max_span}-day limit.")

        service = await self._load_service(provider_id, service_id)
        provider = await self.resolver.get_provider(provider_id)
        tz = self.resolver.resolve_timezone(provider, tz_name)
        schedule = await self.resolver.load_settings(provider_id)
        availability = await read_store(self.store.list_availability(provider_id))
        breaks = await read_store(self.store.list_break_times(provider_id))

        range_start, _ = local_day_bounds(start_date, tz)
        _, range_end = local_day_bounds(end_date, tz)
        bookings = await read_store(self.store.list_bookings(
            provider_id=provider_id,
            start=range_start,
            end=range_end,
            statuses=OCCUPYING_STATUSES,
        ))
        now = self.clock()

        days: list[ScheduleDay] = []
        for offset in range(span):
            day = start_date + timedelta(days=offset)
            resolved = self.resolver.resolve_loaded(
                day, tz, service, availability, breaks, schedule, now
            )
            day_breaks = break_intervals(breaks, day, tz)
            slots = [
                evaluate_slot(candidate, day, bookings, day_breaks, schedule, now)
                for candidate in generate_slot_intervals(
                    resolved.windows, service.duration, service.buffer_time
                )
            ]
            if only_available:
                slots = [s for s in slots if s.is_available]
            days.append(ScheduleDay(
                date=day,
                time_slots=slots,
                closed_reason=resolved.closed_reason.value if resolved.closed_reason else None,
            ))

        logger.debug(
            "Generated slots for provider %s service %s over %d day(s)",
            provider_id, service_id, span,
        )
        return AvailabilityResponse(days=days, timezone=tz)
