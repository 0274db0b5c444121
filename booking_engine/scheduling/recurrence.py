"""
Expansion of a recurring booking into its generated occurrences.

The walk runs day by day over local calendar dates in the booking's
timezone, starting the day after the parent booking. Every occurrence
keeps the parent's local wall-clock time, so a 10:00 weekly booking
stays at 10:00 across a DST transition while its UTC instant shifts.

Bounds:
- ``until`` is an inclusive local date
- ``count`` counts the parent, so ``count=4`` yields three occurrences
- with neither, the configured horizon applies
- a hard span cap ends the walk for rules that can never match

Usage:
    starts = expand_occurrences(parent.start_time, WeeklyRule(count=4), "America/New_York")
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from booking_engine.config import MONTH_OVERFLOW_POLICIES, settings
from booking_engine.errors import ValidationError
from booking_engine.intervals import day_of_week, get_zone, to_utc, to_zone
from booking_engine.schemas import (
    Booking,
    BookingStatus,
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    WeeklyRule,
)

logger = logging.getLogger(__name__)


def _week_start(day: date) -> date:
    """Sunday that opens the week containing ``day``."""
    return day - timedelta(days=day_of_week(day))


def _months_between(first: date, second: date) -> int:
    return (second.year - first.year) * 12 + second.month - first.month


def _matches_monthly(day: date, month_days: list[int], month_overflow: str) -> bool:
    if day.day in month_days:
        return True
    if month_overflow != "clamp":
        return False
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.day == last_day and any(md > last_day for md in month_days)


def rule_matches(rule: RecurrenceRule, anchor: date, day: date, month_overflow: str) -> bool:
    """Whether ``day`` holds an occurrence of a series anchored on ``anchor``."""
    if isinstance(rule, DailyRule):
        return (day - anchor).days % rule.interval == 0

    if isinstance(rule, WeeklyRule):
        weeks = (_week_start(day) - _week_start(anchor)).days // 7
        if weeks % rule.interval != 0:
            return False
        by_day = rule.by_day or [day_of_week(anchor)]
        return day_of_week(day) in by_day

    if isinstance(rule, MonthlyRule):
        if _months_between(anchor, day) % rule.interval != 0:
            return False
        month_days = rule.by_month_day or [anchor.day]
        return _matches_monthly(day, month_days, month_overflow)

    raise ValidationError(f"Unsupported recurrence rule: {rule!r}")


def _last_date(
    rule: RecurrenceRule, anchor: date, horizon_days: int, max_span_days: int
) -> date:
    if rule.until is not None:
        last = rule.until
    elif rule.count is not None:
        last = anchor + timedelta(days=max_span_days)
    else:
        last = anchor + timedelta(days=horizon_days)
    return min(last, anchor + timedelta(days=max_span_days))


def expand_occurrences(
    start: datetime,
    rule: RecurrenceRule,
    tz_name: str,
    horizon_days: Optional[int] = None,
    max_span_days: Optional[int] = None,
    month_overflow: Optional[str] = None,
) -> list[datetime]:
    """UTC start instants of every generated occurrence, parent excluded.

    Raises:
        ValidationError: If ``start`` is naive, the timezone is unknown
            or ``month_overflow`` is not a known policy.
    """
    horizon_days = horizon_days or settings.scheduling.recurrence_horizon_days
    max_span_days = max_span_days or settings.scheduling.recurrence_max_span_days
    month_overflow = month_overflow or settings.scheduling.month_overflow
    if month_overflow not in MONTH_OVERFLOW_POLICIES:
        raise ValidationError(f"Unknown month overflow policy: {month_overflow!r}")

    zone = get_zone(tz_name)
    local_start = to_zone(start, tz_name)
    anchor = local_start.date()
    wall_time = local_start.time().replace(tzinfo=None)

    remaining = rule.count - 1 if rule.count is not None else None
    last = _last_date(rule, anchor, horizon_days, max_span_days)

    occurrences: list[datetime] = []
    day = anchor + timedelta(days=1)
    while day <= last:
        if remaining is not None and remaining <= 0:
            break
        if rule_matches(rule, anchor, day, month_overflow):
            occurrences.append(to_utc(datetime.combine(day, wall_time, tzinfo=zone)))
            if remaining is not None:
                remaining -= 1
        day += timedelta(days=1)

    logger.debug(
        "Expanded %s rule from %s into %d occurrence(s)",
        rule.frequency, anchor.isoformat(), len(occurrences),
    )
    return occurrences


def build_occurrences(
    parent: Booking,
    tz_name: str,
    horizon_days: Optional[int] = None,
    max_span_days: Optional[int] = None,
    month_overflow: Optional[str] = None,
) -> list[Booking]:
    """Pending sibling bookings for a parent that carries a recurrence rule."""
    if parent.recurrence_rule is None:
        return []
    length = parent.end_time - parent.start_time
    return [
        Booking(
            user_id=parent.user_id,
            provider_id=parent.provider_id,
            service_id=parent.service_id,
            start_time=start,
            end_time=start + length,
            status=BookingStatus.PENDING,
            notes=parent.notes,
            timezone=parent.timezone,
            parent_booking_id=parent.id,
            created_at=parent.created_at,
            updated_at=parent.updated_at,
        )
        for start in expand_occurrences(
            parent.start_time,
            parent.recurrence_rule,
            tz_name,
            horizon_days=horizon_days,
            max_span_days=max_span_days,
            month_overflow=month_overflow,
        )
    ]
