"""
Shared timezone conversion, HH:MM parsing and interval arithmetic.

Local calendar questions (which weekday, which day a slot falls on,
what "09:00" means) are answered in the provider's IANA timezone.
Elapsed-time questions (how long, does it overlap) are answered on UTC
instants so that DST transitions never stretch or shrink an interval.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_engine.errors import ValidationError

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name. Never falls back to local or UTC."""
    if not tz_name or not tz_name.strip():
        raise ValidationError("Timezone name must not be empty.")
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {tz_name!r}", timezone=tz_name) from None


def _require_aware(instant: datetime) -> None:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValidationError(f"Instant {instant.isoformat()} has no timezone.")


def to_utc(instant: datetime) -> datetime:
    """Convert an aware datetime to UTC."""
    _require_aware(instant)
    return instant.astimezone(timezone.utc)


def to_zone(instant: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime to the named timezone."""
    _require_aware(instant)
    return instant.astimezone(get_zone(tz_name))


def parse_hhmm(value: str) -> time:
    """Parse a 24h "HH:MM" string (00:00 to 23:59)."""
    match = HHMM_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM.", value=value)
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def combine_local(day: date, hhmm: str, tz_name: str) -> datetime:
    """Build the aware local instant for a calendar date and a wall-clock time.

    Wall times inside a spring-forward gap resolve with the pre-transition
    offset (``fold=0``), which lands them just after the gap in UTC.
    """
    return datetime.combine(day, parse_hhmm(hhmm), tzinfo=get_zone(tz_name))


def parse_iso_date(value: str) -> date:
    """Parse a YYYY-MM-DD string."""
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD.", value=value) from None


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant with an explicit offset and return it in UTC."""
    raw = value.strip() if isinstance(value, str) else ""
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid instant {value!r}.", value=value) from None
    return to_utc(parsed)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole elapsed minutes from start to end (negative if end < start)."""
    delta = to_utc(end) - to_utc(start)
    return int(delta.total_seconds() // 60)


def day_of_week(day: date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day. 23 or 25 hours long on DST days."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time(0, 0), tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=zone)
    return to_utc(start), to_utc(end)


def local_date(instant: datetime, tz_name: str) -> date:
    """Calendar date of an instant as seen in the named timezone."""
    return to_zone(instant, tz_name).date()


@dataclass(frozen=True)
class Interval:
    """Half-open time interval [start, end) between two aware instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        _require_aware(self.start)
        _require_aware(self.end)
        if self.end <= self.start:
            raise ValidationError(
                f"Interval end {self.end.isoformat()} must be after start {self.start.isoformat()}."
            )

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start, self.end)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and self.end > other.start

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_utc(self) -> "Interval":
        return Interval(to_utc(self.start), to_utc(self.end))

    def to_zone(self, tz_name: str) -> "Interval":
        return Interval(to_zone(self.start, tz_name), to_zone(self.end, tz_name))


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Merge overlapping or adjacent intervals; result is sorted by start."""
    ordered = sorted(intervals, key=lambda i: to_utc(i.start))
    merged: list[Interval] = []
    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
            continue
        merged.append(current)
    return merged


def subtract_intervals(windows: Iterable[Interval], cuts: Iterable[Interval]) -> list[Interval]:
    """Remove every cut from every window, keeping the remaining pieces."""
    cut_list = merge_intervals(cuts)
    result: list[Interval] = []
    for window in merge_intervals(windows):
        pieces = [window]
        for cut in cut_list:
            next_pieces: list[Interval] = []
            for piece in pieces:
                if not piece.overlaps(cut):
                    next_pieces.append(piece)
                    continue
                if piece.start < cut.start:
                    next_pieces.append(Interval(piece.start, cut.start))
                if cut.end < piece.end:
                    next_pieces.append(Interval(cut.end, piece.end))
            pieces = next_pieces
        result.extend(pieces)
    return result


def clip_intervals(windows: Iterable[Interval], bounds: Interval) -> list[Interval]:
    """Intersect each window with bounds, dropping windows that fall outside."""
    clipped: list[Interval] = []
    for window in windows:
        start = max(window.start, bounds.start)
        end = min(window.end, bounds.end)
        if start < end:
            clipped.append(Interval(start, end))
    return clipped
