"""
Overlap detection between a candidate interval and existing intervals.

One predicate is used for every comparison (booking vs booking and
booking vs break): half-open intervals conflict when
``candidate_start < other_end and candidate_end > other_start``.
Intervals that only touch never conflict.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Union

from booking_engine.intervals import Interval, to_utc
from booking_engine.schemas import Booking, BookingStatus

logger = logging.getLogger(__name__)

Occupied = Union[Interval, Booking]


def intervals_overlap(
    start: datetime, end: datetime, other_start: datetime, other_end: datetime
) -> bool:
    """Half-open overlap test, evaluated on UTC instants."""
    return to_utc(start) < to_utc(other_end) and to_utc(end) > to_utc(other_start)


def _bounds(item: Occupied) -> tuple[datetime, datetime]:
    if isinstance(item, Booking):
        return item.start_time, item.end_time
    return item.start, item.end


def find_conflicts(
    candidate: Interval,
    occupied: Iterable[Occupied],
    exclude_booking_id: Optional[str] = None,
) -> list[Occupied]:
    """Return every occupied item the candidate overlaps.

    Cancelled bookings never conflict. ``exclude_booking_id`` skips the
    booking being rescheduled so it does not collide with itself.
    """
    conflicts: list[Occupied] = []
    for item in occupied:
        if isinstance(item, Booking):
            if item.status == BookingStatus.CANCELLED or item.id == exclude_booking_id:
                continue
        other_start, other_end = _bounds(item)
        if intervals_overlap(candidate.start, candidate.end, other_start, other_end):
            conflicts.append(item)
    if conflicts:
        logger.debug(
            "Interval %s-%s conflicts with %d item(s)",
            candidate.start.isoformat(), candidate.end.isoformat(), len(conflicts),
        )
    return conflicts


def has_conflict(
    candidate: Interval,
    occupied: Iterable[Occupied],
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return bool(find_conflicts(candidate, occupied, exclude_booking_id))
