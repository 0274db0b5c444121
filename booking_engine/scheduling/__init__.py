from booking_engine.scheduling.availability import (
    AvailabilityResolver,
    ClosedReason,
    DayAvailability,
    resolve_windows,
)
from booking_engine.scheduling.bookings import BookingManager, BookingSeries
from booking_engine.scheduling.conflicts import find_conflicts, has_conflict, intervals_overlap
from booking_engine.scheduling.lifecycle import BookingAction, BookingStateMachine
from booking_engine.scheduling.recurrence import build_occurrences, expand_occurrences
from booking_engine.scheduling.slots import SlotGenerator, generate_slot_intervals

__all__ = [
    "AvailabilityResolver",
    "BookingAction",
    "BookingManager",
    "BookingSeries",
    "BookingStateMachine",
    "ClosedReason",
    "DayAvailability",
    "SlotGenerator",
    "build_occurrences",
    "expand_occurrences",
    "find_conflicts",
    "generate_slot_intervals",
    "has_conflict",
    "intervals_overlap",
    "resolve_windows",
]
