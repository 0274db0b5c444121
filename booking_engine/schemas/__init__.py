from booking_engine.schemas.booking_schema import (
    OCCUPYING_STATUSES,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    ActorRole,
    Booking,
    BookingRequest,
    BookingStatus,
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    SchedulingEvent,
    SchedulingLogEntry,
    WeeklyRule,
)
from booking_engine.schemas.notification_schema import (
    BookingNotification,
    DeliveryStatus,
    NotificationType,
)
from booking_engine.schemas.scheduling_schema import (
    Availability,
    AvailabilityResponse,
    BreakTime,
    ScheduleDay,
    ScheduleSettings,
    Service,
    ServiceProvider,
    TimeSlot,
    WorkingHours,
)

__all__ = [
    "OCCUPYING_STATUSES",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "Actor",
    "ActorRole",
    "Availability",
    "AvailabilityResponse",
    "Booking",
    "BookingNotification",
    "BookingRequest",
    "BookingStatus",
    "BreakTime",
    "DailyRule",
    "DeliveryStatus",
    "MonthlyRule",
    "NotificationType",
    "RecurrenceRule",
    "ScheduleDay",
    "ScheduleSettings",
    "SchedulingEvent",
    "SchedulingLogEntry",
    "Service",
    "ServiceProvider",
    "TimeSlot",
    "WeeklyRule",
]
