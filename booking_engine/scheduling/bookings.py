"""
Booking lifecycle manager: create, cancel, reschedule and status changes.

Every mutation validates policy against the provider's schedule settings,
pre-checks conflicts against current bookings and then writes through the
store, whose exclusion constraint is the final word on double booking.
A write rejected by that constraint surfaces as ``ConflictError``; any
other backend failure surfaces as ``PersistenceError``.

Usage:
    manager = BookingManager(store, dispatcher=NotificationDispatcher(store))
    series = await manager.create_booking(request, Actor(user_id="u-1"))
    await manager.cancel_booking(series.parent.id, Actor(user_id="u-1"))
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from booking_engine.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    PolicyViolation,
    UnauthorizedError,
    ValidationError,
)
from booking_engine.intervals import Interval, local_date, to_utc
from booking_engine.logging_context import get_request_logger, set_request_id
from booking_engine.notifications import NotificationDispatcher
from booking_engine.scheduling.availability import AvailabilityResolver, booking_window, read_store
from booking_engine.scheduling.conflicts import find_conflicts
from booking_engine.scheduling.lifecycle import BookingAction, BookingStateMachine
from booking_engine.scheduling.recurrence import build_occurrences
from booking_engine.schemas import (
    OCCUPYING_STATUSES,
    OPEN_STATUSES,
    Actor,
    ActorRole,
    Booking,
    BookingRequest,
    BookingStatus,
    NotificationType,
    ScheduleSettings,
    SchedulingEvent,
    SchedulingLogEntry,
    Service,
)
from booking_engine.schemas.base import Clock, utc_now
from booking_engine.storage import ConstraintViolation, SchedulingStore, StoreError

logger = get_request_logger(__name__)

# Notification emitted after each status change
STATUS_NOTIFICATIONS: dict[BookingStatus, NotificationType] = {
    BookingStatus.CONFIRMED: NotificationType.CONFIRMATION,
    BookingStatus.CANCELLED: NotificationType.CANCELLATION,
    BookingStatus.COMPLETED: NotificationType.MODIFICATION,
    BookingStatus.NO_SHOW: NotificationType.MODIFICATION,
}


@dataclass
class BookingSeries:
    """A created booking and the occurrences generated from its recurrence rule."""
    parent: Booking
    occurrences: list[Booking] = field(default_factory=list)

    @property
    def bookings(self) -> list[Booking]:
        return [self.parent, *self.occurrences]


class BookingManager:
    """
    Applies booking lifecycle operations for one store.

    ``dispatcher`` is optional; without it no notifications are sent.
    ``clock`` is injectable so policy windows can be tested against a
    fixed instant.
    """

    def __init__(
        self,
        store: SchedulingStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Clock = utc_now,
        resolver: Optional[AvailabilityResolver] = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.resolver = resolver or AvailabilityResolver(store, clock=clock)

    # --- Queries ---

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self._read(self.store.get_booking(booking_id))
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def list_user_bookings(
        self, user_id: str, statuses: Optional[Sequence[BookingStatus]] = None
    ) -> list[Booking]:
        """A user's bookings ordered by start time."""
        return await self._read(self.store.list_bookings(user_id=user_id, statuses=statuses))

    async def list_series(self, booking_id: str) -> list[Booking]:
        """The parent booking and every generated occurrence of its series."""
        booking = await self.get_booking(booking_id)
        return await self._read(self.store.list_bookings(series_id=booking.series_id))

    # --- Create ---

    async def create_booking(
        self, request: Union[BookingRequest, dict[str, Any]], actor: Actor
    ) -> BookingSeries:
        """
        Create a booking, plus its occurrences when a recurrence rule is given.

        The parent and all occurrences are inserted in one batch: either
        the whole series is stored or none of it is.

        Raises:
            ValidationError: Malformed request or timezone.
            NotFoundError: Unknown service or provider.
            PolicyViolation: Outside the advance window, on a holiday or
                outside the provider's availability.
            ConflictError: The interval (or any occurrence) is taken.
            PersistenceError: The store failed.
        """
        set_request_id()
        request = self._parse_request(request)
        service = await self._load_service(request.service_id, request.provider_id)
        provider = await self.resolver.get_provider(request.provider_id)
        tz = self.resolver.resolve_timezone(provider, request.timezone)
        schedule = await self.resolver.load_settings(provider.id)
        now = self.clock()

        candidate = Interval(
            request.start_time, request.start_time + timedelta(minutes=service.duration)
        )
        await self._check_bookable(candidate, tz, service, schedule, now)
        await self._check_conflicts(provider.id, candidate)

        parent = Booking(
            user_id=actor.user_id,
            provider_id=provider.id,
            service_id=service.id,
            start_time=candidate.start,
            end_time=candidate.end,
            status=BookingStatus.PENDING,
            notes=request.notes,
            recurrence_rule=request.recurrence_rule,
            timezone=tz,
            created_at=now,
            updated_at=now,
        )
        occurrences = build_occurrences(parent, tz)
        stored = await self._write(self.store.insert_bookings([parent, *occurrences]))
        series = BookingSeries(parent=stored[0], occurrences=stored[1:])

        logger.info(
            "Booking created: %s for user %s at %s (%d occurrence(s))",
            series.parent.id, actor.user_id, series.parent.start_time.isoformat(),
            len(series.occurrences),
        )
        for booking in series.bookings:
            await self._log(
                SchedulingEvent.BOOKING_CREATED, booking, actor,
                {"status": booking.status.value, "start_time": booking.start_time.isoformat()},
            )
        await self._notify(series.parent, NotificationType.CONFIRMATION)
        return series

    # --- Cancel / reschedule (requester operations) ---

    async def cancel_booking(
        self, booking_id: str, actor: Actor, cancel_all: bool = False
    ) -> list[Booking]:
        """
        Cancel a booking and, with ``cancel_all``, the rest of its series.

        Series members are cancelled only when they are still open, still
        in the future and outside the cancellation time limit; members that
        fail those checks are left unchanged.

        Raises:
            NotFoundError: Unknown booking.
            UnauthorizedError: The actor does not own the booking.
            InvalidTransitionError: The booking is already terminal.
            PolicyViolation: Cancellation is disabled or the time limit passed.
        """
        set_request_id()
        booking = await self.get_booking(booking_id)
        self._require_owner(booking, actor)
        BookingStateMachine.next_status(booking.status, BookingAction.CANCEL)

        schedule = await self.resolver.load_settings(booking.provider_id)
        if not schedule.allow_cancellation:
            raise PolicyViolation(
                "This provider does not allow cancellations.", booking_id=booking.id
            )
        now = self.clock()
        self._check_time_limit(booking, schedule, now, "cancel")

        targets = [booking]
        if cancel_all:
            series = await self._read(self.store.list_bookings(series_id=booking.series_id))
            targets.extend(
                member for member in series
                if member.id != booking.id
                and member.status in OPEN_STATUSES
                and member.start_time > to_utc(now)
                and not self._within_time_limit(member, schedule, now)
            )

        changes = {
            "status": BookingStatus.CANCELLED,
            "cancelled_at": now,
            "cancelled_by": actor.user_id,
            "updated_at": now,
        }
        cancelled = await self._write(
            self.store.update_bookings([b.id for b in targets], changes)
        )
        logger.info("Cancelled %d booking(s) starting with %s", len(cancelled), booking.id)

        previous = {b.id: b.status for b in targets}
        for updated in cancelled:
            await self._log(
                SchedulingEvent.STATUS_CHANGED, updated, actor,
                {"from": previous[updated.id].value, "to": updated.status.value},
            )
            await self._notify(updated, NotificationType.CANCELLATION)
        return cancelled

    async def reschedule_booking(
        self, booking_id: str, actor: Actor, new_start: datetime
    ) -> Booking:
        """
        Move a booking to a new start time, keeping its service duration.

        The cancellation time limit applies to the current start time.
        ``allow_cancellation`` does not block rescheduling.

        Raises:
            NotFoundError, UnauthorizedError, InvalidTransitionError,
            PolicyViolation, ConflictError, PersistenceError.
        """
        set_request_id()
        booking = await self.get_booking(booking_id)
        self._require_owner(booking, actor)
        if booking.status not in OPEN_STATUSES:
            raise InvalidTransitionError(
                f"Cannot reschedule a {booking.status.value} booking.",
                status=booking.status.value,
            )

        schedule = await self.resolver.load_settings(booking.provider_id)
        now = self.clock()
        self._check_time_limit(booking, schedule, now, "reschedule")

        service = await self._load_service(booking.service_id, booking.provider_id)
        provider = await self.resolver.get_provider(booking.provider_id)
        tz = self.resolver.resolve_timezone(provider, booking.timezone)
        start = to_utc(new_start)
        candidate = Interval(start, start + timedelta(minutes=service.duration))
        await self._check_bookable(candidate, tz, service, schedule, now)
        await self._check_conflicts(booking.provider_id, candidate, exclude_booking_id=booking.id)

        updated = await self._write(self.store.update_booking(
            booking.id,
            {"start_time": candidate.start, "end_time": candidate.end, "updated_at": now},
        ))
        logger.info(
            "Booking rescheduled: %s from %s to %s",
            booking.id, booking.start_time.isoformat(), updated.start_time.isoformat(),
        )
        await self._log(
            SchedulingEvent.BOOKING_UPDATED, updated, actor,
            {
                "previous_start_time": booking.start_time.isoformat(),
                "start_time": updated.start_time.isoformat(),
            },
        )
        await self._notify(updated, NotificationType.MODIFICATION)
        return updated

    # --- Provider status changes ---

    async def confirm_booking(self, booking_id: str, actor: Actor) -> Booking:
        return await self._change_status(booking_id, actor, BookingAction.CONFIRM)

    async def complete_booking(self, booking_id: str, actor: Actor) -> Booking:
        return await self._change_status(booking_id, actor, BookingAction.COMPLETE)

    async def mark_no_show(self, booking_id: str, actor: Actor) -> Booking:
        return await self._change_status(booking_id, actor, BookingAction.MARK_NO_SHOW)

    async def _change_status(self, booking_id: str, actor: Actor, action: BookingAction) -> Booking:
        set_request_id()
        booking = await self.get_booking(booking_id)
        is_provider = actor.role == ActorRole.PROVIDER and actor.user_id == booking.provider_id
        if not (is_provider or actor.is_admin):
            raise UnauthorizedError(
                f"Only the provider or an admin may {action.value.replace('_', ' ')} "
                f"booking {booking.id}.",
                booking_id=booking.id,
            )
        new_status = BookingStateMachine.next_status(booking.status, action)
        updated = await self._write(self.store.update_booking(
            booking.id, {"status": new_status, "updated_at": self.clock()}
        ))
        logger.info("Booking %s: %s -> %s", booking.id, booking.status.value, new_status.value)
        await self._log(
            SchedulingEvent.STATUS_CHANGED, updated, actor,
            {"from": booking.status.value, "to": new_status.value},
        )
        await self._notify(updated, STATUS_NOTIFICATIONS[new_status])
        return updated

    # --- Validation helpers ---

    @staticmethod
    def _parse_request(request: Union[BookingRequest, dict[str, Any]]) -> BookingRequest:
        if isinstance(request, BookingRequest):
            return request
        try:
            return BookingRequest.model_validate(request)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid booking request: {exc.error_count()} error(s).",
                errors=[
                    {"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()
                ],
            ) from exc

    async def _load_service(self, service_id: str, provider_id: str) -> Service:
        service = await self._read(self.store.get_service(service_id))
        if service is None:
            raise NotFoundError("Service", service_id)
        if service.provider_id != provider_id:
            raise ValidationError(
                f"Service {service_id} is not offered by provider {provider_id}.",
                service_id=service_id,
                provider_id=provider_id,
            )
        return service

    @staticmethod
    def _require_owner(booking: Booking, actor: Actor) -> None:
        if booking.user_id != actor.user_id:
            raise UnauthorizedError(
                f"User {actor.user_id} does not own booking {booking.id}.",
                booking_id=booking.id,
            )

    @staticmethod
    def _within_time_limit(booking: Booking, schedule: ScheduleSettings, now: datetime) -> bool:
        limit = timedelta(hours=schedule.cancellation_time_limit)
        return booking.start_time - to_utc(now) < limit

    def _check_time_limit(
        self, booking: Booking, schedule: ScheduleSettings, now: datetime, verb: str
    ) -> None:
        if self._within_time_limit(booking, schedule, now):
            raise PolicyViolation(
                f"Bookings can only be changed up to {schedule.cancellation_time_limit} "
                f"hour(s) before the start time; too late to {verb} booking {booking.id}.",
                booking_id=booking.id,
                cancellation_time_limit=schedule.cancellation_time_limit,
            )

    async def _check_bookable(
        self,
        candidate: Interval,
        tz: str,
        service: Service,
        schedule: ScheduleSettings,
        now: datetime,
    ) -> None:
        """Advance window, holiday and availability checks for one interval."""
        day = local_date(candidate.start, tz)
        if schedule.is_holiday(day):
            raise PolicyViolation(f"{day.isoformat()} is a holiday.", date=day.isoformat())

        earliest, latest = booking_window(schedule, now)
        if candidate.start < to_utc(now):
            raise PolicyViolation("Cannot book a time in the past.")
        if candidate.start < earliest:
            raise PolicyViolation(
                f"Bookings must be made at least {schedule.min_advance_time} minute(s) in advance.",
                min_advance_time=schedule.min_advance_time,
            )
        if candidate.start > latest:
            raise PolicyViolation(
                f"Bookings can be made at most {schedule.max_advance_time} day(s) in advance.",
                max_advance_time=schedule.max_advance_time,
            )

        availability = await self._read(self.store.list_availability(service.provider_id))
        breaks = await self._read(self.store.list_break_times(service.provider_id))
        resolved = self.resolver.resolve_loaded(
            day, tz, service, availability, breaks, schedule, now
        )
        if not any(window.contains(candidate) for window in resolved.windows):
            raise PolicyViolation(
                f"The requested time is outside the provider's availability on {day.isoformat()}.",
                date=day.isoformat(),
                closed_reason=resolved.closed_reason.value if resolved.closed_reason else None,
            )

    async def _check_conflicts(
        self, provider_id: str, candidate: Interval, exclude_booking_id: Optional[str] = None
    ) -> None:
        existing = await self._read(self.store.list_bookings(
            provider_id=provider_id,
            start=candidate.start,
            end=candidate.end,
            statuses=OCCUPYING_STATUSES,
        ))
        conflicts = find_conflicts(candidate, existing, exclude_booking_id)
        if conflicts:
            raise ConflictError(
                "The requested time overlaps an existing booking.",
                conflicting_ids=[b.id for b in conflicts],
            )

    # --- Store access ---

    @staticmethod
    async def _read(awaitable):
        return await read_store(awaitable)

    @staticmethod
    async def _write(awaitable):
        try:
            return await awaitable
        except ConstraintViolation as exc:
            logger.warning("Write rejected by exclusion constraint: %s", exc)
            raise ConflictError(
                "The requested time overlaps an existing booking.",
                conflicting_ids=exc.conflicting_ids,
            ) from exc
        except StoreError as exc:
            raise PersistenceError(f"Store write failed: {exc}") from exc

    async def _log(
        self, event: SchedulingEvent, booking: Booking, actor: Actor, details: dict[str, Any]
    ) -> None:
        entry = SchedulingLogEntry(
            event_type=event,
            booking_id=booking.id,
            user_id=actor.user_id,
            provider_id=booking.provider_id,
            details=details,
            created_at=self.clock(),
        )
        try:
            await self.store.insert_log(entry)
        except StoreError:
            # booking write is already committed
            logger.exception("Failed to record %s for booking %s", event.value, booking.id)

    async def _notify(self, booking: Booking, notification_type: NotificationType) -> None:
        if self.dispatcher is None:
            return
        await self.dispatcher.dispatch(booking, notification_type)
