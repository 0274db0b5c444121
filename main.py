"""
Developer console for the scheduling engine.

Seeds a demo provider into an in-memory store and runs one engine
operation against it. No database or credentials are required.

Usage:
    python main.py slots --date 2024-06-05
    python main.py slots --date 2024-06-05 --timezone Europe/London --only-available
    python main.py days --year 2024 --month 6
    python main.py book --start 2024-06-05T14:00:00Z --weekly 4
    python main.py reminders
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime, timedelta, timezone

from booking_engine.config import settings
from booking_engine.errors import SchedulingError
from booking_engine.intervals import combine_local, local_date, parse_instant, parse_iso_date, to_zone
from booking_engine.notifications import LoggingChannel, NotificationDispatcher
from booking_engine.scheduling import AvailabilityResolver, BookingManager, SlotGenerator
from booking_engine.schemas import (
    Actor,
    Availability,
    Booking,
    BookingStatus,
    BreakTime,
    ScheduleSettings,
    Service,
    ServiceProvider,
    WeeklyRule,
)
from booking_engine.storage import InMemoryStore

logger = logging.getLogger(__name__)

DEMO_PROVIDER_ID = "provider-demo"
DEMO_SERVICE_ID = "service-consult"
DEMO_USER_ID = "user-demo"
DEMO_TIMEZONE = "America/New_York"


def build_demo_store() -> InMemoryStore:
    """Provider working Monday to Friday 09:00-17:00 with a lunch break."""
    store = InMemoryStore()
    service = Service(
        id=DEMO_SERVICE_ID,
        name="Consultation",
        description="30 minute consultation",
        duration=30,
        buffer_time=0,
        price=50.0,
        provider_id=DEMO_PROVIDER_ID,
    )
    store.add_provider(ServiceProvider(
        id=DEMO_PROVIDER_ID,
        name="Dr. Demo",
        email="demo@example.com",
        timezone=DEMO_TIMEZONE,
        services=[service],
        availability=[
            Availability(
                provider_id=DEMO_PROVIDER_ID,
                day_of_week=dow,
                start_time="09:00",
                end_time="17:00",
            )
            for dow in range(1, 6)
        ],
    ))
    for dow in range(1, 6):
        store.add_break_time(BreakTime(
            provider_id=DEMO_PROVIDER_ID,
            day_of_week=dow,
            start_time="12:00",
            end_time="13:00",
        ))
    store.set_schedule_settings(ScheduleSettings(provider_id=DEMO_PROVIDER_ID))
    return store


async def _show_slots(store: InMemoryStore, args: argparse.Namespace) -> None:
    day = parse_iso_date(args.date)
    generator = SlotGenerator(store)
    slots = await generator.get_time_slots(
        DEMO_PROVIDER_ID, DEMO_SERVICE_ID, day, args.timezone, args.only_available
    )
    tz = args.timezone or DEMO_TIMEZONE
    print(f"Slots for {day.isoformat()} ({tz}):")
    if not slots:
        print("  (none)")
    for slot in slots:
        start = to_zone(slot.start_time, tz).strftime("%H:%M")
        end = to_zone(slot.end_time, tz).strftime("%H:%M")
        status = "available" if slot.is_available else slot.unavailable_reason
        print(f"  {start}-{end}  {status}")


async def _show_days(store: InMemoryStore, args: argparse.Namespace) -> None:
    resolver = AvailabilityResolver(store)
    service = await store.get_service(DEMO_SERVICE_ID)
    days = await resolver.get_available_days(
        DEMO_PROVIDER_ID, service, args.year, args.month, args.timezone
    )
    print(f"Available days in {args.year}-{args.month:02d}:")
    for day in days:
        print(f"  {day.isoformat()} ({day.strftime('%A')})")


async def _book(store: InMemoryStore, args: argparse.Namespace) -> None:
    manager = BookingManager(store, dispatcher=NotificationDispatcher(store, LoggingChannel()))
    request = {
        "service_id": DEMO_SERVICE_ID,
        "provider_id": DEMO_PROVIDER_ID,
        "start_time": parse_instant(args.start),
        "notes": args.notes,
    }
    if args.weekly:
        request["recurrence_rule"] = WeeklyRule(count=args.weekly)
    series = await manager.create_booking(request, Actor(user_id=DEMO_USER_ID))
    for booking in series.bookings:
        local = to_zone(booking.start_time, DEMO_TIMEZONE)
        print(f"  {booking.id}  {local.strftime('%Y-%m-%d %H:%M %Z')}  {booking.status.value}")


async def _send_reminders(store: InMemoryStore, args: argparse.Namespace) -> None:
    now = datetime.now(timezone.utc)
    tomorrow = local_date(now, DEMO_TIMEZONE) + timedelta(days=settings.notifications.reminder_lead_days)
    start = combine_local(tomorrow, "10:00", DEMO_TIMEZONE)
    await store.insert_booking(Booking(
        user_id=DEMO_USER_ID,
        provider_id=DEMO_PROVIDER_ID,
        service_id=DEMO_SERVICE_ID,
        start_time=start,
        end_time=start + timedelta(minutes=30),
        status=BookingStatus.CONFIRMED,
        created_at=now,
        updated_at=now,
    ))
    channel = LoggingChannel()
    sent = await NotificationDispatcher(store, channel).send_reminders()
    print(f"Sent {len(sent)} reminder(s):")
    for notification in sent:
        print(f"  {notification.message}")


COMMANDS = {
    "slots": _show_slots,
    "days": _show_days,
    "book": _book,
    "reminders": _send_reminders,
}


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run scheduling engine operations against a seeded demo provider."
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging output.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    slots = sub.add_parser("slots", help="List the slots of one day.")
    slots.add_argument("--date", type=str, default=date.today().isoformat(), help="YYYY-MM-DD")
    slots.add_argument("--timezone", type=str, default=None, help="IANA timezone name.")
    slots.add_argument("--only-available", action="store_true", help="Hide unavailable slots.")

    days = sub.add_parser("days", help="List the bookable days of a month.")
    days.add_argument("--year", type=int, default=date.today().year)
    days.add_argument("--month", type=int, default=date.today().month)
    days.add_argument("--timezone", type=str, default=None, help="IANA timezone name.")

    book = sub.add_parser("book", help="Create a booking, optionally weekly.")
    book.add_argument("--start", type=str, required=True, help="ISO-8601 instant with offset.")
    book.add_argument("--weekly", type=int, default=0, help="Weekly occurrence count.")
    book.add_argument("--notes", type=str, default=None)

    sub.add_parser("reminders", help="Run the reminder sweep for tomorrow's bookings.")
    return parser


def main() -> None:
    args = _parser().parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = build_demo_store()
    try:
        asyncio.run(COMMANDS[args.command](store, args))
    except SchedulingError as e:
        logger.error("%s failed (%s): %s", args.command, e.category, e.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
