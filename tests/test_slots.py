"""Tests for slot generation and per-slot availability flags."""

from datetime import date, datetime, timedelta, timezone

import pytest

from booking_engine.errors import NotFoundError, PersistenceError, ValidationError
from booking_engine.intervals import Interval, combine_local, to_zone
from booking_engine.scheduling.slots import (
    BOOKED,
    ON_BREAK,
    SlotGenerator,
    evaluate_slot,
    generate_slot_intervals,
)
from booking_engine.schemas import BookingStatus, BreakTime, ScheduleSettings, Service
from booking_engine.storage import InMemoryStore, StoreError
from tests.conftest import (
    NOW,
    NY,
    PROVIDER_ID,
    SERVICE_ID,
    clock_at,
    fixed_clock,
    make_booking,
    make_store,
    ny,
)


class UnreadableBreaksStore(InMemoryStore):
    async def list_break_times(self, provider_id):
        raise StoreError("disk unavailable")


def _local_starts(slots) -> list[str]:
    return [to_zone(s.start_time, NY).strftime("%H:%M") for s in slots]


class TestGenerateSlotIntervals:
    def test_back_to_back_slots(self):
        window = Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 10))
        slots = generate_slot_intervals([window], duration=30)
        assert [s.start for s in slots] == [ny(2024, 6, 5, 9), ny(2024, 6, 5, 9, 30)]

    def test_buffer_spaces_slots(self):
        window = Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 11))
        slots = generate_slot_intervals([window], duration=30, buffer_time=15)
        assert [s.start for s in slots] == [
            ny(2024, 6, 5, 9), ny(2024, 6, 5, 9, 45), ny(2024, 6, 5, 10, 30),
        ]

    def test_slot_must_end_inside_window(self):
        window = Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 9, 50))
        assert len(generate_slot_intervals([window], duration=30, buffer_time=15)) == 1

    def test_length_and_spacing_hold_for_every_slot(self):
        windows = [
            Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 12)),
            Interval(ny(2024, 6, 5, 13), ny(2024, 6, 5, 17)),
        ]
        duration, buffer_time = 45, 10
        slots = generate_slot_intervals(windows, duration, buffer_time)
        for slot in slots:
            assert slot.end - slot.start == timedelta(minutes=duration)
            assert any(w.contains(slot) for w in windows)
        for prev, nxt in zip(slots, slots[1:]):
            same_window = any(w.contains(prev) and w.contains(nxt) for w in windows)
            if same_window:
                assert nxt.start - prev.start == timedelta(minutes=duration + buffer_time)

    def test_slots_ordered_across_windows(self):
        windows = [
            Interval(ny(2024, 6, 5, 14), ny(2024, 6, 5, 15)),
            Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 10)),
        ]
        slots = generate_slot_intervals(windows, duration=30)
        assert slots == sorted(slots, key=lambda s: s.start)

    def test_exact_duration_across_spring_forward(self):
        day = date(2024, 3, 10)
        window = Interval(combine_local(day, "01:00", NY), combine_local(day, "04:00", NY))
        slots = generate_slot_intervals([window], duration=30)
        assert len(slots) == 4
        assert all(s.duration_minutes == 30 for s in slots)

    def test_rejects_non_positive_duration(self):
        window = Interval(ny(2024, 6, 5, 9), ny(2024, 6, 5, 10))
        with pytest.raises(ValidationError):
            generate_slot_intervals([window], duration=0)


class TestNewYorkWednesday:
    """Provider in New York, Mon-Fri 09:00-17:00, one booking 14:00-14:30 UTC."""

    @pytest.mark.asyncio
    async def test_booked_slot_is_unavailable(self, store, slot_generator, wednesday):
        await store.insert_booking(make_booking(datetime(2024, 6, 5, 14, 0, tzinfo=timezone.utc)))
        slots = await slot_generator.get_time_slots(PROVIDER_ID, SERVICE_ID, wednesday)

        by_start = dict(zip(_local_starts(slots), slots))
        assert len(slots) == 16
        assert not by_start["10:00"].is_available
        assert by_start["10:00"].is_booked
        assert by_start["10:00"].unavailable_reason == BOOKED
        assert by_start["09:30"].is_available
        assert by_start["10:30"].is_available

    @pytest.mark.asyncio
    async def test_only_available_filters(self, store, slot_generator, wednesday):
        booking = make_booking(datetime(2024, 6, 5, 14, 0, tzinfo=timezone.utc))
        await store.insert_booking(booking)
        slots = await slot_generator.get_time_slots(
            PROVIDER_ID, SERVICE_ID, wednesday, only_available=True
        )

        assert len(slots) == 15
        assert "10:00" not in _local_starts(slots)
        for slot in slots:
            assert not (slot.start_time < booking.end_time and slot.end_time > booking.start_time)

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_slot(self, store, slot_generator, wednesday):
        await store.insert_booking(make_booking(
            datetime(2024, 6, 5, 14, 0, tzinfo=timezone.utc), status=BookingStatus.CANCELLED
        ))
        slots = await slot_generator.get_time_slots(
            PROVIDER_ID, SERVICE_ID, wednesday, only_available=True
        )
        assert len(slots) == 16

    @pytest.mark.asyncio
    async def test_break_removes_slots(self, store, slot_generator, wednesday):
        store.add_break_time(BreakTime(
            provider_id=PROVIDER_ID, day_of_week=3, start_time="12:00", end_time="13:00"
        ))
        slots = await slot_generator.get_time_slots(PROVIDER_ID, SERVICE_ID, wednesday)
        starts = _local_starts(slots)
        assert len(slots) == 14
        assert "12:00" not in starts
        assert "12:30" not in starts

    @pytest.mark.asyncio
    async def test_slots_in_requested_timezone(self, slot_generator, wednesday):
        slots = await slot_generator.get_time_slots(
            PROVIDER_ID, SERVICE_ID, wednesday, tz_name="Europe/London"
        )
        assert slots[0].start_time == datetime(2024, 6, 5, 8, 0, tzinfo=timezone.utc)


class TestSlotPolicy:
    @pytest.mark.asyncio
    async def test_first_slot_exactly_at_min_advance_is_available(self, slot_generator):
        slots = await slot_generator.get_time_slots(PROVIDER_ID, SERVICE_ID, date(2024, 6, 3))
        assert slots[0].start_time == datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)
        assert slots[0].is_available

    @pytest.mark.asyncio
    async def test_slot_inside_min_advance(self, store):
        generator = SlotGenerator(
            store, clock=clock_at(datetime(2024, 6, 3, 12, 45, tzinfo=timezone.utc))
        )
        slots = await generator.get_time_slots(PROVIDER_ID, SERVICE_ID, date(2024, 6, 3))
        assert slots[0].unavailable_reason == "min_advance"
        assert slots[1].unavailable_reason == "min_advance"
        assert slots[2].is_available

    @pytest.mark.asyncio
    async def test_past_slots_flagged(self, store):
        generator = SlotGenerator(
            store, clock=clock_at(datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc))
        )
        slots = await generator.get_time_slots(PROVIDER_ID, SERVICE_ID, date(2024, 6, 3))
        assert slots[0].unavailable_reason == "past"

    @pytest.mark.asyncio
    async def test_closed_day_has_no_slots(self, slot_generator):
        assert await slot_generator.get_time_slots(PROVIDER_ID, SERVICE_ID, date(2024, 6, 9)) == []


class TestSchedule:
    @pytest.mark.asyncio
    async def test_range_has_one_day_per_date(self, slot_generator):
        response = await slot_generator.get_schedule(
            PROVIDER_ID, SERVICE_ID, date(2024, 6, 7), date(2024, 6, 9)
        )
        assert response.timezone == NY
        assert [d.date for d in response.days] == [
            date(2024, 6, 7), date(2024, 6, 8), date(2024, 6, 9),
        ]
        assert len(response.days[0].time_slots) == 16
        assert response.days[1].time_slots == []
        assert response.days[1].closed_reason == "non_working_day"

    @pytest.mark.asyncio
    async def test_range_limit(self, slot_generator):
        with pytest.raises(ValidationError, match="exceeds"):
            await slot_generator.get_schedule(
                PROVIDER_ID, SERVICE_ID, date(2024, 6, 1), date(2024, 12, 31)
            )

    @pytest.mark.asyncio
    async def test_reversed_range(self, slot_generator):
        with pytest.raises(ValidationError):
            await slot_generator.get_schedule(
                PROVIDER_ID, SERVICE_ID, date(2024, 6, 9), date(2024, 6, 7)
            )

    @pytest.mark.asyncio
    async def test_unknown_service(self, slot_generator, wednesday):
        with pytest.raises(NotFoundError):
            await slot_generator.get_time_slots(PROVIDER_ID, "missing", wednesday)

    @pytest.mark.asyncio
    async def test_service_of_another_provider(self, store, slot_generator, wednesday):
        store.add_service(Service(id="svc-x", name="Other", duration=30, provider_id="prov-x"))
        with pytest.raises(ValidationError, match="not offered"):
            await slot_generator.get_time_slots(PROVIDER_ID, "svc-x", wednesday)

    @pytest.mark.asyncio
    async def test_backend_read_failure(self, wednesday):
        store = make_store(store_cls=UnreadableBreaksStore)
        generator = SlotGenerator(store, clock=fixed_clock)
        with pytest.raises(PersistenceError, match="disk unavailable"):
            await generator.get_time_slots(PROVIDER_ID, SERVICE_ID, wednesday)


class TestEvaluateSlot:
    def test_break_overlap_reported(self, wednesday):
        slot = Interval(ny(2024, 6, 5, 12), ny(2024, 6, 5, 12, 30))
        lunch = Interval(ny(2024, 6, 5, 12, 15), ny(2024, 6, 5, 13))
        result = evaluate_slot(
            slot, wednesday, [], [lunch], ScheduleSettings(provider_id=PROVIDER_ID), NOW
        )
        assert not result.is_available
        assert not result.is_booked
        assert result.unavailable_reason == ON_BREAK

    def test_holiday_reported_before_booking(self, wednesday):
        slot = Interval(ny(2024, 6, 5, 10), ny(2024, 6, 5, 10, 30))
        schedule = ScheduleSettings(provider_id=PROVIDER_ID, holiday_dates=[wednesday])
        result = evaluate_slot(
            slot, wednesday, [make_booking(ny(2024, 6, 5, 10))], [], schedule, NOW
        )
        assert result.is_booked
        assert result.unavailable_reason == "holiday"
