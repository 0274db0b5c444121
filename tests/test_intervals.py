"""Tests for timezone conversion, HH:MM parsing and interval arithmetic."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from booking_engine.errors import ValidationError
from booking_engine.intervals import (
    Interval,
    clip_intervals,
    combine_local,
    day_of_week,
    get_zone,
    local_date,
    local_day_bounds,
    merge_intervals,
    minutes_between,
    parse_hhmm,
    parse_instant,
    parse_iso_date,
    subtract_intervals,
    to_utc,
)
from tests.conftest import NY, ny


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, 5, hour, minute, tzinfo=timezone.utc)


class TestTimezones:
    def test_known_zone(self):
        assert get_zone(NY).key == NY

    def test_unknown_zone_rejected(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            get_zone("Mars/Olympus_Mons")

    def test_empty_zone_rejected(self):
        with pytest.raises(ValidationError):
            get_zone("  ")

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValidationError, match="no timezone"):
            to_utc(datetime(2024, 6, 5, 10, 0))

    def test_to_utc_converts_offset(self):
        assert to_utc(ny(2024, 6, 5, 10)) == _utc(14)

    def test_local_date_crosses_midnight(self):
        instant = datetime(2024, 6, 5, 2, 0, tzinfo=timezone.utc)
        assert local_date(instant, NY) == date(2024, 6, 4)


class TestParsing:
    def test_parse_hhmm(self):
        assert parse_hhmm("09:30") == time(9, 30)
        assert parse_hhmm("23:59") == time(23, 59)

    @pytest.mark.parametrize("value", ["24:00", "9:30", "09:60", "ab:cd", ""])
    def test_parse_hhmm_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_hhmm(value)

    def test_parse_iso_date(self):
        assert parse_iso_date("2024-06-05") == date(2024, 6, 5)

    def test_parse_iso_date_invalid(self):
        with pytest.raises(ValidationError):
            parse_iso_date("06/05/2024")

    def test_parse_instant_with_z_suffix(self):
        assert parse_instant("2024-06-05T14:00:00Z") == _utc(14)

    def test_parse_instant_with_offset(self):
        assert parse_instant("2024-06-05T10:00:00-04:00") == _utc(14)

    def test_parse_instant_without_offset_rejected(self):
        with pytest.raises(ValidationError):
            parse_instant("2024-06-05T10:00:00")


class TestCalendar:
    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(date(2024, 6, 2)) == 0
        assert day_of_week(date(2024, 6, 5)) == 3
        assert day_of_week(date(2024, 6, 8)) == 6

    def test_combine_local(self):
        assert to_utc(combine_local(date(2024, 6, 5), "09:00", NY)) == _utc(13)

    def test_regular_day_is_24_hours(self):
        start, end = local_day_bounds(date(2024, 6, 5), NY)
        assert end - start == timedelta(hours=24)
        assert start == _utc(4)

    def test_spring_forward_day_is_23_hours(self):
        start, end = local_day_bounds(date(2024, 3, 10), NY)
        assert end - start == timedelta(hours=23)

    def test_fall_back_day_is_25_hours(self):
        start, end = local_day_bounds(date(2024, 11, 3), NY)
        assert end - start == timedelta(hours=25)

    def test_minutes_between_across_spring_forward(self):
        start = combine_local(date(2024, 3, 10), "01:00", NY)
        end = combine_local(date(2024, 3, 10), "04:00", NY)
        assert minutes_between(start, end) == 120


class TestInterval:
    def test_end_must_be_after_start(self):
        with pytest.raises(ValidationError):
            Interval(_utc(10), _utc(10))

    def test_naive_bounds_rejected(self):
        with pytest.raises(ValidationError):
            Interval(datetime(2024, 6, 5, 10), datetime(2024, 6, 5, 11))

    def test_duration_minutes(self):
        assert Interval(_utc(9), _utc(10, 30)).duration_minutes == 90

    def test_touching_intervals_do_not_overlap(self):
        assert not Interval(_utc(9), _utc(10)).overlaps(Interval(_utc(10), _utc(11)))

    def test_contains(self):
        outer = Interval(_utc(9), _utc(17))
        assert outer.contains(Interval(_utc(9), _utc(9, 30)))
        assert not outer.contains(Interval(_utc(16, 45), _utc(17, 15)))

    def test_comparison_across_zones(self):
        local = Interval(ny(2024, 6, 5, 10), ny(2024, 6, 5, 11))
        assert local.to_utc() == Interval(_utc(14), _utc(15))


class TestIntervalArithmetic:
    def test_merge_overlapping_and_adjacent(self):
        merged = merge_intervals([
            Interval(_utc(13), _utc(14)),
            Interval(_utc(9), _utc(10)),
            Interval(_utc(10), _utc(11)),
            Interval(_utc(13, 30), _utc(15)),
        ])
        assert merged == [Interval(_utc(9), _utc(11)), Interval(_utc(13), _utc(15))]

    def test_subtract_splits_window(self):
        remaining = subtract_intervals(
            [Interval(_utc(9), _utc(17))], [Interval(_utc(12), _utc(13))]
        )
        assert remaining == [Interval(_utc(9), _utc(12)), Interval(_utc(13), _utc(17))]

    def test_subtract_covering_cut_removes_window(self):
        assert subtract_intervals(
            [Interval(_utc(10), _utc(11))], [Interval(_utc(9), _utc(12))]
        ) == []

    def test_subtract_disjoint_cut_keeps_window(self):
        window = Interval(_utc(9), _utc(10))
        assert subtract_intervals([window], [Interval(_utc(11), _utc(12))]) == [window]

    def test_clip(self):
        clipped = clip_intervals(
            [Interval(_utc(8), _utc(12)), Interval(_utc(18), _utc(19))],
            Interval(_utc(9), _utc(17)),
        )
        assert clipped == [Interval(_utc(9), _utc(12))]
