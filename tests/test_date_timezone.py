"""Timezone helpers."""
from datetime import datetime, timezone

import pytest

from app.utils.date_timezone import day_bounds, get_local_time_parts, parse_datetime, to_iso


class TestParseDatetime:

    def test_trailing_z_is_utc(self):
        assert parse_datetime("2025-03-03T14:30:00Z") == datetime(2025, 3, 3, 14, 30)

    def test_offsets_are_converted_to_naive_utc(self):
        assert parse_datetime("2025-03-03T20:00:00+05:30") == datetime(2025, 3, 3, 14, 30)

    def test_aware_datetime_is_converted(self):
        aware = datetime(2025, 3, 3, 14, 30, tzinfo=timezone.utc)
        assert parse_datetime(aware).tzinfo is None

    def test_invalid_input_raises(self):
        with pytest.raises(ValueError):
            parse_datetime("not a date")


class TestLocalTimeParts:

    def test_kolkata_wall_clock(self):
        parts = get_local_time_parts("2025-03-03T04:00:00Z", "Asia/Kolkata")

        # Monday 09:30 in India
        assert parts["day_of_week"] == 1
        assert parts["date_str"] == "2025-03-03"
        assert parts["hours"] == 9
        assert parts["minutes"] == 30
        assert parts["start_minutes"] == 570

    def test_crossing_midnight_changes_date_and_day(self):
        parts = get_local_time_parts("2025-03-02T23:30:00Z", "Asia/Tokyo")

        assert parts["date_str"] == "2025-03-03"
        assert parts["day_of_week"] == 1

    def test_sunday_is_zero(self):
        assert get_local_time_parts("2025-03-02T12:00:00Z", "UTC")["day_of_week"] == 0

    def test_unknown_timezone_raises(self):
        with pytest.raises(ValueError, match="Unknown timezone: Mars/Olympus"):
            get_local_time_parts("2025-03-03T04:00:00Z", "Mars/Olympus")


class TestFormatting:

    def test_to_iso_appends_z(self):
        assert to_iso(datetime(2025, 1, 2, 3, 4, 5)) == "2025-01-02T03:04:05Z"
        assert to_iso(None) is None

    def test_day_bounds(self):
        start, end = day_bounds(datetime(2025, 1, 2, 17, 45))
        assert start == datetime(2025, 1, 2)
        assert end == datetime(2025, 1, 3)
