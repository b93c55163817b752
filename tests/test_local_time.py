"""Tests for longitude-based local time approximation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.weather_summary_api.core import local_time
from src.weather_summary_api.models.values import Coordinates


class TestUtcOffset:
    """Test offset derivation from longitude."""

    @pytest.mark.parametrize(
        "longitude,expected",
        [
            (0.0, 0),
            (139.6917, 9),
            (-74.006, -5),
            (7.5, 1),  # halves round up
            (-7.5, 0),
            (180.0, 12),
            (-180.0, -12),
        ],
    )
    def test_offset_hours(self, longitude, expected):
        assert local_time.utc_offset_hours(longitude) == expected

    def test_offset_is_clamped(self):
        """Test that offsets stay within UTC-12..UTC+14."""
        for longitude in range(-180, 181, 5):
            assert -12 <= local_time.utc_offset_hours(float(longitude)) <= 14

    def test_utc_offset_timedelta(self):
        assert local_time.utc_offset(Coordinates.of(35.6762, 139.6917)) == timedelta(hours=9)


class TestTomorrow:
    """Test local calendar day resolution."""

    def test_tokyo_is_a_day_ahead_late_in_utc_evening(self):
        """Test that Tokyo crosses midnight before UTC does."""
        tokyo = Coordinates.of(35.6762, 139.6917)
        now = datetime(2026, 1, 10, 20, 0, tzinfo=timezone.utc)

        assert local_time.today(tokyo, now) == date(2026, 1, 11)
        assert local_time.tomorrow(tokyo, now) == date(2026, 1, 12)

    def test_new_york_is_behind_early_in_utc_morning(self):
        new_york = Coordinates.of(40.7128, -74.006)
        now = datetime(2026, 1, 10, 2, 0, tzinfo=timezone.utc)

        assert local_time.today(new_york, now) == date(2026, 1, 9)
        assert local_time.is_tomorrow(new_york, date(2026, 1, 10), now)

    def test_naive_datetime_treated_as_utc(self):
        london = Coordinates.of(51.5074, -0.1278)
        aware = datetime(2026, 1, 10, 23, 30, tzinfo=timezone.utc)

        assert local_time.tomorrow(london, aware.replace(tzinfo=None)) == local_time.tomorrow(london, aware)

    def test_non_utc_aware_datetime_is_normalized(self):
        """Test that the instant matters, not the tzinfo it is expressed in."""
        london = Coordinates.of(51.5074, -0.1278)
        plus_two = timezone(timedelta(hours=2))
        now = datetime(2026, 1, 11, 1, 0, tzinfo=plus_two)  # 23:00 UTC on the 10th

        assert local_time.today(london, now) == date(2026, 1, 10)

    def test_date_line_does_not_crash(self):
        now = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)

        assert local_time.tomorrow(Coordinates.of(0.0, 180.0), now) == date(2026, 1, 12)
        assert local_time.tomorrow(Coordinates.of(0.0, -180.0), now) == date(2026, 1, 11)
