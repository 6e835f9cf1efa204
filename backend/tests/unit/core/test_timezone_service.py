"""Unit tests for TimezoneService: local wall-clock to UTC across DST changes."""

from datetime import date, datetime, time, timezone

from mentorline.core.timezone_service import TimezoneService, ensure_utc, sunday_based_weekday


class TestLocalToUtc:
    def test_winter_offset(self):
        result = TimezoneService.local_to_utc(date(2024, 1, 8), time(9, 0), "America/New_York")
        assert result == datetime(2024, 1, 8, 14, 0, tzinfo=timezone.utc)

    def test_summer_offset_uses_rules_of_that_date(self):
        result = TimezoneService.local_to_utc(date(2024, 7, 8), time(9, 0), "America/New_York")
        assert result == datetime(2024, 7, 8, 13, 0, tzinfo=timezone.utc)

    def test_spring_forward_gap_returns_none(self):
        assert (
            TimezoneService.local_to_utc(date(2024, 3, 10), time(2, 30), "America/New_York")
            is None
        )

    def test_fall_back_ambiguity_resolves_to_first_occurrence(self):
        result = TimezoneService.local_to_utc(date(2024, 11, 3), time(1, 30), "America/New_York")
        # 01:30 EDT, not 01:30 EST
        assert result == datetime(2024, 11, 3, 5, 30, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back_to_default(self):
        result = TimezoneService.local_to_utc(date(2024, 1, 8), time(9, 0), "Not/AZone")
        assert result == datetime(2024, 1, 8, 14, 0, tzinfo=timezone.utc)


class TestHelpers:
    def test_is_valid_timezone(self):
        assert TimezoneService.is_valid_timezone("Europe/Berlin")
        assert not TimezoneService.is_valid_timezone("Mars/Olympus")
        assert not TimezoneService.is_valid_timezone(None)

    def test_local_today_uses_mentor_timezone(self):
        now = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert TimezoneService.local_today(now, "America/New_York") == date(2024, 1, 1)
        assert TimezoneService.local_today(now, "Europe/Berlin") == date(2024, 1, 2)

    def test_ensure_utc_treats_naive_as_utc(self):
        naive = datetime(2024, 1, 2, 12, 0)
        assert ensure_utc(naive) == datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)

    def test_sunday_based_weekday(self):
        assert sunday_based_weekday(date(2024, 1, 7)) == 0  # Sunday
        assert sunday_based_weekday(date(2024, 1, 8)) == 1  # Monday
        assert sunday_based_weekday(date(2024, 1, 13)) == 6  # Saturday

    def test_hours_between(self):
        start = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)
        end = datetime(2024, 1, 3, 18, 0, tzinfo=timezone.utc)
        assert TimezoneService.hours_between(start, end) == 30
        assert TimezoneService.hours_between(end, start) == -30
