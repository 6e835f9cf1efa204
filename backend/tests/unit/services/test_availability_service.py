"""AvailabilityService: weekly windows and blocked dates."""

from datetime import date, time

import pytest

from mentorline.core.exceptions import (
    AlreadyBlockedException,
    AvailabilityOverlapException,
    InvalidRangeException,
    OutOfWindowException,
    ValidationException,
)
from testkit import MENTOR_ID


class TestSlots:
    def test_add_slot_defaults_timezone(self, availability_service):
        slot = availability_service.add_slot(MENTOR_ID, 1, time(9, 0), time(12, 0))
        assert slot.id
        assert slot.timezone == "America/New_York"
        assert [s.id for s in availability_service.list_slots(MENTOR_ID)] == [slot.id]

    def test_add_slot_strips_seconds(self, availability_service):
        slot = availability_service.add_slot(MENTOR_ID, 2, time(9, 0, 30), time(10, 0, 59))
        assert slot.start_time == time(9, 0)
        assert slot.end_time == time(10, 0)

    @pytest.mark.parametrize("start, end", [(time(12, 0), time(9, 0)), (time(9, 0), time(9, 0))])
    def test_empty_or_inverted_range(self, availability_service, start, end):
        with pytest.raises(InvalidRangeException):
            availability_service.add_slot(MENTOR_ID, 1, start, end)

    def test_invalid_day_and_timezone(self, availability_service):
        with pytest.raises(ValidationException):
            availability_service.add_slot(MENTOR_ID, 7, time(9, 0), time(10, 0))
        with pytest.raises(ValidationException):
            availability_service.add_slot(
                MENTOR_ID, 1, time(9, 0), time(10, 0), timezone="Mars/Olympus"
            )

    def test_overlap_on_same_day_is_rejected(self, availability_service):
        availability_service.add_slot(MENTOR_ID, 1, time(9, 0), time(12, 0))
        with pytest.raises(AvailabilityOverlapException) as exc_info:
            availability_service.add_slot(MENTOR_ID, 1, time(11, 0), time(13, 0))
        assert exc_info.value.code == "AVAILABILITY_OVERLAP"

    def test_touching_edges_and_other_days_are_allowed(self, availability_service):
        availability_service.add_slot(MENTOR_ID, 1, time(9, 0), time(12, 0))
        availability_service.add_slot(MENTOR_ID, 1, time(12, 0), time(14, 0))
        availability_service.add_slot(MENTOR_ID, 2, time(10, 0), time(11, 0))
        availability_service.add_slot("mentor-2", 1, time(9, 0), time(12, 0))
        assert len(availability_service.list_slots(MENTOR_ID)) == 3

    def test_remove_slot_is_idempotent(self, availability_service):
        slot = availability_service.add_slot(MENTOR_ID, 1, time(9, 0), time(12, 0))
        assert availability_service.remove_slot(slot.id) is True
        assert availability_service.remove_slot(slot.id) is False
        assert availability_service.list_slots(MENTOR_ID) == []


class TestBlockedDates:
    # The clock is 2024-01-02 07:00 in New York: the window is Jan 3 .. Jan 16

    def test_block_date_inside_window(self, availability_service):
        block = availability_service.block_date(MENTOR_ID, date(2024, 1, 8), "conference")
        assert block.date == date(2024, 1, 8)
        assert [b.id for b in availability_service.list_blocked_dates(MENTOR_ID)] == [block.id]

    @pytest.mark.parametrize("blocked", [date(2024, 1, 2), date(2024, 1, 17), date(2023, 12, 31)])
    def test_block_date_outside_window(self, availability_service, blocked):
        with pytest.raises(OutOfWindowException) as exc_info:
            availability_service.block_date(MENTOR_ID, blocked)
        assert exc_info.value.details["earliest"] == "2024-01-03"
        assert exc_info.value.details["latest"] == "2024-01-16"

    def test_window_edges_are_inclusive(self, availability_service):
        availability_service.block_date(MENTOR_ID, date(2024, 1, 3))
        availability_service.block_date(MENTOR_ID, date(2024, 1, 16))

    def test_already_blocked(self, availability_service):
        availability_service.block_date(MENTOR_ID, date(2024, 1, 8))
        with pytest.raises(AlreadyBlockedException):
            availability_service.block_date(MENTOR_ID, date(2024, 1, 8))

    def test_window_follows_mentor_timezone(self, availability_service, clock):
        # 2024-01-02 12:00 UTC is already Jan 3 in Tokyo
        availability_service.add_slot(MENTOR_ID, 1, time(9, 0), time(12, 0), timezone="Asia/Tokyo")
        earliest, latest = availability_service.blocking_window(MENTOR_ID)
        assert earliest == date(2024, 1, 4)
        assert latest == date(2024, 1, 17)

    def test_unblock_is_idempotent(self, availability_service):
        block = availability_service.block_date(MENTOR_ID, date(2024, 1, 8))
        assert availability_service.unblock_date(block.id) is True
        assert availability_service.unblock_date(block.id) is False
        assert availability_service.list_blocked_dates(MENTOR_ID) == []
