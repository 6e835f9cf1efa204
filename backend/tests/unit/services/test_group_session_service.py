"""GroupSessionService: capacity, quorum and cancellation rules."""

from datetime import timedelta
from decimal import Decimal

import pytest

from mentorline.core.exceptions import (
    AlreadyJoinedException,
    BusinessRuleException,
    HasParticipantsException,
    InvalidCapacityException,
    InvalidStateException,
    LeadTimeTooShortException,
    NotFoundException,
    SessionFullException,
    ValidationException,
)
from mentorline.integrations.daily_client import DailyError
from mentorline.models.group_session import GroupSessionStatus
from testkit import MENTOR_ID, TEST_NOW

IN_48H = TEST_NOW + timedelta(hours=48)


@pytest.fixture
def make_session(group_session_service):
    def _make(**overrides):
        params = dict(
            mentor_id=MENTOR_ID,
            scheduled_at=IN_48H,
            duration_minutes=60,
            max_capacity=10,
            min_attendees=3,
            price_per_person=Decimal("20"),
            title="Portfolio reviews",
        )
        params.update(overrides)
        return group_session_service.create(**params)

    return _make


def _join_many(service, session_id, count, prefix="consumer"):
    return [service.join(session_id, f"{prefix}-{i}") for i in range(1, count + 1)]


class TestCreate:
    def test_create_scheduled_session(self, make_session):
        session = make_session()
        assert session.status == GroupSessionStatus.SCHEDULED.value
        assert session.participant_count == 0
        assert session.price_per_person == Decimal("20.00")
        assert session.quorum_deadline == IN_48H - timedelta(hours=24)
        assert session.seats_left == 10

    def test_lead_time_too_short(self, make_session):
        with pytest.raises(LeadTimeTooShortException) as exc_info:
            make_session(scheduled_at=TEST_NOW + timedelta(hours=23))
        assert exc_info.value.details == {"required_hours": 24, "provided_hours": 23.0}

    def test_lead_time_boundary_is_allowed(self, make_session):
        assert make_session(scheduled_at=TEST_NOW + timedelta(hours=24)).id

    @pytest.mark.parametrize(
        "max_capacity,min_attendees",
        [(3, 1), (21, 5), (10, 0), (5, 6)],
    )
    def test_invalid_capacity(self, make_session, max_capacity, min_attendees):
        with pytest.raises(InvalidCapacityException):
            make_session(max_capacity=max_capacity, min_attendees=min_attendees)

    def test_capacity_bounds_are_inclusive(self, make_session):
        assert make_session(max_capacity=4, min_attendees=4).id
        assert make_session(max_capacity=20, min_attendees=1).id

    @pytest.mark.parametrize("price", [Decimal("-1"), Decimal("35.01")])
    def test_price_out_of_bounds(self, make_session, price):
        with pytest.raises(ValidationException):
            make_session(price_per_person=price)

    def test_unsupported_duration(self, make_session):
        with pytest.raises(ValidationException):
            make_session(duration_minutes=50)


class TestJoin:
    def test_join_below_quorum_stays_scheduled(self, make_session, group_session_service):
        session = make_session()
        result = group_session_service.join(session.id, "consumer-1")

        assert result.quorum_reached is False
        assert result.participant.consumer_id == "consumer-1"
        assert result.participant.refund_eligible is False
        assert result.session.participant_count == 1
        assert result.session.status == GroupSessionStatus.SCHEDULED.value

    def test_exact_quorum_confirms_session(
        self, make_session, group_session_service, reminder_service, notifications
    ):
        session = make_session()
        results = _join_many(group_session_service, session.id, 3)

        assert [r.quorum_reached for r in results] == [False, False, True]
        confirmed = group_session_service.get_session(session.id)
        assert confirmed.status == GroupSessionStatus.CONFIRMED.value
        assert confirmed.participant_count == 3
        assert confirmed.confirmed_at == TEST_NOW
        assert confirmed.video_room_url
        assert len(reminder_service.list_for_subject(session.id)) == 2
        assert sorted(notifications.recipients("group_session_confirmed")) == sorted(
            ["consumer-1", "consumer-2", "consumer-3", MENTOR_ID]
        )

    def test_session_room_fits_capacity_plus_mentor(
        self, make_session, group_session_service, video_provider
    ):
        session = make_session(max_capacity=4, min_attendees=1)
        group_session_service.join(session.id, "consumer-1")
        assert video_provider.calls[0]["max_participants"] == 5

    def test_seats_above_quorum_fill_up_to_capacity(
        self, make_session, group_session_service, reminder_service, notifications
    ):
        session = make_session(max_capacity=10, min_attendees=3)
        results = _join_many(group_session_service, session.id, 10)

        assert [r.quorum_reached for r in results].count(True) == 1
        assert results[2].quorum_reached
        with pytest.raises(SessionFullException):
            group_session_service.join(session.id, "consumer-11")

        full = group_session_service.get_session(session.id)
        assert full.status == GroupSessionStatus.CONFIRMED.value
        assert full.participant_count == 10
        assert len(group_session_service.list_participants(session.id)) == 10
        assert len(reminder_service.list_for_subject(session.id)) == 2
        assert len(notifications.recipients("group_session_confirmed")) == 4

    def test_confirmed_session_takes_joins_until_start(
        self, make_session, group_session_service, clock
    ):
        session = make_session()
        _join_many(group_session_service, session.id, 3)

        clock.set(session.quorum_deadline + timedelta(hours=1))
        late = group_session_service.join(session.id, "consumer-4")
        assert late.quorum_reached is False
        assert late.session.participant_count == 4

        clock.set(session.scheduled_at)
        with pytest.raises(BusinessRuleException) as exc_info:
            group_session_service.join(session.id, "consumer-5")
        assert exc_info.value.code == "JOIN_WINDOW_CLOSED"

    def test_cancelled_session_rejects_joins(self, make_session, group_session_service):
        session = make_session()
        group_session_service.cancel_by_mentor(session.id)
        with pytest.raises(InvalidStateException):
            group_session_service.join(session.id, "consumer-1")

    def test_capacity_is_never_exceeded(self, make_session, group_session_service):
        session = make_session(max_capacity=4, min_attendees=4)
        other = make_session(scheduled_at=IN_48H + timedelta(days=1))
        _join_many(group_session_service, session.id, 4)

        with pytest.raises(SessionFullException) as exc_info:
            group_session_service.join(session.id, "consumer-5")

        assert exc_info.value.details["open_sessions"] == [other.id]
        assert group_session_service.get_session(session.id).participant_count == 4
        assert len(group_session_service.list_participants(session.id)) == 4

    def test_already_joined(self, make_session, group_session_service):
        session = make_session()
        group_session_service.join(session.id, "consumer-1")
        with pytest.raises(AlreadyJoinedException):
            group_session_service.join(session.id, "consumer-1")
        assert group_session_service.get_session(session.id).participant_count == 1

    def test_join_after_quorum_deadline_is_closed(self, make_session, group_session_service, clock):
        session = make_session()
        clock.set(session.quorum_deadline)
        with pytest.raises(BusinessRuleException) as exc_info:
            group_session_service.join(session.id, "consumer-1")
        assert exc_info.value.code == "JOIN_WINDOW_CLOSED"

    def test_join_unknown_session(self, group_session_service):
        with pytest.raises(NotFoundException):
            group_session_service.join("01HZZZZZZZZZZZZZZZZZZZZZZZ", "consumer-1")

    def test_room_failure_is_retried_by_sweep(
        self, make_session, group_session_service, video_provider
    ):
        session = make_session(min_attendees=1)
        video_provider.set_error("create_room", DailyError("daily down", status_code=502))

        result = group_session_service.join(session.id, "consumer-1")

        assert result.session.status == GroupSessionStatus.CONFIRMED.value
        assert group_session_service.get_session(session.id).video_room_url is None

        video_provider.clear_errors()
        assert group_session_service.provision_missing_rooms().processed == 1
        assert group_session_service.get_session(session.id).video_room_url

    def test_room_sweep_skips_room_stored_elsewhere(
        self, make_session, group_session_service, video_provider, db, monkeypatch
    ):
        session = make_session(min_attendees=1)
        video_provider.set_error("create_room", DailyError("daily down", status_code=502))
        group_session_service.join(session.id, "consumer-1")
        video_provider.clear_errors()

        def stored_by_other_worker(pending):
            fresh = group_session_service.get_session(pending.id)
            fresh.video_room_url = "https://rooms.example/other-worker"
            db.commit()
            return "https://rooms.example/late"

        monkeypatch.setattr(group_session_service, "_provision_room", stored_by_other_worker)
        result = group_session_service.provision_missing_rooms()

        assert (result.processed, result.failed, result.skipped) == (0, 0, 1)
        stored = group_session_service.get_session(session.id).video_room_url
        assert stored == "https://rooms.example/other-worker"


class TestQuorumSweep:
    def test_quorum_not_met_cancels_and_refunds(
        self, make_session, group_session_service, clock, notifications
    ):
        session = make_session()
        _join_many(group_session_service, session.id, 2)

        clock.advance(hours=23)
        assert group_session_service.sweep_quorum_deadline().processed == 0

        clock.advance(hours=1)
        result = group_session_service.sweep_quorum_deadline()

        assert result.processed == 1
        assert result.failed == 0
        cancelled = group_session_service.get_session(session.id)
        assert cancelled.status == GroupSessionStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "QUORUM_NOT_MET"
        participants = group_session_service.list_participants(session.id)
        assert [p.refund_eligible for p in participants] == [True, True]
        assert sorted(notifications.recipients("group_session_cancelled")) == sorted(
            ["consumer-1", "consumer-2", MENTOR_ID]
        )

    def test_sweep_is_idempotent(self, make_session, group_session_service, clock):
        session = make_session()
        group_session_service.join(session.id, "consumer-1")
        clock.advance(hours=24)
        group_session_service.sweep_quorum_deadline()
        assert group_session_service.sweep_quorum_deadline().processed == 0

    def test_confirmed_session_is_left_alone(self, make_session, group_session_service, clock):
        session = make_session()
        _join_many(group_session_service, session.id, 3)
        clock.advance(hours=30)
        assert group_session_service.sweep_quorum_deadline().processed == 0
        assert group_session_service.get_session(session.id).status == GroupSessionStatus.CONFIRMED.value

    def test_one_failure_does_not_stop_the_sweep(
        self, make_session, group_session_service, clock, monkeypatch
    ):
        first = make_session()
        second = make_session(scheduled_at=IN_48H + timedelta(minutes=30))
        clock.advance(hours=25)

        original = group_session_service._cancel_session

        def flaky(session, reason):
            if session.id == first.id:
                raise RuntimeError("boom")
            return original(session, reason)

        monkeypatch.setattr(group_session_service, "_cancel_session", flaky)
        result = group_session_service.sweep_quorum_deadline()

        assert result.processed == 1
        assert result.failed == 1
        assert group_session_service.get_session(second.id).status == GroupSessionStatus.CANCELLED.value
        assert group_session_service.get_session(first.id).status == GroupSessionStatus.SCHEDULED.value


class TestCancellation:
    def test_mentor_cancel_refunds_everyone(
        self, make_session, group_session_service, reminder_service, video_provider
    ):
        session = make_session()
        _join_many(group_session_service, session.id, 3)

        cancelled = group_session_service.cancel_by_mentor(session.id)

        assert cancelled.status == GroupSessionStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "MENTOR_CANCELLED"
        assert all(p.refund_eligible for p in group_session_service.list_participants(session.id))
        assert all(j.cancelled_at is not None for j in reminder_service.list_for_subject(session.id))
        assert video_provider.calls[-1]["method"] == "delete_room"

    def test_mentor_cancel_inside_a_day_still_refunds_everyone(
        self, make_session, group_session_service, clock
    ):
        session = make_session(max_capacity=10, min_attendees=3)
        _join_many(group_session_service, session.id, 5)
        assert group_session_service.get_session(session.id).status == GroupSessionStatus.CONFIRMED.value

        clock.set(session.scheduled_at - timedelta(hours=2))
        group_session_service.cancel_by_mentor(session.id)

        participants = group_session_service.list_participants(session.id)
        assert len(participants) == 5
        assert all(p.refund_eligible is True for p in participants)

    def test_mentor_cannot_cancel_after_start(self, make_session, group_session_service, clock):
        session = make_session()
        _join_many(group_session_service, session.id, 3)
        clock.set(IN_48H)
        with pytest.raises(InvalidStateException):
            group_session_service.cancel_by_mentor(session.id)

    def test_mentor_cannot_cancel_twice(self, make_session, group_session_service):
        session = make_session()
        group_session_service.cancel_by_mentor(session.id)
        with pytest.raises(InvalidStateException):
            group_session_service.cancel_by_mentor(session.id)

    def test_participant_can_leave_before_confirmation(self, make_session, group_session_service):
        session = make_session()
        _join_many(group_session_service, session.id, 2)

        updated = group_session_service.cancel_by_participant(session.id, "consumer-1")

        assert updated.participant_count == 1
        assert [p.consumer_id for p in group_session_service.list_participants(session.id)] == [
            "consumer-2"
        ]
        # The seat can be taken again
        group_session_service.join(session.id, "consumer-1")

    def test_participant_cannot_leave_confirmed_session(self, make_session, group_session_service):
        session = make_session()
        _join_many(group_session_service, session.id, 3)
        with pytest.raises(InvalidStateException):
            group_session_service.cancel_by_participant(session.id, "consumer-1")

    def test_unknown_participant(self, make_session, group_session_service):
        session = make_session()
        with pytest.raises(NotFoundException):
            group_session_service.cancel_by_participant(session.id, "stranger")


class TestEdit:
    def test_edit_without_participants(self, make_session, group_session_service):
        session = make_session()
        new_start = IN_48H + timedelta(days=2)
        edited = group_session_service.edit(session.id, scheduled_at=new_start, duration_minutes=90)
        assert edited.scheduled_at == new_start
        assert edited.duration_minutes == 90

    def test_timing_locked_once_someone_joined(self, make_session, group_session_service):
        session = make_session()
        group_session_service.join(session.id, "consumer-1")
        with pytest.raises(HasParticipantsException):
            group_session_service.edit(session.id, duration_minutes=90)
        assert group_session_service.get_session(session.id).duration_minutes == 60

    def test_title_can_change_with_participants(self, make_session, group_session_service):
        session = make_session()
        group_session_service.join(session.id, "consumer-1")
        edited = group_session_service.edit(session.id, title="Resume clinic")
        assert edited.title == "Resume clinic"

    def test_edit_rechecks_lead_time(self, make_session, group_session_service):
        session = make_session()
        with pytest.raises(LeadTimeTooShortException):
            group_session_service.edit(session.id, scheduled_at=TEST_NOW + timedelta(hours=2))

    def test_edit_confirmed_session_is_invalid(self, make_session, group_session_service):
        session = make_session(min_attendees=1)
        group_session_service.join(session.id, "consumer-1")
        with pytest.raises(InvalidStateException):
            group_session_service.edit(session.id, title="Too late")


class TestCompletion:
    def test_confirmed_session_completes_after_end(self, make_session, group_session_service, clock):
        session = make_session()
        _join_many(group_session_service, session.id, 3)

        clock.set(session.ends_at)
        assert group_session_service.mark_completed().processed == 0

        clock.advance(minutes=1)
        assert group_session_service.mark_completed().processed == 1
        assert group_session_service.get_session(session.id).status == GroupSessionStatus.COMPLETED.value


class TestReads:
    def test_open_sessions_hide_full_and_confirmed(self, make_session, group_session_service):
        open_one = make_session()
        full = make_session(max_capacity=4, min_attendees=4, scheduled_at=IN_48H + timedelta(hours=3))
        _join_many(group_session_service, full.id, 4)

        assert [s.id for s in group_session_service.list_open_sessions(MENTOR_ID)] == [open_one.id]
        assert {s.id for s in group_session_service.list_sessions_for_mentor(MENTOR_ID)} == {
            open_one.id,
            full.id,
        }
        confirmed = group_session_service.list_sessions_for_mentor(MENTOR_ID, "CONFIRMED")
        assert [s.id for s in confirmed] == [full.id]

    def test_open_sessions_include_confirmed_with_seats(
        self, make_session, group_session_service, clock
    ):
        confirmed = make_session()
        _join_many(group_session_service, confirmed.id, 3)
        waiting = make_session(scheduled_at=IN_48H + timedelta(hours=2))

        assert [s.id for s in group_session_service.list_open_sessions(MENTOR_ID)] == [
            confirmed.id,
            waiting.id,
        ]

        # Past its quorum deadline a SCHEDULED session no longer takes sign-ups
        clock.set(waiting.quorum_deadline)
        assert [s.id for s in group_session_service.list_open_sessions(MENTOR_ID)] == [
            confirmed.id
        ]
