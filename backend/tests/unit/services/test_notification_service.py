"""Notification fan-out and providers."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from mentorline.core.exceptions import ServiceException
from mentorline.services import notification_templates as templates
from mentorline.services.notification_provider import (
    ConsoleNotificationProvider,
    NotificationProviderError,
    ResendNotificationProvider,
    build_notification_provider,
    recipient_as_address,
)
from mentorline.services.notification_service import format_start
from testkit import CONSUMER_ID, MENTOR_ID, MONDAY_1000, utc


@pytest.fixture
def confirmed_call(monday_availability, booking_service):
    monday_availability()
    call = booking_service.request(MENTOR_ID, CONSUMER_ID, MONDAY_1000, 30, questions_in_advance="Salary bands?")
    return booking_service.confirm(call.id)


def test_format_start_is_utc():
    assert format_start(utc(2024, 1, 8, 15, 0)) == "2024-01-08 15:00"


def test_failed_recipient_does_not_stop_others(confirmed_call, notification_service, notifications):
    notifications.failing.add(CONSUMER_ID)

    delivered = notification_service.call_confirmed(confirmed_call)

    assert delivered == 1
    assert notifications.recipients("call_confirmed")[-1] == MENTOR_ID


def test_cancel_notice_carries_refund_flag(confirmed_call, booking_service, notifications):
    booking_service.cancel(confirmed_call.id, "MENTOR")

    messages = notifications.of_type("call_cancelled")
    assert [m[0] for m in messages] == [CONSUMER_ID, MENTOR_ID]
    data = messages[0][2]
    assert data["refund_eligible"] is True
    assert data["refund_label"] == "yes"
    assert data["cancelled_by"] == "mentor"
    assert data["questions"] == "Salary bands?"


def test_failed_notice_does_not_undo_cancellation(
    confirmed_call, booking_service, notifications, clock
):
    notifications.failing.update({CONSUMER_ID, MENTOR_ID})
    clock.set(MONDAY_1000 - timedelta(hours=1))

    call = booking_service.cancel(confirmed_call.id, "CONSUMER")

    assert call.status == "CANCELLED"
    assert call.refund_eligible is False


def test_send_reminder_propagates_errors(notification_service, notifications):
    notifications.failing.add("someone")
    with pytest.raises(RuntimeError):
        notification_service.send_reminder("someone", templates.REMINDER_DAY_BEFORE, {"title": "x", "starts_at": "y", "video_room_url": ""})


class TestProviders:
    def test_console_is_the_default(self):
        assert isinstance(build_notification_provider(), ConsoleNotificationProvider)

    def test_recipient_as_address(self):
        assert recipient_as_address("ada@example.com") == "ada@example.com"
        assert recipient_as_address("user_123") is None

    def test_resend_requires_api_key(self, monkeypatch):
        from mentorline.services import notification_provider

        monkeypatch.setattr(notification_provider.settings, "resend_api_key", None)
        with pytest.raises(ServiceException):
            ResendNotificationProvider()

    def test_resend_sends_rendered_email(self):
        provider = ResendNotificationProvider(api_key="re_test", from_email="Mentorline <hi@example.com>")
        data = {
            "title": "30-minute call",
            "starts_at": "2024-01-08 15:00",
            "duration_minutes": 30,
            "video_room_url": "https://mentorline.daily.co/call-1",
        }

        with patch("resend.Emails.send") as send:
            provider.send("ada@example.com", templates.CALL_CONFIRMED, data)

        email = send.call_args[0][0]
        assert email["to"] == "ada@example.com"
        assert email["subject"] == "Call confirmed for 2024-01-08 15:00"
        assert "https://mentorline.daily.co/call-1" in email["text"]

    def test_resend_unknown_address(self):
        provider = ResendNotificationProvider(api_key="re_test")
        with pytest.raises(NotificationProviderError):
            provider.send("user_123", templates.CALL_DECLINED, {"starts_at": "soon"})

    def test_resend_failure_is_wrapped(self):
        provider = ResendNotificationProvider(api_key="re_test")
        with patch("resend.Emails.send", side_effect=RuntimeError("rate limited")):
            with pytest.raises(NotificationProviderError):
                provider.send("ada@example.com", templates.CALL_DECLINED, {"starts_at": "soon"})
