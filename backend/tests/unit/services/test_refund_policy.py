"""Refund cutoff: eligible at exactly 24h before the start, not a minute later."""

from datetime import datetime, timedelta, timezone

import pytest

from mentorline.services.refund_policy import (
    POLICY_FULL_REFUND,
    POLICY_NO_REFUND,
    RefundPolicy,
    is_refund_eligible,
)

START = datetime(2024, 1, 8, 15, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "before_start, expected",
    [
        (timedelta(hours=48), True),
        (timedelta(hours=24), True),
        (timedelta(hours=24) - timedelta(minutes=1), False),
        (timedelta(hours=1), False),
        (timedelta(0), False),
        (-timedelta(minutes=5), False),
    ],
)
def test_cutoff_boundary(before_start, expected):
    assert is_refund_eligible(START, START - before_start) is expected


def test_naive_datetimes_are_treated_as_utc():
    naive_start = START.replace(tzinfo=None)
    assert is_refund_eligible(naive_start, START - timedelta(hours=24))
    assert not is_refund_eligible(naive_start, (START - timedelta(hours=23)).replace(tzinfo=None))


def test_custom_cutoff():
    assert is_refund_eligible(START, START - timedelta(hours=2), cutoff_hours=2)
    assert not is_refund_eligible(START, START - timedelta(hours=2), cutoff_hours=3)


class TestRefundPolicy:
    def test_evaluate_eligible(self):
        decision = RefundPolicy().evaluate(START, START - timedelta(hours=30))
        assert decision.eligible is True
        assert decision.policy_basis == POLICY_FULL_REFUND
        assert decision.hours_before_start == 30

    def test_evaluate_inside_cutoff(self):
        decision = RefundPolicy().evaluate(START, START - timedelta(hours=3, minutes=30))
        assert decision.eligible is False
        assert decision.policy_basis == POLICY_NO_REFUND
        assert decision.hours_before_start == 3.5

    def test_configured_cutoff(self):
        policy = RefundPolicy(cutoff_hours=48)
        assert not policy.is_eligible(START, START - timedelta(hours=30))
