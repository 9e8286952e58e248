"""Unit tests for the lesson payout qualification rules."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import DataIntegrityException
from app.domain.payouts import CancellationPolicy
from app.models.payout import QualificationReason
from app.services.payout_qualification import (
    PayoutQualificationEngine,
    QualificationDecision,
    calculate_line_amount,
    evaluate_lesson,
)
from tests.helpers.payout_doubles import FIXED_NOW, snapshot, utc

POLICY = CancellationPolicy(window_hours=24, payout_percent=50)


@pytest.fixture
def engine() -> PayoutQualificationEngine:
    return PayoutQualificationEngine()


class TestStatusRules:
    """Statuses that pay at the full rate."""

    def test_completed_lesson_pays_full(self, engine):
        decision = engine.evaluate(snapshot("l1", utc(2025, 1, 10, 10)), POLICY, FIXED_NOW)
        assert decision == QualificationDecision(True, QualificationReason.COMPLETED, 100)

    def test_confirmed_lesson_pays_full(self, engine):
        decision = engine.evaluate(
            snapshot("l1", utc(2025, 1, 10, 10), status="CONFIRMED"), POLICY, FIXED_NOW
        )
        assert decision.payable is True
        assert decision.reason == QualificationReason.CONFIRMED
        assert decision.payout_percent == 100

    def test_completed_lesson_in_the_future_still_pays(self, engine):
        """Completion is taken at face value even if the start is ahead of now."""
        future = FIXED_NOW + timedelta(days=3)
        decision = engine.evaluate(snapshot("l1", future), POLICY, FIXED_NOW)
        assert decision.reason == QualificationReason.COMPLETED

    def test_past_scheduled_lesson_counts_as_confirmed(self, engine):
        decision = engine.evaluate(
            snapshot("l1", FIXED_NOW - timedelta(minutes=1), status="SCHEDULED"), POLICY, FIXED_NOW
        )
        assert decision.payable is True
        assert decision.reason == QualificationReason.CONFIRMED
        assert decision.payout_percent == 100

    def test_future_scheduled_lesson_not_payable(self, engine):
        decision = engine.evaluate(
            snapshot("l1", FIXED_NOW + timedelta(hours=1), status="SCHEDULED"), POLICY, FIXED_NOW
        )
        assert decision == QualificationDecision.not_payable()

    def test_scheduled_exactly_now_not_payable(self, engine):
        decision = engine.evaluate(snapshot("l1", FIXED_NOW, status="SCHEDULED"), POLICY, FIXED_NOW)
        assert decision.payable is False

    def test_no_show_not_payable(self, engine):
        decision = engine.evaluate(
            snapshot("l1", utc(2025, 1, 10, 10), status="NO_SHOW"), POLICY, FIXED_NOW
        )
        assert decision.payable is False
        assert decision.reason is None
        assert decision.payout_percent is None


class TestLateCancellation:
    """Cancellations inside the policy window pay the policy percent."""

    def test_cancelled_inside_window_pays_policy_percent(self, engine):
        start = utc(2025, 1, 12, 14)
        lesson = snapshot(
            "l1", start, status="CANCELLED", cancelled_at=start - timedelta(hours=2)
        )
        decision = engine.evaluate(lesson, POLICY, FIXED_NOW)
        assert decision == QualificationDecision(True, QualificationReason.LATE_CANCELLATION, 50)

    def test_cancelled_exactly_at_window_boundary_not_payable(self, engine):
        start = utc(2025, 1, 12, 14)
        lesson = snapshot(
            "l1", start, status="CANCELLED", cancelled_at=start - timedelta(hours=24)
        )
        assert engine.evaluate(lesson, POLICY, FIXED_NOW).payable is False

    def test_cancelled_early_not_payable(self, engine):
        start = utc(2025, 1, 12, 14)
        lesson = snapshot("l1", start, status="CANCELLED", cancelled_at=start - timedelta(days=3))
        assert engine.evaluate(lesson, POLICY, FIXED_NOW).payable is False

    def test_cancelled_after_start_pays(self, engine):
        """Negative notice (cancelled after the start time) is the latest possible cancellation."""
        start = utc(2025, 1, 12, 14)
        lesson = snapshot(
            "l1", start, status="CANCELLED", cancelled_at=start + timedelta(minutes=15)
        )
        decision = engine.evaluate(lesson, POLICY, FIXED_NOW)
        assert decision.reason == QualificationReason.LATE_CANCELLATION

    def test_cancelled_without_timestamp_not_payable(self, engine):
        lesson = snapshot("l1", utc(2025, 1, 12, 14), status="CANCELLED")
        assert engine.evaluate(lesson, POLICY, FIXED_NOW).payable is False

    def test_zero_percent_policy_excludes_late_cancellations(self, engine):
        start = utc(2025, 1, 12, 14)
        lesson = snapshot("l1", start, status="CANCELLED", cancelled_at=start - timedelta(hours=1))
        policy = CancellationPolicy(window_hours=24, payout_percent=0)
        assert engine.evaluate(lesson, policy, FIXED_NOW).payable is False

    def test_zero_hour_window_never_pays_cancellations(self, engine):
        start = utc(2025, 1, 12, 14)
        lesson = snapshot("l1", start, status="CANCELLED", cancelled_at=start - timedelta(minutes=5))
        policy = CancellationPolicy(window_hours=0, payout_percent=100)
        assert engine.evaluate(lesson, policy, FIXED_NOW).payable is False


class TestDataIntegrity:
    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration_raises(self, engine, duration):
        lesson = snapshot("bad", utc(2025, 1, 10, 10), duration_minutes=duration)
        with pytest.raises(DataIntegrityException) as exc_info:
            engine.evaluate(lesson, POLICY, FIXED_NOW)
        assert exc_info.value.code == "INVALID_LESSON_DURATION"
        assert exc_info.value.details["lesson_id"] == "bad"


class TestLineAmount:
    def test_full_hour(self):
        assert calculate_line_amount(Decimal("100.00"), 60, 100) == Decimal("100.00")

    def test_half_paid_hour(self):
        assert calculate_line_amount(Decimal("100.00"), 60, 50) == Decimal("50.00")

    def test_rounds_half_up_to_cents(self):
        # 85 * 45 / 60 * 33 / 100 = 21.0375
        assert calculate_line_amount(Decimal("85.00"), 45, 33) == Decimal("21.04")

    def test_thirds_of_an_hour(self):
        # 100 * 20 / 60 = 33.333...
        assert calculate_line_amount(Decimal("100.00"), 20, 100) == Decimal("33.33")


def test_decision_payload():
    decision = QualificationDecision.pay(QualificationReason.LATE_CANCELLATION, 75)
    assert decision.to_payload() == {
        "payable": True,
        "reason": "LATE_CANCELLATION",
        "payout_percent": 75,
    }
    assert QualificationDecision.not_payable().to_payload()["reason"] is None


def test_module_shortcut_matches_engine():
    lesson = snapshot("l1", utc(2025, 1, 10, 10))
    assert evaluate_lesson(lesson, POLICY, FIXED_NOW) == PayoutQualificationEngine().evaluate(
        lesson, POLICY, FIXED_NOW
    )
