"""Lesson payout qualification rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging

from app.core.constants import MAX_PAYOUT_PERCENT, MIN_PAYOUT_PERCENT
from app.core.exceptions import DataIntegrityException
from app.core.timezone_utils import ensure_utc, utc_now
from app.domain.payouts import CancellationPolicy, LessonSnapshot
from app.models.lesson import LessonStatus
from app.models.payout import QualificationReason

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MINUTES_PER_HOUR = Decimal(60)
FULL_PERCENT = MAX_PAYOUT_PERCENT


@dataclass(frozen=True)
class QualificationDecision:
    payable: bool
    reason: QualificationReason | None = None
    payout_percent: int | None = None

    @classmethod
    def not_payable(cls) -> "QualificationDecision":
        return cls(payable=False)

    @classmethod
    def pay(cls, reason: QualificationReason, payout_percent: int = FULL_PERCENT) -> "QualificationDecision":
        return cls(payable=True, reason=reason, payout_percent=payout_percent)

    def to_payload(self) -> dict[str, object]:
        return {
            "payable": self.payable,
            "reason": self.reason.value if self.reason else None,
            "payout_percent": self.payout_percent,
        }


def calculate_line_amount(hourly_rate: Decimal, duration_minutes: int, payout_percent: int) -> Decimal:
    """
    Amount owed for one lesson, rounded half-up to cents.

    amount = hourly_rate * duration_minutes / 60 * payout_percent / 100
    """
    raw = (
        Decimal(hourly_rate)
        * Decimal(duration_minutes)
        / MINUTES_PER_HOUR
        * Decimal(payout_percent)
        / Decimal(100)
    )
    return raw.quantize(CENT, rounding=ROUND_HALF_UP)


class PayoutQualificationEngine:
    """Decides whether a lesson is payable, why, and at which percent."""

    def evaluate(
        self,
        lesson: LessonSnapshot,
        policy: CancellationPolicy,
        now: datetime | None = None,
    ) -> QualificationDecision:
        if lesson.duration_minutes is None or lesson.duration_minutes <= 0:
            logger.error(
                "Lesson with non-positive duration reached payout evaluation",
                extra={"lesson_id": lesson.id, "duration_minutes": lesson.duration_minutes},
            )
            raise DataIntegrityException(
                "Lesson duration must be positive",
                code="INVALID_LESSON_DURATION",
                details={"lesson_id": lesson.id, "duration_minutes": lesson.duration_minutes},
            )

        status = lesson.status
        if status == LessonStatus.COMPLETED.value:
            return QualificationDecision.pay(QualificationReason.COMPLETED)

        if status == LessonStatus.CONFIRMED.value:
            return QualificationDecision.pay(QualificationReason.CONFIRMED)

        current = ensure_utc(now) if now is not None else utc_now()
        scheduled_at = ensure_utc(lesson.scheduled_at)

        # Nobody marked it cancelled and the start time has passed
        if status == LessonStatus.SCHEDULED.value and scheduled_at < current:
            return QualificationDecision.pay(QualificationReason.CONFIRMED)

        if status == LessonStatus.CANCELLED.value and lesson.cancelled_at is not None:
            notice = scheduled_at - ensure_utc(lesson.cancelled_at)
            if notice < timedelta(hours=policy.window_hours):
                if policy.payout_percent >= MIN_PAYOUT_PERCENT:
                    return QualificationDecision.pay(
                        QualificationReason.LATE_CANCELLATION, policy.payout_percent
                    )

        return QualificationDecision.not_payable()


_engine = PayoutQualificationEngine()


def evaluate_lesson(
    lesson: LessonSnapshot,
    policy: CancellationPolicy,
    now: datetime | None = None,
) -> QualificationDecision:
    """Module-level shortcut for PayoutQualificationEngine().evaluate."""
    return _engine.evaluate(lesson, policy, now)
