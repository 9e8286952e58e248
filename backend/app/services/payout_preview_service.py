# backend/app/services/payout_preview_service.py
"""
Payout Preview Service for LinguaDesk

Aggregates a teacher's payable lessons for an inclusive date period into a
read-only preview: qualified lessons with frozen rates and amounts, totals
and warnings. The same aggregation runs inside payout creation, so the
preview a manager sees and the payout that gets stored are computed by one
code path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import TeacherNotFoundException, ValidationException
from ..core.timezone_utils import period_bounds_utc, utc_now
from ..domain.payouts import LessonSnapshot, TeacherRateSnapshot
from ..models.lesson import LessonStatus
from ..models.payout import QualificationReason
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import ILessonSource
from ..repositories.organization_repository import IOrganizationPolicySource
from ..repositories.teacher_repository import ITeacherRateSource
from .base import BaseService
from .payout_qualification import PayoutQualificationEngine, calculate_line_amount

# Statuses that can ever qualify; NO_SHOW never pays
CANDIDATE_LESSON_STATUSES: Tuple[str, ...] = (
    LessonStatus.COMPLETED.value,
    LessonStatus.CONFIRMED.value,
    LessonStatus.SCHEDULED.value,
    LessonStatus.CANCELLED.value,
)

WARNING_MISSING_HOURLY_RATE = "MISSING_HOURLY_RATE"
WARNING_MIXED_CURRENCY = "MIXED_CURRENCY"

MINUTES_PER_HOUR = Decimal(60)


@dataclass(frozen=True)
class QualifiedLesson:
    """A payable lesson with its rate and amount frozen."""

    lesson_id: str
    title: str
    scheduled_at: datetime
    duration_minutes: int
    student_name: str
    hourly_rate: Decimal
    currency: str
    qualification_reason: QualificationReason
    payout_percent: int
    amount: Decimal

    def to_line_item(self) -> Dict[str, object]:
        """Column values for a PayoutLineItem built from this lesson."""
        return {
            "lesson_id": self.lesson_id,
            "lesson_date": self.scheduled_at,
            "lesson_title": self.title,
            "student_name": self.student_name,
            "duration_minutes": self.duration_minutes,
            "hourly_rate": self.hourly_rate,
            "amount": self.amount,
            "currency": self.currency,
            "qualification_reason": self.qualification_reason.value,
            "payout_percent": self.payout_percent,
            "claim_active": True,
        }


@dataclass(frozen=True)
class PayoutWarning:
    code: str
    message: str
    lesson_ids: Tuple[str, ...] = ()
    currencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PayoutPreview:
    organization_id: str
    teacher_id: str
    teacher_name: str
    period_start: date
    period_end: date
    lessons: Tuple[QualifiedLesson, ...]
    total_minutes: int
    total_hours: Decimal
    total_amount: Optional[Decimal]
    currency: Optional[str]
    totals_by_currency: Dict[str, Decimal] = field(default_factory=dict)
    warnings: Tuple[PayoutWarning, ...] = ()

    @property
    def lesson_count(self) -> int:
        return len(self.lessons)

    @property
    def lesson_ids(self) -> List[str]:
        return [lesson.lesson_id for lesson in self.lessons]

    @property
    def is_empty(self) -> bool:
        return not self.lessons

    @property
    def has_mixed_currency(self) -> bool:
        return len(self.totals_by_currency) > 1

    def warning_codes(self) -> List[str]:
        return [warning.code for warning in self.warnings]


class PayoutPreviewService(BaseService):
    """
    Read-only period aggregation.

    The three sources default to the SQLAlchemy repositories bound to ``db``;
    any implementation of the source interfaces can be passed instead.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        *,
        lesson_source: Optional[ILessonSource] = None,
        rate_source: Optional[ITeacherRateSource] = None,
        policy_source: Optional[IOrganizationPolicySource] = None,
        qualification_engine: Optional[PayoutQualificationEngine] = None,
    ):
        super().__init__(db)
        self.lesson_source = lesson_source or RepositoryFactory.create_lesson_repository(db)
        self.rate_source = rate_source or RepositoryFactory.create_teacher_repository(db)
        self.policy_source = policy_source or RepositoryFactory.create_organization_repository(db)
        self.qualification_engine = qualification_engine or PayoutQualificationEngine()

    @BaseService.measure_operation("preview_payout")
    def preview(
        self,
        organization_id: str,
        teacher_id: str,
        period_start: date,
        period_end: date,
        now: Optional[datetime] = None,
    ) -> PayoutPreview:
        """
        Compute which lessons of a teacher are payable in a period and what they sum to.

        Args:
            organization_id: Tenant the teacher must belong to
            teacher_id: Teacher to aggregate
            period_start: First local calendar day (inclusive)
            period_end: Last local calendar day (inclusive)
            now: Reference time for past SCHEDULED lessons (defaults to current UTC time)

        Returns:
            PayoutPreview; lessons already claimed by an active payout are left out

        Raises:
            ValidationException: period_start is after period_end
            TeacherNotFoundException: Teacher not in the organization
        """
        if period_start > period_end:
            raise ValidationException(
                "period_start must be on or before period_end",
                field="period_start",
                details={
                    "period_start": period_start.isoformat(),
                    "period_end": period_end.isoformat(),
                },
            )

        teacher = self.rate_source.get_teacher_snapshot(organization_id, teacher_id)
        if teacher is None:
            raise TeacherNotFoundException(teacher_id)

        timezone_name = self.policy_source.get_timezone(organization_id)
        range_start, range_end = period_bounds_utc(period_start, period_end, timezone_name)
        policy = self.policy_source.get_cancellation_policy(organization_id, teacher_id)
        current = now or utc_now()

        lessons = self.lesson_source.list_lessons_for_teacher_in_range(
            organization_id,
            teacher_id,
            range_start,
            range_end,
            statuses=CANDIDATE_LESSON_STATUSES,
        )
        claimed = self.lesson_source.claimed_lesson_ids([lesson.id for lesson in lessons])

        qualified: List[QualifiedLesson] = []
        missing_rate: List[str] = []
        for lesson in lessons:
            if lesson.id in claimed:
                continue

            decision = self.qualification_engine.evaluate(lesson, policy, current)
            if not decision.payable:
                continue

            rate = self.rate_source.get_teacher_rate(
                organization_id, teacher_id, lesson.scheduled_at
            )
            if rate is None:
                missing_rate.append(lesson.id)
                continue

            qualified.append(
                self._qualify(lesson, rate, decision.reason, decision.payout_percent)
            )

        preview = self._build_preview(
            organization_id=organization_id,
            teacher_id=teacher.id,
            teacher_name=teacher.full_name,
            period_start=period_start,
            period_end=period_end,
            lessons=qualified,
            missing_rate=missing_rate,
            default_currency=self.policy_source.get_currency(organization_id),
        )

        self.logger.debug(
            "Payout preview computed",
            extra={
                "organization_id": organization_id,
                "teacher_id": teacher_id,
                "lesson_count": preview.lesson_count,
                "claimed_skipped": len(claimed),
                "missing_rate": len(missing_rate),
            },
        )
        return preview

    @staticmethod
    def _qualify(
        lesson: LessonSnapshot,
        rate: TeacherRateSnapshot,
        reason: Optional[QualificationReason],
        payout_percent: Optional[int],
    ) -> QualifiedLesson:
        percent = int(payout_percent or 0)
        return QualifiedLesson(
            lesson_id=lesson.id,
            title=lesson.title,
            scheduled_at=lesson.scheduled_at,
            duration_minutes=lesson.duration_minutes,
            student_name=lesson.student_name,
            hourly_rate=Decimal(rate.hourly_rate),
            currency=rate.currency,
            qualification_reason=reason or QualificationReason.COMPLETED,
            payout_percent=percent,
            amount=calculate_line_amount(rate.hourly_rate, lesson.duration_minutes, percent),
        )

    @staticmethod
    def _build_preview(
        *,
        organization_id: str,
        teacher_id: str,
        teacher_name: str,
        period_start: date,
        period_end: date,
        lessons: List[QualifiedLesson],
        missing_rate: List[str],
        default_currency: str,
    ) -> PayoutPreview:
        total_minutes = sum(lesson.duration_minutes for lesson in lessons)

        totals_by_currency: Dict[str, Decimal] = {}
        for lesson in lessons:
            totals_by_currency[lesson.currency] = (
                totals_by_currency.get(lesson.currency, Decimal("0")) + lesson.amount
            )

        warnings: List[PayoutWarning] = []
        if missing_rate:
            warnings.append(
                PayoutWarning(
                    code=WARNING_MISSING_HOURLY_RATE,
                    message="Some payable lessons were skipped because the teacher has no hourly rate",
                    lesson_ids=tuple(missing_rate),
                )
            )

        total_amount: Optional[Decimal]
        currency: Optional[str]
        if not totals_by_currency:
            total_amount, currency = Decimal("0.00"), default_currency
        elif len(totals_by_currency) == 1:
            currency, total_amount = next(iter(totals_by_currency.items()))
        else:
            total_amount, currency = None, None
            warnings.append(
                PayoutWarning(
                    code=WARNING_MIXED_CURRENCY,
                    message="Payable lessons are priced in more than one currency",
                    currencies=tuple(sorted(totals_by_currency)),
                )
            )

        return PayoutPreview(
            organization_id=organization_id,
            teacher_id=teacher_id,
            teacher_name=teacher_name,
            period_start=period_start,
            period_end=period_end,
            lessons=tuple(lessons),
            total_minutes=total_minutes,
            total_hours=Decimal(total_minutes) / MINUTES_PER_HOUR,
            total_amount=total_amount,
            currency=currency,
            totals_by_currency=totals_by_currency,
            warnings=tuple(warnings),
        )
