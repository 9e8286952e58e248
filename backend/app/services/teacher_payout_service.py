# backend/app/services/teacher_payout_service.py
"""
Teacher Payout Service for LinguaDesk

Owns the payout lifecycle: preview, create, status transitions and deletion,
plus the read models managers use to review payouts and lessons.

Guarantees:
- A lesson is held by at most one non-cancelled payout. Creation re-runs the
  aggregation inside its own transaction and the partial unique index on
  active line items rejects any claim that slipped past it.
- Every write either commits completely or leaves no trace.
- Cancelling a payout releases its lessons for a later payout.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MAX_PAYOUT_NOTES_LENGTH
from ..core.exceptions import (
    InvalidPayoutTransitionException,
    MixedCurrencyPayoutException,
    NothingToPayException,
    PayoutClaimConflictException,
    PayoutDeleteConflictException,
    PayoutNotFoundException,
    PayoutTimeoutException,
    RepositoryException,
    ServiceException,
    TeacherNotFoundException,
    ValidationException,
    is_db_timeout,
)
from ..core.timezone_utils import local_day_bounds_utc, period_bounds_utc, utc_now
from ..domain.payouts import LessonClaim, PayoutFilters
from ..models.payout import QualificationReason, TeacherPayout, TeacherPayoutStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from ..repositories.organization_repository import OrganizationRepository
from ..repositories.payout_repository import IPayoutRepository
from ..repositories.teacher_repository import TeacherRepository
from .base import BaseService
from .payout_preview_service import PayoutPreview, PayoutPreviewService
from .payout_qualification import CENT, PayoutQualificationEngine, calculate_line_amount

# Allowed status transitions; PAID and CANCELLED are terminal
ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    TeacherPayoutStatus.PENDING.value: {
        TeacherPayoutStatus.APPROVED.value,
        TeacherPayoutStatus.CANCELLED.value,
    },
    TeacherPayoutStatus.APPROVED.value: {
        TeacherPayoutStatus.PAID.value,
        TeacherPayoutStatus.CANCELLED.value,
    },
    TeacherPayoutStatus.PAID.value: set(),
    TeacherPayoutStatus.CANCELLED.value: set(),
}


@dataclass(frozen=True)
class TeacherPayoutSummary:
    """
    Pending payouts of one active teacher.

    ``currency`` labels the hourly rate. Pending amounts are kept per currency;
    ``pending_payouts_total`` and ``pending_currency`` are None when the pending
    payouts use more than one currency.
    """

    teacher_id: str
    teacher_name: str
    hourly_rate: Optional[Decimal]
    currency: Optional[str]
    pending_payouts_count: int
    pending_payouts_total: Optional[Decimal]
    pending_currency: Optional[str]
    pending_totals_by_currency: Dict[str, Decimal]


@dataclass(frozen=True)
class LessonPayoutInfo:
    """A lesson in a calendar range, annotated with its payout standing."""

    lesson_id: str
    title: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    cancelled_at: Optional[datetime]
    student_name: str
    qualifies_for_payout: bool
    qualification_reason: Optional[QualificationReason]
    payout_percent: Optional[int]
    hourly_rate: Optional[Decimal]
    amount: Optional[Decimal]
    currency: Optional[str]
    payout: Optional[LessonClaim]


class TeacherPayoutService(BaseService):
    """
    Service layer for teacher payouts.

    All operations take the organization id explicitly; nothing is read from
    ambient request state.
    """

    def __init__(
        self,
        db: Session,
        *,
        preview_service: Optional[PayoutPreviewService] = None,
        payout_repository: Optional[IPayoutRepository] = None,
        teacher_repository: Optional[TeacherRepository] = None,
        lesson_repository: Optional[LessonRepository] = None,
        organization_repository: Optional[OrganizationRepository] = None,
    ):
        super().__init__(db)
        self.payout_repository = payout_repository or RepositoryFactory.create_payout_repository(db)
        self.teacher_repository = teacher_repository or RepositoryFactory.create_teacher_repository(
            db
        )
        self.lesson_repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)
        self.organization_repository = (
            organization_repository or RepositoryFactory.create_organization_repository(db)
        )
        self.preview_service = preview_service or PayoutPreviewService(
            db,
            lesson_source=self.lesson_repository,
            rate_source=self.teacher_repository,
            policy_source=self.organization_repository,
        )
        self.qualification_engine = PayoutQualificationEngine()

    @contextmanager
    def _repository_errors(self, operation: str) -> Iterator[None]:
        """Translate repository failures into service exceptions."""
        try:
            yield
        except RepositoryException as exc:
            if is_db_timeout(exc):
                self.logger.warning(
                    "Payout operation timed out", extra={"operation": operation, "error": str(exc)}
                )
                raise PayoutTimeoutException(operation) from exc
            self.logger.error(
                "Payout storage failure", extra={"operation": operation, "error": str(exc)}
            )
            raise ServiceException(
                "Payout storage operation failed",
                code="PAYOUT_STORAGE_ERROR",
                details={"operation": operation},
            ) from exc

    # ------------------------------------------------------------------
    # Preview / create
    # ------------------------------------------------------------------

    @BaseService.measure_operation("preview_payout")
    def preview_payout(
        self,
        organization_id: str,
        teacher_id: str,
        period_start: date,
        period_end: date,
        now: Optional[datetime] = None,
    ) -> PayoutPreview:
        """Read-only preview; see PayoutPreviewService.preview."""
        with self._repository_errors("preview_payout"):
            return self.preview_service.preview(
                organization_id, teacher_id, period_start, period_end, now=now
            )

    @BaseService.measure_operation("create_payout")
    def create_payout(
        self,
        organization_id: str,
        teacher_id: str,
        period_start: date,
        period_end: date,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[TeacherPayout, PayoutPreview]:
        """
        Create a PENDING payout for every unclaimed payable lesson in the period.

        The preview is recomputed inside the transaction; any preview the
        caller showed earlier is informational only.

        Returns:
            (payout, preview) where preview is the aggregation that was persisted

        Raises:
            ValidationException: Bad period or notes
            TeacherNotFoundException: Teacher not in the organization
            NothingToPayException: No payable, unclaimed lessons in the period
            MixedCurrencyPayoutException: Payable lessons use several currencies
            PayoutClaimConflictException: A lesson was claimed concurrently
            PayoutTimeoutException: The database timed out
        """
        self._validate_notes(notes)
        max_attempts = max(1, settings.payout_create_max_attempts)

        attempt = 1
        while True:
            try:
                return self._create_payout_once(
                    organization_id, teacher_id, period_start, period_end, notes, now
                )
            except (PayoutClaimConflictException, PayoutTimeoutException) as exc:
                if attempt >= max_attempts:
                    raise
                self.logger.warning(
                    "Retrying payout creation",
                    extra={
                        "organization_id": organization_id,
                        "teacher_id": teacher_id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error_code": exc.code,
                    },
                )
                attempt += 1

    def _create_payout_once(
        self,
        organization_id: str,
        teacher_id: str,
        period_start: date,
        period_end: date,
        notes: Optional[str],
        now: Optional[datetime],
    ) -> Tuple[TeacherPayout, PayoutPreview]:
        with self._repository_errors("create_payout"):
            with self.transaction("create_payout"):
                teacher = self.teacher_repository.lock_teacher(organization_id, teacher_id)
                if teacher is None:
                    raise TeacherNotFoundException(teacher_id)

                preview = self.preview_service.preview(
                    organization_id, teacher_id, period_start, period_end, now=now
                )
                if preview.is_empty:
                    raise NothingToPayException(
                        teacher_id, period_start.isoformat(), period_end.isoformat()
                    )
                if preview.currency is None or preview.total_amount is None:
                    raise MixedCurrencyPayoutException(
                        teacher_id, list(preview.totals_by_currency.keys())
                    )

                payout_data = {
                    "organization_id": organization_id,
                    "teacher_id": teacher_id,
                    "period_start": period_start,
                    "period_end": period_end,
                    "total_minutes": preview.total_minutes,
                    "total_hours": preview.total_hours.quantize(CENT),
                    "total_amount": preview.total_amount,
                    "currency": preview.currency,
                    "status": TeacherPayoutStatus.PENDING.value,
                    "notes": notes,
                }
                line_items = [lesson.to_line_item() for lesson in preview.lessons]

                try:
                    payout = self.payout_repository.create_with_line_items(payout_data, line_items)
                except IntegrityError as exc:
                    prometheus_metrics.inc_payout_claim_conflict()
                    self.logger.warning(
                        "Payout claim conflict",
                        extra={
                            "organization_id": organization_id,
                            "teacher_id": teacher_id,
                            "lesson_ids": preview.lesson_ids,
                        },
                    )
                    raise PayoutClaimConflictException(lesson_ids=preview.lesson_ids) from exc

        prometheus_metrics.inc_payout_created(payout.currency, preview.lesson_count)
        self.logger.info(
            "Teacher payout created",
            extra={
                "organization_id": organization_id,
                "teacher_id": teacher_id,
                "payout_id": payout.id,
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "lesson_count": preview.lesson_count,
                "total_amount": str(payout.total_amount),
                "currency": payout.currency,
            },
        )
        return payout, preview

    # ------------------------------------------------------------------
    # Status / delete
    # ------------------------------------------------------------------

    @BaseService.measure_operation("set_payout_status")
    def set_payout_status(
        self,
        organization_id: str,
        payout_id: str,
        status: Union[TeacherPayoutStatus, str],
        notes: Optional[str] = None,
    ) -> TeacherPayout:
        """
        Move a payout through its lifecycle.

        PENDING -> APPROVED -> PAID, and PENDING/APPROVED -> CANCELLED. Paying
        stamps paid_at; cancelling releases the lessons. ``notes`` replaces the
        payout notes when given.
        """
        target = self._coerce_status(status)
        self._validate_notes(notes)

        with self._repository_errors("set_payout_status"):
            with self.transaction("set_payout_status"):
                payout = self.payout_repository.get_payout(
                    organization_id, payout_id, load_line_items=False
                )
                if payout is None:
                    raise PayoutNotFoundException(payout_id)

                current = payout.status
                if target.value not in ALLOWED_TRANSITIONS.get(current, set()):
                    raise InvalidPayoutTransitionException(payout_id, current, target.value)

                payout.status = target.value
                if target == TeacherPayoutStatus.PAID:
                    payout.paid_at = utc_now()
                if notes is not None:
                    payout.notes = notes

                released = 0
                if target == TeacherPayoutStatus.CANCELLED:
                    released = self.payout_repository.release_claims(payout.id)

                self.db.flush()

        prometheus_metrics.inc_payout_status_transition(current, target.value)
        self.logger.info(
            "Teacher payout status changed",
            extra={
                "organization_id": organization_id,
                "payout_id": payout_id,
                "from_status": current,
                "to_status": target.value,
                "released_lessons": released,
            },
        )
        return payout

    @BaseService.measure_operation("delete_payout")
    def delete_payout(self, organization_id: str, payout_id: str) -> None:
        """
        Delete the teacher's most recent payout while it is still PENDING.

        Raises:
            PayoutNotFoundException: Payout not in the organization
            PayoutDeleteConflictException: Not PENDING, or a newer payout exists
        """
        with self._repository_errors("delete_payout"):
            with self.transaction("delete_payout"):
                payout = self.payout_repository.get_payout(organization_id, payout_id)
                if payout is None:
                    raise PayoutNotFoundException(payout_id)

                if payout.status != TeacherPayoutStatus.PENDING.value:
                    raise PayoutDeleteConflictException(
                        payout_id, "Only pending payouts can be deleted"
                    )

                latest = self.payout_repository.get_latest_active_payout(
                    organization_id, payout.teacher_id
                )
                if latest is None or latest.id != payout.id:
                    raise PayoutDeleteConflictException(
                        payout_id, "Only the most recent payout of a teacher can be deleted"
                    )

                teacher_id = payout.teacher_id
                self.payout_repository.delete_payout(payout)

        self.logger.info(
            "Teacher payout deleted",
            extra={
                "organization_id": organization_id,
                "payout_id": payout_id,
                "teacher_id": teacher_id,
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_payout")
    def get_payout(self, organization_id: str, payout_id: str) -> TeacherPayout:
        with self._repository_errors("get_payout"):
            payout = self.payout_repository.get_payout(organization_id, payout_id)
        if payout is None:
            raise PayoutNotFoundException(payout_id)
        return payout

    @BaseService.measure_operation("list_payouts")
    def list_payouts(
        self, organization_id: str, filters: Optional[PayoutFilters] = None
    ) -> List[TeacherPayout]:
        """Payouts ordered by lifecycle status, then period_end and created_at descending."""
        filters = filters or PayoutFilters()
        status = self._coerce_status(filters.status).value if filters.status else None
        if filters.period_start and filters.period_end and filters.period_start > filters.period_end:
            raise ValidationException(
                "period_start must be on or before period_end", field="period_start"
            )

        with self._repository_errors("list_payouts"):
            return self.payout_repository.list_payouts(
                organization_id,
                teacher_id=filters.teacher_id,
                status=status,
                period_start=filters.period_start,
                period_end=filters.period_end,
                limit=filters.limit,
            )

    @BaseService.measure_operation("list_teacher_payouts")
    def list_teacher_payouts(self, organization_id: str, teacher_id: str) -> List[TeacherPayout]:
        with self._repository_errors("list_teacher_payouts"):
            if self.teacher_repository.get_teacher(organization_id, teacher_id) is None:
                raise TeacherNotFoundException(teacher_id)
            return self.payout_repository.list_payouts(organization_id, teacher_id=teacher_id)

    @BaseService.measure_operation("get_teachers_summary")
    def get_teachers_summary(self, organization_id: str) -> List[TeacherPayoutSummary]:
        """Active teachers by last name with pending payout counts and per-currency totals."""
        with self._repository_errors("get_teachers_summary"):
            teachers = self.teacher_repository.list_active_teachers(organization_id)
            pending = self.payout_repository.get_pending_summary(organization_id)
            default_currency = self.organization_repository.get_currency(organization_id)

        summaries = []
        for teacher in teachers:
            currency = teacher.currency or default_currency
            per_currency = pending.get(teacher.id, {})
            totals = {code: total for code, (_, total) in sorted(per_currency.items())}

            if not totals:
                pending_total: Optional[Decimal] = Decimal("0")
                pending_currency: Optional[str] = currency
            elif len(totals) == 1:
                pending_currency, pending_total = next(iter(totals.items()))
            else:
                pending_total, pending_currency = None, None

            summaries.append(
                TeacherPayoutSummary(
                    teacher_id=teacher.id,
                    teacher_name=teacher.full_name,
                    hourly_rate=teacher.hourly_rate,
                    currency=currency,
                    pending_payouts_count=sum(count for count, _ in per_currency.values()),
                    pending_payouts_total=pending_total,
                    pending_currency=pending_currency,
                    pending_totals_by_currency=totals,
                )
            )
        return summaries

    @BaseService.measure_operation("get_lessons_for_range")
    def get_lessons_for_range(
        self,
        organization_id: str,
        teacher_id: str,
        from_date: date,
        to_date: date,
        now: Optional[datetime] = None,
    ) -> List[LessonPayoutInfo]:
        """Every lesson of the teacher in an inclusive local date range, with payout standing."""
        if from_date > to_date:
            raise ValidationException(
                "from_date must be on or before to_date",
                field="from_date",
                details={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
            )

        with self._repository_errors("get_lessons_for_range"):
            timezone_name = self.organization_repository.get_timezone(organization_id)
            start, end = period_bounds_utc(from_date, to_date, timezone_name)
            return self._annotate_lessons(organization_id, teacher_id, start, end, now)

    @BaseService.measure_operation("get_lessons_for_day")
    def get_lessons_for_day(
        self,
        organization_id: str,
        teacher_id: str,
        day: date,
        now: Optional[datetime] = None,
    ) -> List[LessonPayoutInfo]:
        with self._repository_errors("get_lessons_for_day"):
            timezone_name = self.organization_repository.get_timezone(organization_id)
            start, end = local_day_bounds_utc(day, timezone_name)
            return self._annotate_lessons(organization_id, teacher_id, start, end, now)

    def _annotate_lessons(
        self,
        organization_id: str,
        teacher_id: str,
        start: datetime,
        end: datetime,
        now: Optional[datetime],
    ) -> List[LessonPayoutInfo]:
        if self.teacher_repository.get_teacher(organization_id, teacher_id) is None:
            raise TeacherNotFoundException(teacher_id)

        policy = self.organization_repository.get_cancellation_policy(organization_id, teacher_id)
        lessons = self.lesson_repository.list_lessons_for_teacher_in_range(
            organization_id, teacher_id, start, end
        )
        claims = self.lesson_repository.get_active_claims([lesson.id for lesson in lessons])
        current = now or utc_now()

        result = []
        for lesson in lessons:
            decision = self.qualification_engine.evaluate(lesson, policy, current)
            rate = self.teacher_repository.get_teacher_rate(
                organization_id, teacher_id, lesson.scheduled_at
            )
            amount = None
            if decision.payable and rate is not None:
                amount = calculate_line_amount(
                    rate.hourly_rate, lesson.duration_minutes, decision.payout_percent or 0
                )
            result.append(
                LessonPayoutInfo(
                    lesson_id=lesson.id,
                    title=lesson.title,
                    scheduled_at=lesson.scheduled_at,
                    duration_minutes=lesson.duration_minutes,
                    status=lesson.status,
                    cancelled_at=lesson.cancelled_at,
                    student_name=lesson.student_name,
                    qualifies_for_payout=decision.payable,
                    qualification_reason=decision.reason,
                    payout_percent=decision.payout_percent,
                    hourly_rate=rate.hourly_rate if rate else None,
                    amount=amount,
                    currency=rate.currency if rate else None,
                    payout=claims.get(lesson.id),
                )
            )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce_status(status: Union[TeacherPayoutStatus, str]) -> TeacherPayoutStatus:
        if isinstance(status, TeacherPayoutStatus):
            return status
        try:
            return TeacherPayoutStatus(str(status).strip().upper())
        except ValueError:
            raise ValidationException(
                f"Unknown payout status: {status}",
                field="status",
                details={"allowed": [s.value for s in TeacherPayoutStatus]},
            ) from None

    @staticmethod
    def _validate_notes(notes: Optional[str]) -> None:
        if notes is not None and len(notes) > MAX_PAYOUT_NOTES_LENGTH:
            raise ValidationException(
                f"Notes must be at most {MAX_PAYOUT_NOTES_LENGTH} characters",
                field="notes",
            )
