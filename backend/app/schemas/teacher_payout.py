"""
Teacher payout schemas for LinguaDesk.

Request models validate manager input before it reaches TeacherPayoutService;
response models render payouts, previews, summaries and the lesson payout
calendar.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.constants import MAX_PAYOUT_NOTES_LENGTH, MAX_PAYOUT_PERCENT, MAX_QUERY_LIMIT
from ..core.exceptions import DomainException
from ..domain.payouts import PayoutFilters
from ..models.payout import TeacherPayoutStatus
from ._strict_base import StrictModel, StrictRequestModel
from .base import Money, StandardizedModel

# ========== Request Models ==========


class PayoutPeriodRequest(StrictRequestModel):
    """Teacher and inclusive period shared by preview and create."""

    teacher_id: str = Field(..., min_length=1, description="Teacher ULID")
    period_start: date = Field(..., description="First day of the period (inclusive)")
    period_end: date = Field(..., description="Last day of the period (inclusive)")

    @model_validator(mode="after")
    def _check_period(self) -> "PayoutPeriodRequest":
        if self.period_start > self.period_end:
            raise ValueError("period_start must be on or before period_end")
        return self


class PayoutPreviewRequest(PayoutPeriodRequest):
    pass


class PayoutCreateRequest(PayoutPeriodRequest):
    notes: Optional[str] = Field(default=None, max_length=MAX_PAYOUT_NOTES_LENGTH)


class PayoutStatusUpdateRequest(StrictRequestModel):
    """Status change; unknown status strings are rejected here."""

    status: TeacherPayoutStatus
    notes: Optional[str] = Field(default=None, max_length=MAX_PAYOUT_NOTES_LENGTH)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class PayoutListRequest(StrictRequestModel):
    teacher_id: Optional[str] = None
    status: Optional[TeacherPayoutStatus] = None
    period_start: Optional[date] = Field(
        default=None, description="Only payouts starting on or after this date"
    )
    period_end: Optional[date] = Field(
        default=None, description="Only payouts ending on or before this date"
    )
    limit: Optional[int] = Field(default=None, ge=1, le=MAX_QUERY_LIMIT)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    def to_filters(self) -> PayoutFilters:
        return PayoutFilters(
            teacher_id=self.teacher_id,
            status=self.status.value if self.status else None,
            period_start=self.period_start,
            period_end=self.period_end,
            limit=self.limit,
        )


class LessonRangeRequest(StrictRequestModel):
    teacher_id: str = Field(..., min_length=1)
    from_date: date
    to_date: date

    @model_validator(mode="after")
    def _check_range(self) -> "LessonRangeRequest":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self


# ========== Response Models ==========


class QualifiedLessonResponse(StrictModel):
    lesson_id: str
    title: str
    scheduled_at: datetime
    duration_minutes: int
    student_name: str
    hourly_rate: Money
    currency: str
    qualification_reason: str
    payout_percent: int = Field(..., ge=1, le=MAX_PAYOUT_PERCENT)
    amount: Money

    @field_validator("qualification_reason", mode="before")
    @classmethod
    def _enum_value(cls, value: object) -> object:
        return getattr(value, "value", value)


class PayoutWarningResponse(StrictModel):
    code: str
    message: str
    lesson_ids: List[str] = Field(default_factory=list)
    currencies: List[str] = Field(default_factory=list)


class PayoutPreviewResponse(StrictModel):
    """Read-only aggregation of a teacher's payable lessons for a period."""

    teacher_id: str
    teacher_name: str
    period_start: date
    period_end: date
    lessons: List[QualifiedLessonResponse]
    lesson_count: int
    total_minutes: int
    total_hours: float = Field(..., description="total_minutes / 60")
    total_amount: Optional[Money] = Field(
        default=None, description="None when lessons use more than one currency"
    )
    currency: Optional[str] = None
    totals_by_currency: dict[str, Money] = Field(default_factory=dict)
    warnings: List[PayoutWarningResponse] = Field(default_factory=list)

    @field_validator("total_hours", mode="before")
    @classmethod
    def _hours_to_float(cls, value: object) -> object:
        return float(value)  # type: ignore[arg-type]


class PayoutLineItemResponse(StrictModel):
    id: str
    lesson_id: str
    lesson_date: datetime
    lesson_title: str
    student_name: str
    duration_minutes: int
    hourly_rate: Money
    amount: Money
    currency: str
    qualification_reason: str
    payout_percent: int
    claim_active: bool


class TeacherPayoutResponse(StrictModel):
    id: str
    organization_id: str
    teacher_id: str
    period_start: date
    period_end: date
    total_minutes: int
    total_hours: Money
    total_amount: Money
    currency: str
    status: str
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    line_items: List[PayoutLineItemResponse] = Field(default_factory=list)


class PayoutCreateResponse(StrictModel):
    payout: TeacherPayoutResponse
    preview: PayoutPreviewResponse


class TeacherPayoutSummaryResponse(StandardizedModel):
    teacher_id: str
    teacher_name: str
    hourly_rate: Optional[Money] = None
    currency: Optional[str] = None
    pending_payouts_count: int
    pending_payouts_total: Optional[Money] = Field(
        default=None, description="None when pending payouts use more than one currency"
    )
    pending_currency: Optional[str] = None
    pending_totals_by_currency: dict[str, Money] = Field(default_factory=dict)


class LessonClaimResponse(StandardizedModel):
    payout_id: str
    payout_status: str
    paid_at: Optional[datetime] = None


class LessonPayoutInfoResponse(StandardizedModel):
    lesson_id: str
    title: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    cancelled_at: Optional[datetime] = None
    student_name: str
    qualifies_for_payout: bool
    qualification_reason: Optional[str] = None
    payout_percent: Optional[int] = None
    hourly_rate: Optional[Money] = None
    amount: Optional[Money] = None
    currency: Optional[str] = None
    payout: Optional[LessonClaimResponse] = None

    @field_validator("qualification_reason", mode="before")
    @classmethod
    def _enum_value(cls, value: object) -> object:
        return getattr(value, "value", value)


class ErrorResponse(StandardizedModel):
    """Body rendered for DomainException failures."""

    code: str
    message: str
    details: dict = Field(default_factory=dict)
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: DomainException) -> "ErrorResponse":
        return cls(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            retryable=exc.retryable,
        )
