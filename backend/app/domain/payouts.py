"""Payout value types shared across repositories, services, schemas and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from app.core.config import settings
from app.core.constants import MAX_PAYOUT_PERCENT
from app.core.exceptions import ValidationException


@dataclass(frozen=True)
class LessonSnapshot:
    """Read-only view of a lesson as the payout engine sees it."""

    id: str
    organization_id: str
    teacher_id: str
    title: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    cancelled_at: Optional[datetime] = None
    student_name: str = ""


@dataclass(frozen=True)
class TeacherSnapshot:
    id: str
    organization_id: str
    full_name: str
    is_active: bool = True


@dataclass(frozen=True)
class TeacherRateSnapshot:
    """Hourly rate and currency that apply to one lesson."""

    hourly_rate: Decimal
    currency: str


@dataclass(frozen=True)
class CancellationPolicy:
    """Late cancellation rule: cancellations closer than ``window_hours`` pay ``payout_percent``."""

    window_hours: int
    payout_percent: int


@dataclass(frozen=True)
class LessonClaim:
    """The non-cancelled payout currently holding a lesson."""

    lesson_id: str
    payout_id: str
    payout_status: str
    paid_at: Optional[datetime] = None


def resolve_cancellation_policy(
    organization_window_hours: Optional[int] = None,
    organization_payout_percent: Optional[int] = None,
    *,
    teacher_override_enabled: bool = False,
    teacher_window_hours: Optional[int] = None,
    teacher_payout_percent: Optional[int] = None,
) -> CancellationPolicy:
    """
    Resolve the effective late cancellation policy for a teacher.

    Precedence: teacher override (when enabled) > organization policy >
    application defaults. Missing teacher values fall back to the
    organization's, missing organization values to the defaults.

    Raises:
        ValidationException: If the resolved window is negative or the
            percent is outside 0-100
    """
    window = organization_window_hours
    percent = organization_payout_percent

    if teacher_override_enabled:
        if teacher_window_hours is not None:
            window = teacher_window_hours
        if teacher_payout_percent is not None:
            percent = teacher_payout_percent

    if window is None:
        window = settings.late_cancellation_window_hours
    if percent is None:
        percent = settings.late_cancellation_payout_percent

    if window < 0:
        raise ValidationException(
            "Late cancellation window cannot be negative",
            field="late_cancellation_window_hours",
            details={"value": window},
        )
    if percent < 0 or percent > MAX_PAYOUT_PERCENT:
        raise ValidationException(
            f"Late cancellation payout percent must be between 0 and {MAX_PAYOUT_PERCENT}",
            field="late_cancellation_payout_percent",
            details={"value": percent},
        )

    return CancellationPolicy(window_hours=int(window), payout_percent=int(percent))


@dataclass(frozen=True)
class PayoutFilters:
    """Optional filters for payout listings; ``None`` means unfiltered."""

    teacher_id: Optional[str] = None
    status: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    limit: Optional[int] = None
