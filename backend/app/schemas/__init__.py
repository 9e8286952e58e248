# backend/app/schemas/__init__.py
"""
Pydantic schemas for the LinguaDesk back office.
"""

from .base import Money, StandardizedModel
from .teacher_payout import (
    ErrorResponse,
    LessonClaimResponse,
    LessonPayoutInfoResponse,
    LessonRangeRequest,
    PayoutCreateRequest,
    PayoutCreateResponse,
    PayoutLineItemResponse,
    PayoutListRequest,
    PayoutPeriodRequest,
    PayoutPreviewRequest,
    PayoutPreviewResponse,
    PayoutStatusUpdateRequest,
    PayoutWarningResponse,
    QualifiedLessonResponse,
    TeacherPayoutResponse,
    TeacherPayoutSummaryResponse,
)

__all__ = [
    "ErrorResponse",
    "LessonClaimResponse",
    "LessonPayoutInfoResponse",
    "LessonRangeRequest",
    "Money",
    "PayoutCreateRequest",
    "PayoutCreateResponse",
    "PayoutLineItemResponse",
    "PayoutListRequest",
    "PayoutPeriodRequest",
    "PayoutPreviewRequest",
    "PayoutPreviewResponse",
    "PayoutStatusUpdateRequest",
    "PayoutWarningResponse",
    "QualifiedLessonResponse",
    "StandardizedModel",
    "TeacherPayoutResponse",
    "TeacherPayoutSummaryResponse",
]
