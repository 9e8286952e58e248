"""
Database models for the LinguaDesk back office.

This module exports all SQLAlchemy models used in the application.
The models are organized by functionality:
- Organizations (tenants) and their payout policy defaults
- Teachers and effective-dated teacher rates
- Students and lessons (read side of scheduling)
- Teacher payouts and their line items
"""

from .lesson import Lesson, LessonStatus, Student
from .organization import Organization
from .payout import (
    PAYOUT_STATUS_ORDER,
    PayoutLineItem,
    QualificationReason,
    TeacherPayout,
    TeacherPayoutStatus,
)
from .teacher import Teacher, TeacherRate

__all__ = [
    "Lesson",
    "LessonStatus",
    "Organization",
    "PAYOUT_STATUS_ORDER",
    "PayoutLineItem",
    "QualificationReason",
    "Student",
    "Teacher",
    "TeacherPayout",
    "TeacherPayoutStatus",
    "TeacherRate",
]
