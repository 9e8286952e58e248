# backend/app/models/lesson.py
"""
Lesson and student models.

Lessons are owned by the scheduling side of the back office; the payout
engine reads their final state and never changes it.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timezone_utils import utc_now
from app.core.ulid_helper import generate_ulid
from app.database import Base
from app.models.types import UTCDateTime

if TYPE_CHECKING:
    from app.models.organization import Organization
    from app.models.teacher import Teacher


class LessonStatus(str, Enum):
    """Lesson lifecycle statuses."""

    SCHEDULED = "SCHEDULED"  # Planned, no outcome recorded yet
    CONFIRMED = "CONFIRMED"  # Teacher/manager confirmed it took place
    COMPLETED = "COMPLETED"  # Lesson completed
    CANCELLED = "CANCELLED"  # Lesson cancelled
    NO_SHOW = "NO_SHOW"  # Student didn't attend


class Student(Base):
    """Student record (only the display name is used by payouts)."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    organization: Mapped["Organization"] = relationship("Organization")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name={self.full_name})>"


class Lesson(Base):
    """A single scheduled lesson between a teacher and a student."""

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    teacher_id: Mapped[str] = mapped_column(String(26), ForeignKey("teachers.id"), nullable=False)
    student_id: Mapped[str] = mapped_column(String(26), ForeignKey("students.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    teacher: Mapped["Teacher"] = relationship("Teacher")
    student: Mapped["Student"] = relationship("Student")

    __table_args__ = (
        Index("ix_lessons_teacher_scheduled", "organization_id", "teacher_id", "scheduled_at"),
        CheckConstraint("duration_minutes > 0", name="ck_lessons_duration_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Lesson(id={self.id}, teacher_id={self.teacher_id}, "
            f"scheduled_at={self.scheduled_at}, status={self.status})>"
        )
