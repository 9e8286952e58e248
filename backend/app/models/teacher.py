"""
Teacher and teacher rate models.

A teacher's current hourly rate lives on the profile. Rate changes that must
not reprice earlier lessons are recorded as effective-dated TeacherRate rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timezone_utils import utc_now
from app.core.ulid_helper import generate_ulid
from app.database import Base
from app.models.types import UTCDateTime

if TYPE_CHECKING:
    from app.models.organization import Organization


class Teacher(Base):
    """Teacher profile with payout-relevant settings."""

    __tablename__ = "teachers"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Pay rate (None = not configured yet; lessons are excluded from previews)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Per-teacher override of the school's late cancellation policy
    cancellation_payout_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancellation_payout_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancellation_payout_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="teachers")
    rates: Mapped[List["TeacherRate"]] = relationship(
        "TeacherRate",
        back_populates="teacher",
        cascade="all, delete-orphan",
        order_by="TeacherRate.effective_from",
    )

    __table_args__ = (
        CheckConstraint(
            "cancellation_payout_percent IS NULL OR cancellation_payout_percent BETWEEN 0 AND 100",
            name="ck_teachers_cancellation_payout_percent",
        ),
        CheckConstraint(
            "cancellation_payout_hours IS NULL OR cancellation_payout_hours >= 0",
            name="ck_teachers_cancellation_payout_hours",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Teacher(id={self.id}, name={self.full_name}, rate={self.hourly_rate})>"


class TeacherRate(Base):
    """Effective-dated hourly rate for a teacher."""

    __tablename__ = "teacher_rates"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False
    )
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    effective_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    teacher: Mapped["Teacher"] = relationship("Teacher", back_populates="rates")

    __table_args__ = (
        Index("ix_teacher_rates_teacher_effective", "teacher_id", "effective_from"),
        CheckConstraint("hourly_rate >= 0", name="ck_teacher_rates_hourly_rate"),
    )

    def __repr__(self) -> str:
        return (
            f"<TeacherRate(teacher_id={self.teacher_id}, rate={self.hourly_rate} {self.currency}, "
            f"from={self.effective_from})>"
        )
