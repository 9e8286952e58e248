"""
Teacher payout models.

A TeacherPayout settles a teacher's qualified lessons for an inclusive date
period. Each lesson is frozen into a PayoutLineItem at creation time (rate,
percent and amount included) so later rate changes never alter history.

Claim uniqueness: a lesson may be held by at most one *active* line item.
``claim_active`` is true while the parent payout is not CANCELLED, and a
partial unique index on ``lesson_id WHERE claim_active`` makes the database
reject a second claim even when two writers race past the read-time check.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timezone_utils import utc_now
from app.core.ulid_helper import generate_ulid
from app.database import Base
from app.models.types import UTCDateTime


class TeacherPayoutStatus(str, Enum):
    """Payout lifecycle statuses."""

    PENDING = "PENDING"  # Created, awaiting approval
    APPROVED = "APPROVED"  # Approved by a manager
    PAID = "PAID"  # Money transferred (terminal)
    CANCELLED = "CANCELLED"  # Voided; lessons released back to the unpaid pool


class QualificationReason(str, Enum):
    """Why a lesson is payable."""

    COMPLETED = "COMPLETED"
    CONFIRMED = "CONFIRMED"
    LATE_CANCELLATION = "LATE_CANCELLATION"


# Display/sort order of statuses (lifecycle order, not alphabetical)
PAYOUT_STATUS_ORDER = {
    TeacherPayoutStatus.PENDING.value: 0,
    TeacherPayoutStatus.APPROVED.value: 1,
    TeacherPayoutStatus.PAID.value: 2,
    TeacherPayoutStatus.CANCELLED.value: 3,
}


class TeacherPayout(Base):
    """Settlement of a teacher's lessons for one period."""

    __tablename__ = "teacher_payouts"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    teacher_id: Mapped[str] = mapped_column(String(26), ForeignKey("teachers.id"), nullable=False)

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TeacherPayoutStatus.PENDING.value
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps (set in Python for microsecond ordering on every backend)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    line_items: Mapped[List["PayoutLineItem"]] = relationship(
        "PayoutLineItem",
        back_populates="payout",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PayoutLineItem.lesson_date",
    )

    __table_args__ = (
        Index("ix_teacher_payouts_org_teacher", "organization_id", "teacher_id", "created_at"),
        Index("ix_teacher_payouts_org_status", "organization_id", "status"),
        CheckConstraint("period_start <= period_end", name="ck_teacher_payouts_period"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID', 'CANCELLED')",
            name="ck_teacher_payouts_status",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status != TeacherPayoutStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<TeacherPayout(id={self.id}, teacher_id={self.teacher_id}, "
            f"period={self.period_start}..{self.period_end}, amount={self.total_amount} "
            f"{self.currency}, status={self.status})>"
        )


class PayoutLineItem(Base):
    """One lesson's frozen contribution to a payout."""

    __tablename__ = "payout_line_items"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    payout_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_payouts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[str] = mapped_column(String(26), nullable=False)
    lesson_id: Mapped[str] = mapped_column(String(26), ForeignKey("lessons.id"), nullable=False)

    # Lesson snapshot
    lesson_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    lesson_title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    student_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing snapshot
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    qualification_reason: Mapped[str] = mapped_column(String(32), nullable=False)
    payout_percent: Mapped[int] = mapped_column(Integer, nullable=False)

    claim_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    payout: Mapped["TeacherPayout"] = relationship("TeacherPayout", back_populates="line_items")

    __table_args__ = (
        Index(
            "uq_payout_line_items_active_lesson",
            "lesson_id",
            unique=True,
            postgresql_where=text("claim_active = true"),
            sqlite_where=text("claim_active = 1"),
        ),
        CheckConstraint(
            "payout_percent BETWEEN 1 AND 100", name="ck_payout_line_items_payout_percent"
        ),
        CheckConstraint("duration_minutes > 0", name="ck_payout_line_items_duration"),
    )

    def __repr__(self) -> str:
        return (
            f"<PayoutLineItem(payout_id={self.payout_id}, lesson_id={self.lesson_id}, "
            f"amount={self.amount} {self.currency}, active={self.claim_active})>"
        )
