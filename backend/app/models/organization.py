"""
Organization (school) model.

Every record in the back office belongs to exactly one organization. The
payout engine only reads the school-level defaults stored here.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.constants import (
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    LATE_CANCELLATION_LIMIT_HOURS,
    LATE_CANCELLATION_PAYOUT_PERCENT,
)
from app.core.timezone_utils import utc_now
from app.core.ulid_helper import generate_ulid
from app.database import Base
from app.models.types import UTCDateTime

if TYPE_CHECKING:
    from app.models.teacher import Teacher


class Organization(Base):
    """A language school (tenant) with its payout policy defaults."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default=DEFAULT_CURRENCY)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default=DEFAULT_TIMEZONE)

    # Late cancellation policy
    late_cancellation_window_hours: Mapped[int] = mapped_column(
        Integer, nullable=False, default=LATE_CANCELLATION_LIMIT_HOURS
    )
    late_cancellation_payout_percent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=LATE_CANCELLATION_PAYOUT_PERCENT
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    teachers: Mapped[List["Teacher"]] = relationship("Teacher", back_populates="organization")

    __table_args__ = (
        CheckConstraint(
            "late_cancellation_window_hours >= 0",
            name="ck_organizations_late_cancellation_window",
        ),
        CheckConstraint(
            "late_cancellation_payout_percent BETWEEN 0 AND 100",
            name="ck_organizations_late_cancellation_percent",
        ),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, currency={self.currency})>"
