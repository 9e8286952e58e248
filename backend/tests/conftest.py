"""
Shared fixtures for the payout engine test suite.

Every test gets its own in-memory SQLite database built from the model
metadata, so tests never share rows. Factories return committed rows with
timezone-aware UTC datetimes.
"""

import os

# Must be set before any app import so settings pick the test database URL
os.environ["is_testing"] = "true"

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
import sys
from typing import Any, Callable, Optional

backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from sqlalchemy.orm import Session, sessionmaker
import ulid

from app.core.config import settings
from app.database import Base
import app.models  # noqa: F401
from app.models.lesson import Lesson, LessonStatus, Student
from app.models.organization import Organization
from app.models.teacher import Teacher, TeacherRate
from tests.helpers.database import build_sqlite_engine
from tests.helpers.payout_doubles import FIXED_NOW

settings.is_testing = True


@pytest.fixture
def engine():
    engine = build_sqlite_engine()
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_organization(db: Session) -> Callable[..., Organization]:
    def _make(**overrides: Any) -> Organization:
        values = {
            "id": str(ulid.ULID()),
            "name": "Lingua Kraków",
            "currency": "PLN",
            "timezone": "UTC",
            "late_cancellation_window_hours": 24,
            "late_cancellation_payout_percent": 50,
        }
        values.update(overrides)
        organization = Organization(**values)
        db.add(organization)
        db.commit()
        return organization

    return _make


@pytest.fixture
def organization(make_organization) -> Organization:
    return make_organization()


@pytest.fixture
def make_teacher(db: Session, organization: Organization) -> Callable[..., Teacher]:
    def _make(organization_id: Optional[str] = None, **overrides: Any) -> Teacher:
        values = {
            "id": str(ulid.ULID()),
            "organization_id": organization_id or organization.id,
            "first_name": "Anna",
            "last_name": "Kowalska",
            "hourly_rate": Decimal("100.00"),
            "currency": None,
        }
        values.update(overrides)
        teacher = Teacher(**values)
        db.add(teacher)
        db.commit()
        return teacher

    return _make


@pytest.fixture
def teacher(make_teacher) -> Teacher:
    return make_teacher()


@pytest.fixture
def student(db: Session, organization: Organization) -> Student:
    student = Student(
        id=str(ulid.ULID()),
        organization_id=organization.id,
        first_name="Jan",
        last_name="Nowak",
    )
    db.add(student)
    db.commit()
    return student


@pytest.fixture
def make_lesson(
    db: Session, organization: Organization, teacher: Teacher, student: Student
) -> Callable[..., Lesson]:
    def _make(
        scheduled_at: datetime,
        status: LessonStatus = LessonStatus.COMPLETED,
        duration_minutes: int = 60,
        cancelled_at: Optional[datetime] = None,
        **overrides: Any,
    ) -> Lesson:
        values = {
            "id": str(ulid.ULID()),
            "organization_id": organization.id,
            "teacher_id": teacher.id,
            "student_id": student.id,
            "title": "General English B1",
            "scheduled_at": scheduled_at,
            "duration_minutes": duration_minutes,
            "status": status.value,
            "cancelled_at": cancelled_at,
        }
        values.update(overrides)
        lesson = Lesson(**values)
        db.add(lesson)
        db.commit()
        return lesson

    return _make


@pytest.fixture
def add_rate(db: Session) -> Callable[..., TeacherRate]:
    def _add(
        teacher: Teacher, hourly_rate: str, effective_from: datetime, currency: str = "PLN"
    ) -> TeacherRate:
        rate = TeacherRate(
            id=str(ulid.ULID()),
            teacher_id=teacher.id,
            hourly_rate=Decimal(hourly_rate),
            currency=currency,
            effective_from=effective_from,
        )
        db.add(rate)
        db.commit()
        return rate

    return _add


@pytest.fixture
def january() -> tuple[date, date]:
    return date(2025, 1, 1), date(2025, 1, 31)
