# backend/app/repositories/teacher_repository.py
"""
Teacher Repository for LinguaDesk

Teacher profile lookups scoped by organization, teacher row locking for
payout creation and hourly rate resolution (profile rate or effective-dated
rate history).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..domain.payouts import TeacherRateSnapshot, TeacherSnapshot
from ..models.teacher import Teacher, TeacherRate
from .base_repository import BaseRepository


class ITeacherRateSource(ABC):
    """Teacher identity and pay rate as consumed by the payout engine."""

    @abstractmethod
    def get_teacher_snapshot(
        self, organization_id: str, teacher_id: str
    ) -> Optional[TeacherSnapshot]:
        """Teacher in the organization, or None."""

    @abstractmethod
    def get_teacher_rate(
        self, organization_id: str, teacher_id: str, as_of: datetime
    ) -> Optional[TeacherRateSnapshot]:
        """
        Rate that applies to a lesson held at ``as_of``.

        Returns None when the teacher has no rate configured.
        """


class TeacherRepository(BaseRepository[Teacher], ITeacherRateSource):
    """SQLAlchemy teacher repository."""

    def __init__(self, db: Session):
        super().__init__(db, Teacher)

    def get_teacher(self, organization_id: str, teacher_id: str) -> Optional[Teacher]:
        try:
            return (
                self.db.query(Teacher)
                .options(joinedload(Teacher.organization))
                .filter(Teacher.id == teacher_id, Teacher.organization_id == organization_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve teacher: {str(e)}")

    def lock_teacher(self, organization_id: str, teacher_id: str) -> Optional[Teacher]:
        """
        Load the teacher row with SELECT ... FOR UPDATE where supported.

        Serialises payout creation for one teacher; on SQLite the write lock
        taken at flush does the same job.
        """
        try:
            query = self.db.query(Teacher).filter(
                Teacher.id == teacher_id, Teacher.organization_id == organization_id
            )
            if self.supports_row_locks:
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock teacher: {str(e)}")

    def list_active_teachers(self, organization_id: str) -> List[Teacher]:
        """Active teachers ordered by last name, then first name."""
        query = (
            self._build_query()
            .filter(Teacher.organization_id == organization_id, Teacher.is_active.is_(True))
            .order_by(Teacher.last_name.asc(), Teacher.first_name.asc(), Teacher.id.asc())
        )
        return self._execute_query(query)

    def get_teacher_snapshot(
        self, organization_id: str, teacher_id: str
    ) -> Optional[TeacherSnapshot]:
        teacher = self.get_teacher(organization_id, teacher_id)
        if teacher is None:
            return None
        return TeacherSnapshot(
            id=teacher.id,
            organization_id=teacher.organization_id,
            full_name=teacher.full_name,
            is_active=teacher.is_active,
        )

    def get_rate_history_entry(self, teacher_id: str, as_of: datetime) -> Optional[TeacherRate]:
        """Newest rate row with ``effective_from <= as_of``."""
        try:
            return (
                self.db.query(TeacherRate)
                .filter(TeacherRate.teacher_id == teacher_id, TeacherRate.effective_from <= as_of)
                .order_by(TeacherRate.effective_from.desc(), TeacherRate.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting rate history for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve teacher rate: {str(e)}")

    def get_teacher_rate(
        self, organization_id: str, teacher_id: str, as_of: datetime
    ) -> Optional[TeacherRateSnapshot]:
        teacher = self.get_teacher(organization_id, teacher_id)
        if teacher is None:
            return None

        entry = self.get_rate_history_entry(teacher_id, as_of)
        if entry is not None:
            return TeacherRateSnapshot(hourly_rate=entry.hourly_rate, currency=entry.currency)

        if teacher.hourly_rate is None:
            return None

        currency = teacher.currency or teacher.organization.currency
        return TeacherRateSnapshot(hourly_rate=teacher.hourly_rate, currency=currency)
