# backend/app/repositories/lesson_repository.py
"""
Lesson Repository for LinguaDesk

Read-only access to the lesson ledger for the payout engine, plus claim
lookups against active payout line items.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..domain.payouts import LessonClaim, LessonSnapshot
from ..models.lesson import Lesson
from ..models.payout import PayoutLineItem, TeacherPayout
from .base_repository import BaseRepository


class ILessonSource(ABC):
    """Lesson ledger as consumed by the payout engine."""

    @abstractmethod
    def list_lessons_for_teacher_in_range(
        self,
        organization_id: str,
        teacher_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Sequence[str]] = None,
    ) -> List[LessonSnapshot]:
        """
        Lessons of a teacher with ``start <= scheduled_at <= end``.

        Results are ordered by scheduled_at ascending, then id.
        ``statuses`` restricts the result when given.
        """

    @abstractmethod
    def claimed_lesson_ids(self, lesson_ids: Iterable[str]) -> Set[str]:
        """Subset of ``lesson_ids`` held by a non-cancelled payout."""

    @abstractmethod
    def get_active_claims(self, lesson_ids: Iterable[str]) -> Dict[str, LessonClaim]:
        """Map lesson id -> claim for every claimed lesson in ``lesson_ids``."""

    def is_lesson_claimed(self, lesson_id: str) -> bool:
        return lesson_id in self.claimed_lesson_ids([lesson_id])


def lesson_to_snapshot(lesson: Lesson) -> LessonSnapshot:
    student_name = lesson.student.full_name if lesson.student is not None else ""
    return LessonSnapshot(
        id=lesson.id,
        organization_id=lesson.organization_id,
        teacher_id=lesson.teacher_id,
        title=lesson.title or "",
        scheduled_at=lesson.scheduled_at,
        duration_minutes=lesson.duration_minutes,
        status=lesson.status,
        cancelled_at=lesson.cancelled_at,
        student_name=student_name,
    )


class LessonRepository(BaseRepository[Lesson], ILessonSource):
    """SQLAlchemy lesson ledger."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def _apply_eager_loading(self, query):
        return query.options(joinedload(Lesson.student))

    def list_lessons_for_teacher_in_range(
        self,
        organization_id: str,
        teacher_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Sequence[str]] = None,
    ) -> List[LessonSnapshot]:
        try:
            query = self._apply_eager_loading(self._build_query()).filter(
                Lesson.organization_id == organization_id,
                Lesson.teacher_id == teacher_id,
                Lesson.scheduled_at >= start,
                Lesson.scheduled_at <= end,
            )
            if statuses is not None:
                query = query.filter(Lesson.status.in_(list(statuses)))

            lessons = query.order_by(Lesson.scheduled_at.asc(), Lesson.id.asc()).all()
            return [lesson_to_snapshot(lesson) for lesson in lessons]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing lessons for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to list lessons: {str(e)}")

    def claimed_lesson_ids(self, lesson_ids: Iterable[str]) -> Set[str]:
        ids = list(lesson_ids)
        if not ids:
            return set()
        try:
            rows = (
                self.db.query(PayoutLineItem.lesson_id)
                .filter(
                    PayoutLineItem.lesson_id.in_(ids),
                    PayoutLineItem.claim_active.is_(True),
                )
                .all()
            )
            return {row[0] for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking lesson claims: {str(e)}")
            raise RepositoryException(f"Failed to check lesson claims: {str(e)}")

    def get_active_claims(self, lesson_ids: Iterable[str]) -> Dict[str, LessonClaim]:
        ids = list(lesson_ids)
        if not ids:
            return {}
        try:
            rows = (
                self.db.query(
                    PayoutLineItem.lesson_id,
                    TeacherPayout.id,
                    TeacherPayout.status,
                    TeacherPayout.paid_at,
                )
                .join(TeacherPayout, TeacherPayout.id == PayoutLineItem.payout_id)
                .filter(
                    PayoutLineItem.lesson_id.in_(ids),
                    PayoutLineItem.claim_active.is_(True),
                )
                .all()
            )
            return {
                lesson_id: LessonClaim(
                    lesson_id=lesson_id,
                    payout_id=payout_id,
                    payout_status=status,
                    paid_at=paid_at,
                )
                for lesson_id, payout_id, status, paid_at in rows
            }
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading lesson claims: {str(e)}")
            raise RepositoryException(f"Failed to load lesson claims: {str(e)}")
