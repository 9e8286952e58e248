# backend/app/repositories/factory.py
"""
Repository Factory for LinguaDesk

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session


# Avoid circular imports
if TYPE_CHECKING:
    from .lesson_repository import LessonRepository
    from .organization_repository import OrganizationRepository
    from .payout_repository import PayoutRepository
    from .teacher_repository import TeacherRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation so services (and tests) can swap in
    other implementations of the payout source interfaces.
    """

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        """Create repository for the lesson ledger and claim lookups."""
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        """Create repository for teachers and their rates."""
        from .teacher_repository import TeacherRepository

        return TeacherRepository(db)

    @staticmethod
    def create_organization_repository(db: Session) -> "OrganizationRepository":
        """Create repository for organization payout settings."""
        from .organization_repository import OrganizationRepository

        return OrganizationRepository(db)

    @staticmethod
    def create_payout_repository(db: Session) -> "PayoutRepository":
        """Create repository for teacher payouts."""
        from .payout_repository import PayoutRepository

        return PayoutRepository(db)
