# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for LinguaDesk

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- IRepository: Interface defining required methods for all repositories
- RepositoryFactory: Factory for creating repository instances
- ILessonSource / LessonRepository: lesson ledger and claim lookups
- ITeacherRateSource / TeacherRepository: teachers and hourly rates
- IOrganizationPolicySource / OrganizationRepository: cancellation policy, timezone, currency
- IPayoutRepository / PayoutRepository: teacher payouts and line items

Usage:
    from app.repositories import RepositoryFactory

    repository = RepositoryFactory.create_payout_repository(db)
    payouts = repository.list_payouts(organization_id, status="PENDING")
"""

from .base_repository import BaseRepository, IRepository
from .factory import RepositoryFactory
from .lesson_repository import ILessonSource, LessonRepository
from .organization_repository import IOrganizationPolicySource, OrganizationRepository
from .payout_repository import IPayoutRepository, PayoutRepository
from .teacher_repository import ITeacherRateSource, TeacherRepository

__all__ = [
    "BaseRepository",
    "ILessonSource",
    "IOrganizationPolicySource",
    "IPayoutRepository",
    "IRepository",
    "ITeacherRateSource",
    "LessonRepository",
    "OrganizationRepository",
    "PayoutRepository",
    "RepositoryFactory",
    "TeacherRepository",
]
