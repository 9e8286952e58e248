# backend/app/repositories/organization_repository.py
"""
Organization Repository for LinguaDesk

Supplies the school-level settings the payout engine depends on: the late
cancellation policy (with per-teacher overrides applied), timezone and
currency.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..domain.payouts import CancellationPolicy, resolve_cancellation_policy
from ..models.organization import Organization
from ..models.teacher import Teacher
from .base_repository import BaseRepository


class IOrganizationPolicySource(ABC):
    """Organization settings as consumed by the payout engine."""

    @abstractmethod
    def get_cancellation_policy(
        self, organization_id: str, teacher_id: Optional[str] = None
    ) -> CancellationPolicy:
        """Effective late cancellation policy, teacher override applied when enabled."""

    @abstractmethod
    def get_timezone(self, organization_id: str) -> str:
        """IANA timezone of the organization."""

    @abstractmethod
    def get_currency(self, organization_id: str) -> str:
        """Default currency of the organization."""


class OrganizationRepository(BaseRepository[Organization], IOrganizationPolicySource):
    """SQLAlchemy organization repository."""

    def __init__(self, db: Session):
        super().__init__(db, Organization)

    def get_cancellation_policy(
        self, organization_id: str, teacher_id: Optional[str] = None
    ) -> CancellationPolicy:
        organization = self.get_by_id(organization_id, load_relationships=False)

        teacher = None
        if teacher_id is not None:
            try:
                teacher = (
                    self.db.query(Teacher)
                    .filter(Teacher.id == teacher_id, Teacher.organization_id == organization_id)
                    .first()
                )
            except SQLAlchemyError as e:
                self.logger.error(f"Error loading teacher policy override {teacher_id}: {str(e)}")
                raise RepositoryException(f"Failed to load cancellation policy: {str(e)}")

        return resolve_cancellation_policy(
            organization.late_cancellation_window_hours if organization else None,
            organization.late_cancellation_payout_percent if organization else None,
            teacher_override_enabled=bool(teacher and teacher.cancellation_payout_enabled),
            teacher_window_hours=teacher.cancellation_payout_hours if teacher else None,
            teacher_payout_percent=teacher.cancellation_payout_percent if teacher else None,
        )

    def get_timezone(self, organization_id: str) -> str:
        organization = self.get_by_id(organization_id, load_relationships=False)
        if organization is None or not organization.timezone:
            return settings.default_timezone
        return organization.timezone

    def get_currency(self, organization_id: str) -> str:
        organization = self.get_by_id(organization_id, load_relationships=False)
        if organization is None or not organization.currency:
            return settings.default_currency
        return organization.currency
