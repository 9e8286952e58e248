# backend/app/repositories/payout_repository.py
"""
Payout Repository for LinguaDesk

Persistence of teacher payouts and their line items.

Claim uniqueness is enforced by the partial unique index
``uq_payout_line_items_active_lesson``; inserting a line item for a lesson
that already has an active claim raises ``IntegrityError`` at flush time,
which the service layer turns into a claim conflict.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import DEFAULT_QUERY_LIMIT
from ..core.exceptions import RepositoryException
from ..models.payout import (
    PAYOUT_STATUS_ORDER,
    PayoutLineItem,
    TeacherPayout,
    TeacherPayoutStatus,
)
from .base_repository import BaseRepository


class IPayoutRepository(ABC):
    """Payout persistence contract used by the lifecycle service."""

    @abstractmethod
    def create_with_line_items(
        self, payout_data: Dict[str, Any], line_items: List[Dict[str, Any]]
    ) -> TeacherPayout:
        """Insert a payout and all of its line items, then flush."""

    @abstractmethod
    def get_payout(
        self, organization_id: str, payout_id: str, *, load_line_items: bool = True
    ) -> Optional[TeacherPayout]:
        """Payout in the organization, or None."""

    @abstractmethod
    def list_payouts(
        self,
        organization_id: str,
        *,
        teacher_id: Optional[str] = None,
        status: Optional[str] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[TeacherPayout]:
        """Filtered payouts ordered by lifecycle status, period_end desc, created_at desc."""

    @abstractmethod
    def get_latest_active_payout(
        self, organization_id: str, teacher_id: str
    ) -> Optional[TeacherPayout]:
        """Most recently created non-cancelled payout of the teacher."""

    @abstractmethod
    def release_claims(self, payout_id: str) -> int:
        """Deactivate every line item of the payout; returns the number released."""

    @abstractmethod
    def delete_payout(self, payout: TeacherPayout) -> None:
        """Delete a payout together with its line items."""

    @abstractmethod
    def get_pending_summary(
        self, organization_id: str
    ) -> Dict[str, Dict[str, Tuple[int, Decimal]]]:
        """Map teacher id -> currency -> (pending payout count, pending total amount)."""


class PayoutRepository(BaseRepository[TeacherPayout], IPayoutRepository):
    """SQLAlchemy payout repository."""

    def __init__(self, db: Session):
        super().__init__(db, TeacherPayout)

    def _apply_eager_loading(self, query):
        return query.options(selectinload(TeacherPayout.line_items))

    @staticmethod
    def _status_order():
        return case(PAYOUT_STATUS_ORDER, value=TeacherPayout.status, else_=len(PAYOUT_STATUS_ORDER))

    def create_with_line_items(
        self, payout_data: Dict[str, Any], line_items: List[Dict[str, Any]]
    ) -> TeacherPayout:
        """
        Insert a payout and its line items in the caller's transaction.

        Raises:
            IntegrityError: A lesson already has an active claim (left for the
                caller to map, the session must be rolled back)
            RepositoryException: Any other database failure
        """
        payout = TeacherPayout(**payout_data)
        for item in line_items:
            payout.line_items.append(
                PayoutLineItem(organization_id=payout_data["organization_id"], **item)
            )
        self.db.add(payout)
        try:
            self.db.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating payout: {str(e)}")
            raise RepositoryException(f"Failed to create payout: {str(e)}")
        return payout

    def get_payout(
        self, organization_id: str, payout_id: str, *, load_line_items: bool = True
    ) -> Optional[TeacherPayout]:
        try:
            query = self._build_query().filter(
                TeacherPayout.id == payout_id,
                TeacherPayout.organization_id == organization_id,
            )
            if load_line_items:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting payout {payout_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve payout: {str(e)}")

    def list_payouts(
        self,
        organization_id: str,
        *,
        teacher_id: Optional[str] = None,
        status: Optional[str] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[TeacherPayout]:
        query = self._build_query().filter(TeacherPayout.organization_id == organization_id)

        if teacher_id:
            query = query.filter(TeacherPayout.teacher_id == teacher_id)
        if status:
            query = query.filter(TeacherPayout.status == status)
        if period_start:
            query = query.filter(TeacherPayout.period_start >= period_start)
        if period_end:
            query = query.filter(TeacherPayout.period_end <= period_end)

        query = query.order_by(
            self._status_order(),
            TeacherPayout.period_end.desc(),
            TeacherPayout.created_at.desc(),
            TeacherPayout.id.desc(),
        ).limit(limit or DEFAULT_QUERY_LIMIT)

        return self._execute_query(query)

    def get_latest_active_payout(
        self, organization_id: str, teacher_id: str
    ) -> Optional[TeacherPayout]:
        try:
            return (
                self._build_query()
                .filter(
                    TeacherPayout.organization_id == organization_id,
                    TeacherPayout.teacher_id == teacher_id,
                    TeacherPayout.status != TeacherPayoutStatus.CANCELLED.value,
                )
                .order_by(TeacherPayout.created_at.desc(), TeacherPayout.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting latest payout for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve latest payout: {str(e)}")

    def release_claims(self, payout_id: str) -> int:
        try:
            released = (
                self.db.query(PayoutLineItem)
                .filter(
                    PayoutLineItem.payout_id == payout_id,
                    PayoutLineItem.claim_active.is_(True),
                )
                .update({PayoutLineItem.claim_active: False}, synchronize_session="fetch")
            )
            self.db.flush()
            return int(released)
        except SQLAlchemyError as e:
            self.logger.error(f"Error releasing claims of payout {payout_id}: {str(e)}")
            raise RepositoryException(f"Failed to release payout claims: {str(e)}")

    def delete_payout(self, payout: TeacherPayout) -> None:
        try:
            self.db.delete(payout)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting payout {payout.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete payout: {str(e)}")

    def get_pending_summary(
        self, organization_id: str
    ) -> Dict[str, Dict[str, Tuple[int, Decimal]]]:
        try:
            rows = (
                self.db.query(
                    TeacherPayout.teacher_id, TeacherPayout.currency, TeacherPayout.total_amount
                )
                .filter(
                    TeacherPayout.organization_id == organization_id,
                    TeacherPayout.status == TeacherPayoutStatus.PENDING.value,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error summarising pending payouts: {str(e)}")
            raise RepositoryException(f"Failed to summarise pending payouts: {str(e)}")

        # Amounts in different currencies are never added together
        summary: Dict[str, Dict[str, Tuple[int, Decimal]]] = {}
        for teacher_id, currency, amount in rows:
            per_currency = summary.setdefault(teacher_id, {})
            count, total = per_currency.get(currency, (0, Decimal("0")))
            per_currency[currency] = (count + 1, total + Decimal(amount))
        return summary
