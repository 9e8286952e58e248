# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for LinguaDesk

Shared plumbing for the payout-side repositories: a typed session/model pair,
primary key lookup, dialect detection for row locks, and translation of
SQLAlchemy failures into RepositoryException.

Repositories never commit. Transaction boundaries belong to the services,
which is what lets a payout and all of its line items land atomically.
"""

from abc import ABC, abstractmethod
import logging
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.database.session_utils import supports_row_locks

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """Minimal contract every model repository satisfies."""

    @abstractmethod
    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        """
        Retrieve an entity by its ULID primary key.

        Tenant scoping is the caller's job; repositories that expose tenant
        data wrap this in organization-aware lookups.
        """


class BaseRepository(IRepository[T]):
    """
    Session-bound repository for one model class.

    Attributes:
        db: SQLAlchemy session owned by the calling service
        model: Mapped model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def supports_row_locks(self) -> bool:
        return supports_row_locks(self.db)

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        query = self._build_query().filter(self.model.id == id)
        if load_relationships:
            query = self._apply_eager_loading(query)
        return self._execute_first(query, f"{self.model.__name__} {id}")

    # Protected helpers for subclasses

    def _apply_eager_loading(self, query: Query) -> Query:
        """Hook for subclasses that want relationships loaded up front."""
        return query

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error("Query on %s failed: %s", self.model.__name__, e)
            raise RepositoryException(f"Query failed: {str(e)}") from e

    def _execute_first(self, query: Query, what: str) -> Optional[T]:
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error("Lookup of %s failed: %s", what, e)
            raise RepositoryException(f"Failed to retrieve {what}: {str(e)}") from e
