"""
Dialect detection for sessions, used to decide whether row locks are meaningful.
"""

from __future__ import annotations

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session

# Dialects that honour SELECT ... FOR UPDATE row locks
_ROW_LOCK_DIALECTS = frozenset({"postgresql", "mysql", "mariadb", "oracle"})


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Name of the dialect the session is bound to, or ``default`` when unbound."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return default
    return bind.dialect.name or default


def supports_row_locks(session: Session) -> bool:
    """Whether ``with_for_update()`` takes a real row lock on this session's dialect."""
    return get_dialect_name(session) in _ROW_LOCK_DIALECTS
