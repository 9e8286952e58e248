"""
Database engine, session factory, and declarative base for the back office.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Pool and connect arguments for the configured dialect."""

    if db_url.startswith("sqlite"):
        return {"future": True, "connect_args": {"check_same_thread": False}}

    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        # Fail fast when the pool is exhausted; callers map this to a retryable timeout
        "pool_timeout": 2,
        "pool_pre_ping": True,
        "future": True,
        "connect_args": {
            "connect_timeout": 5,
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
            "application_name": "linguadesk_backend",
        },
    }


def enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    """SQLite ships with foreign keys off; payout line items rely on cascades."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_app_engine(db_url: str, **overrides: Any) -> Engine:
    """Create an engine with the application's pool settings."""
    kwargs = _build_engine_kwargs(db_url)
    kwargs.update(overrides)
    new_engine = create_engine(db_url, **kwargs)

    if db_url.startswith("sqlite"):
        event.listen(new_engine, "connect", enable_sqlite_foreign_keys)

    logger.debug("Created %s engine", new_engine.dialect.name)
    return new_engine


db_url = settings.get_database_url()
engine: Engine = create_app_engine(db_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session: commit on success, roll back on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Short-lived unit of work for the CLI and scripts
get_db_session = contextmanager(get_db)


__all__ = [
    "Base",
    "SessionLocal",
    "create_app_engine",
    "enable_sqlite_foreign_keys",
    "engine",
    "get_db",
    "get_db_session",
]
