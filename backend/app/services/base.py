# backend/app/services/base.py
"""
Base Service Pattern for LinguaDesk

Services own the unit of work: repositories only flush, services decide when
a transaction commits. Every public operation is timed into Prometheus.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import PayoutTimeoutException, ServiceException, is_db_timeout
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Operations slower than this are logged as warnings
SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """Shared session, logger and transaction handling for service classes."""

    def __init__(self, db: Optional[Session]):
        """
        Args:
            db: Database session (None for services wired only to in-memory sources)
        """
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self, operation: str = "transaction") -> Iterator[Optional[Session]]:
        """
        Commit the block as one unit of work, or roll all of it back.

        Usage:
            with self.transaction("create_payout"):
                self.db.add(payout)

        Database timeouts surface as PayoutTimeoutException so callers can retry;
        domain exceptions raised inside the block roll back and propagate as-is.
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction %s committed", operation)
        except SQLAlchemyError as e:
            self.logger.error("Transaction %s failed: %s", operation, e)
            self.db.rollback()
            if is_db_timeout(e):
                raise PayoutTimeoutException(operation) from e
            raise ServiceException(
                f"Database operation failed: {str(e)}",
                code="DATABASE_ERROR",
                details={"operation": operation},
            ) from e
        except Exception as e:
            self.logger.debug("Rolling back %s after %s", operation, type(e).__name__)
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator recording duration and outcome of a service call.

        Usage:
            @BaseService.measure_operation("create_payout")
            def create_payout(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.perf_counter()
                error_type = None

                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - start_time
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            "Slow operation detected: %s took %.2fs", operation_name, elapsed
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator
