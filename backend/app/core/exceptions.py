# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the LinguaDesk back office.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        field: Optional[str] = None,
    ) -> None:
        merged = dict(details or {})
        if field:
            merged.setdefault("field", field)
        super().__init__(message, code=code or "VALIDATION_ERROR", details=merged)
        self.field = field


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific payout exceptions


class TeacherNotFoundException(NotFoundException):
    """Raised when a teacher does not exist in the caller's organization."""

    def __init__(self, teacher_id: str):
        super().__init__(
            message="Teacher not found",
            code="TEACHER_NOT_FOUND",
            details={"teacher_id": teacher_id},
        )


class PayoutNotFoundException(NotFoundException):
    """Raised when a payout does not exist in the caller's organization."""

    def __init__(self, payout_id: str):
        super().__init__(
            message="Payout not found",
            code="PAYOUT_NOT_FOUND",
            details={"payout_id": payout_id},
        )


class PayoutClaimConflictException(ConflictException):
    """Raised when a lesson was claimed by another payout before our commit."""

    retryable = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        lesson_ids: Optional[List[str]] = None,
    ):
        super().__init__(
            message=message
            or "One or more lessons were claimed by another payout; refresh the preview and retry",
            code="PAYOUT_CLAIM_CONFLICT",
            details={"lesson_ids": list(lesson_ids or [])},
        )


class PayoutDeleteConflictException(ConflictException):
    """Raised when deleting a payout that is not the latest pending one."""

    def __init__(self, payout_id: str, reason: str):
        super().__init__(
            message=reason,
            code="PAYOUT_DELETE_CONFLICT",
            details={"payout_id": payout_id},
        )


class InvalidPayoutTransitionException(ConflictException):
    """Raised when a payout status change is not allowed from its current state."""

    def __init__(self, payout_id: str, current: str, target: str):
        super().__init__(
            message=f"Cannot change payout status from {current} to {target}",
            code="INVALID_PAYOUT_TRANSITION",
            details={"payout_id": payout_id, "current_status": current, "target_status": target},
        )


class NothingToPayException(BusinessRuleException):
    """Raised when a payout is requested for a period without qualified lessons."""

    def __init__(self, teacher_id: str, period_start: str, period_end: str):
        super().__init__(
            message="No qualified lessons for payout in this period",
            code="NOTHING_TO_PAY",
            details={
                "teacher_id": teacher_id,
                "period_start": period_start,
                "period_end": period_end,
            },
        )


class MixedCurrencyPayoutException(BusinessRuleException):
    """Raised when qualified lessons are priced in more than one currency."""

    def __init__(self, teacher_id: str, currencies: List[str]):
        super().__init__(
            message="Qualified lessons use more than one currency; split the period",
            code="MIXED_CURRENCY",
            details={"teacher_id": teacher_id, "currencies": sorted(currencies)},
        )


class DataIntegrityException(ServiceException):
    """Raised when stored data violates an invariant the engine relies on."""


class PayoutTimeoutException(ServiceException):
    """Raised when the database gave up on a payout operation; safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True

    def __init__(self, operation: str):
        super().__init__(
            message="The payout operation timed out. Please retry.",
            code="PAYOUT_TIMEOUT",
            details={"operation": operation},
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "details": self.details},
            headers={"Retry-After": "2"},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


def is_db_timeout(exc: Exception) -> bool:
    """
    Check if an exception indicates a statement/lock timeout or pool exhaustion.

    PostgreSQL reports "canceling statement due to statement timeout" and
    "lock timeout"; SQLite reports "database is locked"; the pool reports
    "QueuePool limit ... timed out".
    """
    error_str = str(exc).lower()
    return (
        "statement timeout" in error_str
        or "lock timeout" in error_str
        or "database is locked" in error_str
        or "queuepool" in error_str
        or ("timeout" in error_str and ("connection" in error_str or "pool" in error_str))
    )
