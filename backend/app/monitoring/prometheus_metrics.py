"""
Prometheus metrics module for LinguaDesk.

Service timings are fed by the @measure_operation decorator; payout-specific
counters are incremented by the payout lifecycle service.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so repeated imports in tests never collide with the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "linguadesk_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "linguadesk_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "linguadesk_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

payouts_created_total = Counter(
    "linguadesk_payouts_created_total",
    "Teacher payouts created",
    ["currency"],
    registry=REGISTRY,
)

payout_lessons_claimed_total = Counter(
    "linguadesk_payout_lessons_claimed_total",
    "Lessons attached to newly created payouts",
    registry=REGISTRY,
)

payout_claim_conflicts_total = Counter(
    "linguadesk_payout_claim_conflicts_total",
    "Payout creations rejected because a lesson was already claimed",
    registry=REGISTRY,
)

payout_status_transitions_total = Counter(
    "linguadesk_payout_status_transitions_total",
    "Payout status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'TeacherPayoutService')
            operation: Operation/method name (e.g., 'create_payout')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    # Domain helpers
    @staticmethod
    def inc_payout_created(currency: str, lesson_count: int) -> None:
        payouts_created_total.labels(currency=currency).inc()
        payout_lessons_claimed_total.inc(lesson_count)

    @staticmethod
    def inc_payout_claim_conflict() -> None:
        payout_claim_conflicts_total.inc()

    @staticmethod
    def inc_payout_status_transition(from_status: str, to_status: str) -> None:
        payout_status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Global instance
prometheus_metrics = PrometheusMetrics()
