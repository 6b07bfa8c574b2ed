"""
Prometheus metrics for the booking engine.

Service operations are recorded by the @BaseService.measure_operation
decorator; the status lifecycle job records its own run metrics.
"""

from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

service_operation_duration_seconds = Histogram(
    "booking_engine_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

service_operations_total = Counter(
    "booking_engine_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
)

errors_total = Counter(
    "booking_engine_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
)

booking_conflicts_total = Counter(
    "booking_engine_booking_conflicts_total",
    "Bookings rejected by the conflict resolver",
    ["conflict_type"],
)

status_job_runs_total = Counter(
    "booking_engine_status_job_runs_total",
    "Status lifecycle job runs",
    ["result"],  # success | failure
)

status_job_transitions_total = Counter(
    "booking_engine_status_job_transitions_total",
    "Bookings auto-completed by the status lifecycle job",
)


class PrometheusMetrics:
    """Records booking engine metrics and renders the exposition payload."""

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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
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

    @staticmethod
    def record_booking_conflict(conflict_type: str) -> None:
        booking_conflicts_total.labels(conflict_type=conflict_type).inc()

    @staticmethod
    def record_status_job_run(success: bool, updated_count: int) -> None:
        status_job_runs_total.labels(result="success" if success else "failure").inc()
        if updated_count:
            status_job_transitions_total.inc(updated_count)

    @staticmethod
    def get_metrics() -> bytes:
        return generate_latest()

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
