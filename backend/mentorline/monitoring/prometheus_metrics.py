"""
Prometheus metrics module for Mentorline.

Service timings come from the @measure_operation decorator; scheduling
specific counters track lock contention, sweep transitions and reminder
delivery.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "mentorline_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "mentorline_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "mentorline_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

scheduling_lock_total = Counter(
    "mentorline_scheduling_lock_total",
    "Scheduling lock operations by outcome",
    ["action", "outcome"],
    registry=REGISTRY,
)

sweep_transitions_total = Counter(
    "mentorline_sweep_transitions_total",
    "Records transitioned by periodic sweeps",
    ["sweep", "outcome"],
    registry=REGISTRY,
)

reminders_total = Counter(
    "mentorline_reminders_total",
    "Reminder jobs processed by outcome",
    ["kind", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin static facade over the module level collectors."""

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
            operation: Operation/method name (e.g., 'request_call')
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
    def record_scheduling_lock(action: str, outcome: str) -> None:
        scheduling_lock_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_sweep(sweep: str, outcome: str, count: int = 1) -> None:
        if count:
            sweep_transitions_total.labels(sweep=sweep, outcome=outcome).inc(count)

    @staticmethod
    def record_reminder(kind: str, outcome: str) -> None:
        reminders_total.labels(kind=kind, outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
