"""
Prometheus metrics module for ThoughtCloud.

Service timings come from the @measure_operation decorator; the domain
counters below track session locks, webhook deliveries, payment
lifecycle transitions and payouts.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

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
    "thoughtcloud_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "thoughtcloud_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "thoughtcloud_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

session_lock_total = Counter(
    "thoughtcloud_session_lock_total",
    "Session transition lock operations by outcome",
    ["action", "outcome"],  # acquire|release, success|blocked|error|...
    registry=REGISTRY,
)

webhook_events_total = Counter(
    "thoughtcloud_webhook_events_total",
    "Processor webhook deliveries by event type and outcome",
    ["event_type", "outcome"],
    registry=REGISTRY,
)

session_transitions_total = Counter(
    "thoughtcloud_session_transitions_total",
    "Session lifecycle transitions",
    ["transition"],  # booked|completed|cancelled|expired|settled
    registry=REGISTRY,
)

payout_requests_total = Counter(
    "thoughtcloud_payout_requests_total",
    "Count of mentor payout requests",
    ["status"],  # success | insufficient_balance | error
    registry=REGISTRY,
)

orphaned_authorizations_total = Counter(
    "thoughtcloud_orphaned_authorizations_total",
    "Authorizations that could not be voided after a failed booking",
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

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
            service: Service name (e.g., 'SessionLifecycleManager')
            operation: Operation/method name (e.g., 'complete')
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
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_session_lock(action: str, outcome: str) -> None:
        session_lock_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_webhook_event(event_type: str, outcome: str) -> None:
        webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_session_transition(transition: str) -> None:
        session_transitions_total.labels(transition=transition).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_payout_request(status: str) -> None:
        payout_requests_total.labels(status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_orphaned_authorization() -> None:
        orphaned_authorizations_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
