"""
Prometheus metrics for the studio booking engine.

Service timings come from the @measure_operation decorator; the domain
counters below track admission outcomes, ledger activity, class-lock
behaviour and notification outbox delivery.
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
    "studio_booking_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "studio_booking_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "studio_booking_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Domain-specific counters
admission_decisions_total = Counter(
    "studio_booking_admission_decisions_total",
    "Booking admission outcomes",
    ["decision"],  # booked | waitlisted | rejected
    registry=REGISTRY,
)

credits_deducted_total = Counter(
    "studio_booking_credits_deducted_total",
    "Entitlement deductions by credit source",
    ["source"],
    registry=REGISTRY,
)

credits_refunded_total = Counter(
    "studio_booking_credits_refunded_total",
    "Entitlement refunds by credit source",
    ["source"],
    registry=REGISTRY,
)

waitlist_promotions_total = Counter(
    "studio_booking_waitlist_promotions_total",
    "Waitlist promotion attempts by outcome",
    ["outcome"],  # promoted | no_seat | none_eligible | skipped_no_credit
    registry=REGISTRY,
)

coupon_redemptions_total = Counter(
    "studio_booking_coupon_redemptions_total",
    "Coupon redemptions by coupon type",
    ["coupon_type"],
    registry=REGISTRY,
)

class_lock_total = Counter(
    "studio_booking_class_lock_total",
    "Per-class advisory lock operations",
    ["action", "outcome"],
    registry=REGISTRY,
)

# Notification outbox instrumentation
notifications_outbox_total = Counter(
    "studio_booking_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "studio_booking_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "studio_booking_notifications_dispatch_seconds",
    "Notifier dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'book_class')
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
    def record_admission(decision: str) -> None:
        admission_decisions_total.labels(decision=decision).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_credit_deducted(source: str) -> None:
        credits_deducted_total.labels(source=source).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_credit_refunded(source: str) -> None:
        credits_refunded_total.labels(source=source).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_promotion(outcome: str) -> None:
        waitlist_promotions_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_coupon_redemption(coupon_type: str) -> None:
        coupon_redemptions_total.labels(coupon_type=coupon_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_class_lock(action: str, outcome: str) -> None:
        """Count advisory lock acquire/release outcomes."""
        class_lock_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        """Increment attempt counter for notification outbox delivery."""
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        """Record terminal outcome for notification outbox delivery."""
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        """Observe notifier dispatch duration."""
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))
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
        ttl = PrometheusMetrics._cache_ttl_seconds
        if payload is not None and ts is not None and (now - ts) <= ttl:
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
