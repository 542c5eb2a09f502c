"""
Prometheus metrics for payment and capacity monitoring.

Tracks:
- Payment initializations, verifications and refunds
- Paystack API calls, errors and circuit breaker state
- Seat reservations by outcome
- Reconciliation faults and sweep results
- Webhook deliveries
- Outbox queue depth
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payment_initializations_total = Counter(
    "payment_initializations_total",
    "Total number of payment initializations",
    ["type", "currency", "status"],  # status: created, idempotent, rejected
)

payment_verifications_total = Counter(
    "payment_verifications_total",
    "Total payment verifications by resulting status",
    ["outcome"],  # success, failed, pending, already_terminal, error
)

payment_refunds_total = Counter(
    "payment_refunds_total",
    "Total payment refunds",
    ["type"],
)

payment_amount_minor = Histogram(
    "payment_amount_minor",
    "Initialized payment amounts in minor units",
    buckets=(10000, 50000, 100000, 500000, 1000000, 5000000, 10000000),
)

# Gateway metrics
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total Paystack API requests",
    ["operation", "status"],  # operation: initialize, verify, resolve_account
)

gateway_errors_total = Counter(
    "gateway_errors_total",
    "Total Paystack API errors",
    ["error_type"],  # transient, rate_limit, declined
)

gateway_duration_seconds = Histogram(
    "gateway_duration_seconds",
    "Paystack API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

gateway_circuit_breaker_state = Gauge(
    "gateway_circuit_breaker_state",
    "Paystack circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Capacity metrics
seat_reservations_total = Counter(
    "seat_reservations_total",
    "Seat reservation attempts by outcome",
    ["outcome"],  # reserved, updated, at_capacity, released
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # processed, ignored, duplicate, failed
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Reconciliation metrics
reconciliation_faults_total = Counter(
    "reconciliation_faults_total",
    "Settled payments that could not be applied to their target",
    ["kind"],
)

reconciliation_failures_total = Counter(
    "reconciliation_failures_total",
    "Settlements rolled back because reconciliation raised",
)

reconciliation_sweep_payments_total = Counter(
    "reconciliation_sweep_payments_total",
    "Stale pending payments re-verified by the sweep, by outcome",
    ["outcome"],
)

reconciliation_duration_seconds = Histogram(
    "reconciliation_duration_seconds",
    "Reconciliation sweep duration in seconds",
    buckets=(1, 5, 10, 30, 60, 120, 300),
)

reconciliation_last_run_timestamp = Gauge(
    "reconciliation_last_run_timestamp",
    "Timestamp of last reconciliation sweep",
)

# Outbox metrics
outbox_queue_depth = Gauge(
    "outbox_queue_depth",
    "Number of unpublished events in outbox",
)

outbox_events_published_total = Counter(
    "outbox_events_published_total",
    "Total outbox events published",
    ["event_type"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_initialization(
        payment_type: str, currency: str, status: str, amount_minor: int = 0
    ) -> None:
        """Record a payment initialization."""
        payment_initializations_total.labels(
            type=payment_type, currency=currency, status=status
        ).inc()
        if amount_minor > 0:
            payment_amount_minor.observe(amount_minor)

    @staticmethod
    def record_verification(outcome: str) -> None:
        """Record a verification outcome."""
        payment_verifications_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_refund(payment_type: str) -> None:
        payment_refunds_total.labels(type=payment_type).inc()

    @staticmethod
    def record_gateway_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record a Paystack API call."""
        gateway_requests_total.labels(operation=operation, status=status).inc()
        gateway_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_gateway_error(error_type: str) -> None:
        gateway_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        gateway_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_reservation(outcome: str) -> None:
        seat_reservations_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_reconciliation_fault(kind: str) -> None:
        reconciliation_faults_total.labels(kind=kind).inc()

    @staticmethod
    def record_reconciliation_failure() -> None:
        reconciliation_failures_total.inc()

    @staticmethod
    def record_sweep(results: dict, duration_seconds: float) -> None:
        """Record the outcome counts of one reconciliation sweep."""
        for outcome in ("succeeded", "failed", "still_pending", "errors"):
            count = results.get(outcome, 0)
            if count:
                reconciliation_sweep_payments_total.labels(outcome=outcome).inc(count)
        reconciliation_duration_seconds.observe(duration_seconds)
        reconciliation_last_run_timestamp.set(time.time())

    @staticmethod
    def set_outbox_queue_depth(depth: int) -> None:
        """Set outbox queue depth."""
        outbox_queue_depth.set(depth)

    @staticmethod
    def record_outbox_event_published(event_type: str) -> None:
        outbox_events_published_total.labels(event_type=event_type).inc()


# Export singleton instance
metrics = MetricsCollector()
