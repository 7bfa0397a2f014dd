"""
Prometheus metrics for reservations, payment reconciliation and channel imports.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from booking_engine.metrics import reservations_created
    >>> reservations_created.labels(source="DIRECT", status="PENDING").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Reservation Metrics
# =============================================================================

reservations_created = Counter(
    "booking_reservations_created_total",
    "Reservations created, by channel and initial status",
    ["source", "status"],
)
"""
Counter for reservations created.

Labels:
    source: DIRECT or an external channel (BOOKING_COM, AIRBNB, ...)
    status: Initial status (PENDING for checkout, CONFIRMED for imports)
"""

state_transitions = Counter(
    "booking_state_transitions_total",
    "Reservation state transitions applied",
    ["transition"],
)
"""
Counter for state machine transitions.

Labels:
    transition: Name of the operation (confirm_payment, fail_payment, cancel, ...)
"""

revenue_splits_applied = Counter(
    "booking_revenue_splits_applied_total",
    "Platform fee / owner revenue splits persisted on payment confirmation",
)
"""Counter that must grow by exactly one per confirmed direct reservation."""

checkout_failures = Counter(
    "booking_checkout_failures_total",
    "Checkout session creations that failed",
    ["reason"],
)
"""
Counter for failed checkouts.

Labels:
    reason: dates_unavailable, gateway_error, gateway_timeout, validation, ...
"""

# =============================================================================
# Webhook Metrics
# =============================================================================

webhook_events = Counter(
    "booking_webhook_events_total",
    "Payment gateway webhook events processed",
    ["event_type", "outcome"],
)
"""
Counter for webhook events.

Labels:
    event_type: Gateway event type (payment_intent.succeeded, ...)
    outcome: applied, duplicate, ignored, rejected, signature_invalid, error
"""

# =============================================================================
# Gateway Metrics
# =============================================================================

gateway_requests = Counter(
    "booking_gateway_requests_total",
    "Payment gateway API requests",
    ["operation", "status"],
)
"""
Counter for gateway calls.

Labels:
    operation: create_checkout_session, create_refund, retrieve_session
    status: success, error, timeout
"""

gateway_latency = Histogram(
    "booking_gateway_latency_seconds",
    "Payment gateway API request latency in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
"""
Histogram for gateway latency.

Buckets: 0.1s, 0.25s, 0.5s, 1s, 2.5s, 5s, 10s, +Inf
"""

# =============================================================================
# Channel Import Metrics
# =============================================================================

external_imports = Counter(
    "booking_external_imports_total",
    "External channel booking imports",
    ["source", "result"],
)
"""
Counter for channel imports.

Labels:
    source: External channel
    result: imported, duplicate, date_clash, error
"""
