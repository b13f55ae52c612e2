"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Checkout metrics
checkout_attempts = Counter(
    'checkout_attempts_total',
    'Total checkout (purchase intent) attempts',
    ['outcome']  # created, invalid, sold_out, gateway_error
)

# Reconciliation metrics
reconcile_outcomes = Counter(
    'reconcile_outcomes_total',
    'Status reconciliation outcomes',
    ['outcome']  # issued, pending, failed, unknown_session
)

tickets_issued = Counter(
    'tickets_issued_total',
    'Ticket units issued after confirmed payment'
)

inventory_released = Counter(
    'inventory_released_total',
    'Ticket units released back to sale',
    ['disposition']  # failed, expired, cancelled
)

# Gateway metrics
gateway_calls = Counter(
    'gateway_calls_total',
    'Payment gateway calls',
    ['operation', 'result']  # create_session/query_status, ok/paid/unpaid/unknown/error
)

gateway_latency = Histogram(
    'gateway_call_latency_seconds',
    'Payment gateway call latency',
    ['operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Sweep metrics
sweep_results = Counter(
    'sweep_results_total',
    'Stale intents handled by the sweep',
    ['result']  # issued, expired, skipped, error, purged
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_checkout(outcome: str):
    """Record checkout attempt. Outcome: created, invalid, sold_out, gateway_error"""
    checkout_attempts.labels(outcome=outcome).inc()


def record_reconcile(outcome: str):
    reconcile_outcomes.labels(outcome=outcome).inc()


def record_gateway_call(operation: str, result: str, seconds: float):
    """Record one gateway round-trip and its latency."""
    gateway_calls.labels(operation=operation, result=result).inc()
    gateway_latency.labels(operation=operation).observe(seconds)


def record_release(disposition: str, units: int):
    inventory_released.labels(disposition=disposition).inc(units)


def record_sweep(result: str, count: int = 1):
    if count:
        sweep_results.labels(result=result).inc(count)
