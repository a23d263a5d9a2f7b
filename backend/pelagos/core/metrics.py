"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Entry points
verification_attempts = Counter(
    'payment_verification_attempts_total',
    'Client-initiated payment verifications',
    ['result']  # confirmed, already_confirmed, rejected, error
)

webhook_events = Counter(
    'payment_webhook_events_total',
    'Gateway webhook deliveries',
    ['event', 'outcome']  # outcome: applied, already_terminal, ignored, rejected, not_found
)

reconciliation_latency = Histogram(
    'payment_reconciliation_latency_seconds',
    'Time spent in the critical reconciliation transaction',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# State transitions
payment_transitions = Counter(
    'payment_record_transitions_total',
    'Payment record transition attempts',
    ['target', 'result']  # target: succeeded/failed, result: applied/already_terminal/not_found
)

seat_ledger_updates = Counter(
    'seat_ledger_updates_total',
    'Guarded seat decrements',
    ['result']  # decremented, exhausted
)

cleanup_task_runs = Counter(
    'cleanup_task_runs_total',
    'Best-effort cleanup task executions',
    ['kind', 'result']  # result: done, failed, skipped
)

# Gateway
gateway_requests = Counter(
    'gateway_requests_total',
    'Payment lookups against the gateway API',
    ['result']  # ok, http_error, timeout, transport_error
)

gateway_latency = Histogram(
    'gateway_request_latency_seconds',
    'Gateway payment lookup latency',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

def metrics_endpoint() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

def record_verification(result: str):
    verification_attempts.labels(result=result).inc()

def record_webhook_event(event: str, outcome: str):
    webhook_events.labels(event=event or "unknown", outcome=outcome).inc()

def record_payment_transition(target: str, result: str):
    payment_transitions.labels(target=target, result=result).inc()

def record_seat_update(decremented: bool):
    result = "decremented" if decremented else "exhausted"
    seat_ledger_updates.labels(result=result).inc()

def record_cleanup_run(kind: str, result: str):
    cleanup_task_runs.labels(kind=kind, result=result).inc()

def record_gateway_request(result: str):
    gateway_requests.labels(result=result).inc()
