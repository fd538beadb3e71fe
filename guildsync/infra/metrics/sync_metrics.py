# =============================================================================
# File: guildsync/infra/metrics/sync_metrics.py
# Description: Prometheus metrics for the Discord synchronization worker
# =============================================================================
# Metrics for:
#   - Event ingestion (per topic and outcome)
#   - Reconciliation latency and concurrency
#   - Discord API calls (per operation and result)
#   - Dead letters and circuit breaker state
# =============================================================================

from prometheus_client import Counter, Histogram, Gauge

# =============================================================================
# Ingestion / Reconciliation
# =============================================================================

guildsync_events_total = Counter(
    'guildsync_events_total',
    'Events processed by the sync worker',
    ['topic', 'outcome']  # ok, warning, skipped
)

guildsync_reconcile_seconds = Histogram(
    'guildsync_reconcile_seconds',
    'Time spent reconciling a single event',
    ['topic'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

guildsync_inflight_reconciliations = Gauge(
    'guildsync_inflight_reconciliations',
    'Reconciliations currently running'
)

guildsync_dead_letter_total = Counter(
    'guildsync_dead_letter_total',
    'Events appended to the dead-letter list',
    ['topic']
)

# =============================================================================
# Discord API
# =============================================================================

guildsync_gateway_calls_total = Counter(
    'guildsync_gateway_calls_total',
    'Discord API calls made through the gateway',
    ['operation', 'result']  # success, not_found, permission, rate_limited, transient, invalid, circuit_open
)

# =============================================================================
# Reliability
# =============================================================================

circuit_breaker_state = Gauge(
    'guildsync_circuit_breaker_state',
    'Current state (0=closed, 1=open, 2=half_open)',
    ['name']
)

circuit_breaker_trips = Counter(
    'guildsync_circuit_breaker_trips_total',
    'Number of times a circuit breaker opened',
    ['name']
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_event(topic: str, outcome: str, duration_seconds: float) -> None:
    """Record a processed event and its reconciliation time."""
    guildsync_events_total.labels(topic=topic, outcome=outcome).inc()
    guildsync_reconcile_seconds.labels(topic=topic).observe(duration_seconds)


def record_gateway_call(operation: str, result: str) -> None:
    """Record a Discord API call."""
    guildsync_gateway_calls_total.labels(operation=operation, result=result).inc()


def record_dead_letter(topic: str) -> None:
    """Record an event parked in the dead-letter list."""
    guildsync_dead_letter_total.labels(topic=topic).inc()
