"""
Prometheus metrics.
"""
from prometheus_client import Counter, Histogram, Gauge, Info
import logging

logger = logging.getLogger(__name__)

# HTTP
http_requests_total = Counter(
    'command_center_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'command_center_http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)

# ServiceM8 sync
sync_runs_total = Counter(
    'command_center_sync_runs_total',
    'ServiceM8 sync runs by type and outcome',
    ['sync_type', 'outcome']  # success, error, skipped
)

sync_jobs_processed = Counter(
    'command_center_sync_jobs_processed_total',
    'Jobs upserted by ServiceM8 syncs',
    ['sync_type']
)

sync_duration = Histogram(
    'command_center_sync_duration_seconds',
    'ServiceM8 sync duration',
    ['sync_type'],
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120)
)

# Scheduling
schedule_actions_total = Counter(
    'command_center_schedule_actions_total',
    'Scheduling actions by outcome',
    ['action', 'outcome']  # applied, rejected, noop
)

# Database
db_pool_connections = Gauge(
    'command_center_db_pool_connections',
    'Database pool connections',
    ['state']  # checked_in, checked_out, overflow
)

app_info = Info('command_center', 'Application information')
app_info.info({
    'name': 'command-center',
    'version': '1.0.0'
})


def update_db_pool_metrics(pool):
    """Update database pool connection metrics."""
    try:
        db_pool_connections.labels(state='checked_in').set(pool.checkedin())
        db_pool_connections.labels(state='checked_out').set(pool.checkedout())
        db_pool_connections.labels(state='overflow').set(pool.overflow())
    except Exception as e:
        logger.warning(f"Failed to update DB pool metrics: {e}")


def record_schedule_action(action: str, applied: bool, warning) -> None:
    if applied:
        outcome = 'applied'
    elif warning:
        outcome = 'rejected'
    else:
        outcome = 'noop'
    schedule_actions_total.labels(action=action, outcome=outcome).inc()
