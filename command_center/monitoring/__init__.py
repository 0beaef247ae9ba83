"""
Prometheus metrics for the HTTP API, syncs and scheduling.
"""
from .prometheus import (
    http_requests_total,
    http_request_duration,
    sync_runs_total,
    sync_jobs_processed,
    sync_duration,
    schedule_actions_total,
    db_pool_connections,
    update_db_pool_metrics,
    record_schedule_action,
)

from .middleware import metrics_middleware, normalize_endpoint

__all__ = [
    'http_requests_total',
    'http_request_duration',
    'sync_runs_total',
    'sync_jobs_processed',
    'sync_duration',
    'schedule_actions_total',
    'db_pool_connections',
    'update_db_pool_metrics',
    'record_schedule_action',
    'metrics_middleware',
    'normalize_endpoint',
]
