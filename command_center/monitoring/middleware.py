"""
HTTP metrics middleware.
"""
import re
import time
import logging
from fastapi import Request

from .prometheus import http_requests_total, http_request_duration

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.I)


async def metrics_middleware(request: Request, call_next):
    """Count requests and time them per method and normalized path."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    endpoint = normalize_endpoint(request.url.path)
    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()
    http_request_duration.labels(method=request.method, endpoint=endpoint).observe(duration)

    return response


def normalize_endpoint(path: str) -> str:
    """
    Replace ids in a path with placeholders to keep label cardinality low.

    - /api/jobs/42/stage-progress/7 -> /api/jobs/{id}/stage-progress/{id}
    - /api/servicem8/job-history/<uuid> -> /api/servicem8/job-history/{uuid}
    """
    normalized = []
    for part in path.split('/'):
        if part.isdigit():
            normalized.append('{id}')
        elif _UUID_RE.match(part) or part.startswith('manual-'):
            normalized.append('{uuid}')
        else:
            normalized.append(part)
    return '/'.join(normalized)
