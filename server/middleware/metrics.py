"""
Request instrumentation for the Common Ground API

Every request increments commonground_api_requests_total and observes
commonground_api_request_duration_seconds, labelled by a normalized
endpoint so group, user and category ids do not explode cardinality.

Installed in server.main via app.middleware("http").
"""

import time

from fastapi import Request

from server.metrics import metrics

# Path segment that follows each of these is an identifier
_ID_AFTER = {
    "groups": ":group_id",
    "pairwise": ":user_id",
    "category": ":category_id",
    "surveys": ":version",
}


async def metrics_middleware(request: Request, call_next):
    """Record Prometheus metrics for all API requests"""
    start_time = time.time()

    endpoint = _normalize_endpoint(request.url.path)
    method = request.method
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        metrics.api_requests.labels(
            endpoint=endpoint,
            method=method,
            status_code=status_code
        ).inc()

        metrics.api_request_duration.labels(
            endpoint=endpoint,
            method=method
        ).observe(time.time() - start_time)


def _normalize_endpoint(path: str) -> str:
    """Normalize endpoint path for metrics cardinality control

    Converts:
        /api/common-ground/groups/42/join -> /api/common-ground/groups/:group_id/join
        /api/common-ground/pairwise/u-123 -> /api/common-ground/pairwise/:user_id
        /api/common-ground/groups/42/category/3/compatibles
            -> /api/common-ground/groups/:group_id/category/:category_id/compatibles

    Args:
        path: Raw URL path

    Returns:
        Normalized path with identifiers replaced by placeholders
    """
    parts = [part for part in path.split('/') if part]
    normalized_parts = []

    for i, part in enumerate(parts):
        prev_part = parts[i - 1] if i > 0 else None
        if prev_part in _ID_AFTER:
            normalized_parts.append(_ID_AFTER[prev_part])
        elif part.isdigit():
            normalized_parts.append(':id')
        else:
            normalized_parts.append(part)

    return '/' + '/'.join(normalized_parts)
