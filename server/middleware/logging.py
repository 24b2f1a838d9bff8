"""
Request/response logging middleware
"""

import time

from fastapi import Request

from config import get_logger

logger = get_logger(__name__).bind(component="http")

QUIET_PATHS = ("/metrics", "/api/health")


async def log_requests(request: Request, call_next):
    """One log line per request with status and duration"""
    # Skip scraper and probe noise
    if request.url.path in QUIET_PATHS:
        return await call_next(request)

    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request failed",
            method=request.method,
            path=request.url.path,
            duration=round(time.time() - start_time, 3),
            error=str(e),
        )
        raise

    logger.info(
        "request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration=round(time.time() - start_time, 3),
    )
    return response
