"""
Monitoring and health check API routes
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from config import config, get_logger
from database.db import Database
from database.id_generation import group_key
from server.dependencies import get_db
from server.metrics import get_metrics_text

logger = get_logger(__name__)

API_VERSION = "1.0.0"

router = APIRouter()


@router.get("/")
async def root():
    """API status and info"""
    return {
        "service": "Common Ground API",
        "status": "running",
        "version": API_VERSION,
        "endpoints": {
            "submit": "POST /api/common-ground/responses - Submit survey answers",
            "topic_scores": "GET /api/common-ground/topic-scores?version= - Caller's topic scores",
            "pairwise": "GET /api/common-ground/pairwise/{otherUserId}?version= - Compare with another user",
            "survey": "GET /api/common-ground/surveys/{version} - Survey definition",
            "groups": {
                "create": "POST /api/common-ground/groups - Create a group",
                "join": "POST /api/common-ground/groups/{groupId}/join - Join with a group code",
                "topic_scores": "GET /api/common-ground/groups/{groupId}/topic-scores?version=",
                "category_vectors": "GET /api/common-ground/groups/{groupId}/category-vectors?version=",
                "clusters": "GET /api/common-ground/groups/{groupId}/clusters?version=",
                "compatibles": "GET /api/common-ground/groups/{groupId}/category/{catId}/compatibles?version=",
                "responses": "GET /api/common-ground/groups/{groupId}/category/{catId}/responses?version=",
            },
            "health": "GET /api/health - Health check",
            "metrics": "GET /metrics - Prometheus metrics",
        },
    }


@router.get("/api/health")
async def health_check(db: Database = Depends(get_db)):
    """Health check endpoint"""
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
        "checks": {},
    }

    try:
        # Round trip to the store; the key never exists
        await db.store.get(group_key("__health__"))
        health_status["checks"]["store"] = {"status": "healthy", "backend": config.STORE}
    except Exception as e:
        logger.error("store health check failed", error=str(e))
        health_status["checks"]["store"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"

    survey_dir = Path(config.SURVEY_DIR)
    survey_files = sorted(p.name for p in survey_dir.glob("commonGround_survey_*.json")) if survey_dir.is_dir() else []
    health_status["checks"]["surveys"] = {
        "status": "healthy" if survey_files else "degraded",
        "files": survey_files,
    }
    if not survey_files and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    health_status["checks"]["configuration"] = {
        "status": "healthy",
        "is_development": config.is_development(),
        "topic_merge_mode": config.TOPIC_MERGE_MODE,
        "has_jwt_secret": bool(config.JWT_SECRET),
    }

    return health_status


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint

    Returns metrics in Prometheus text format for scraping.
    """
    try:
        return Response(content=get_metrics_text(), media_type="text/plain")
    except Exception as e:
        logger.error("prometheus metrics endpoint failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to generate metrics")
