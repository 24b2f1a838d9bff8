"""Common Ground API - survey scoring and pairwise alignment

Endpoints:
- Submit survey answers (idempotent per question)
- Read the caller's topic scores
- Compare the caller with another user
- Read a survey definition
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from commonground.service import CommonGroundService
from commonground.validator import Answer
from config import get_logger
from exceptions import (
    SurveyDefinitionError,
    SurveyNotFoundError,
    TransactionConflictError,
    ValidationError,
)
from server.dependencies import get_current_user, get_service
from server.metrics import metrics
from server.models.requests import SubmitResponsesRequest
from userland.auth import User

logger = get_logger(__name__).bind(component="common_ground_api")

router = APIRouter(prefix="/api/common-ground", tags=["common-ground"])


@router.post("/responses")
async def submit_responses(
    body: SubmitResponsesRequest,
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Save survey answers and recompute the touched topic scores.

    Unknown questions or options are skipped; the rest of the batch is saved.
    """
    answers = [Answer(question_id=a.question_id, option_id=a.option_id) for a in body.answers]

    try:
        result, skipped = await service.submit_responses(user.id, body.version, answers)
    except ValidationError as e:
        metrics.survey_submissions.labels(outcome="invalid").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.args[0])
    except SurveyNotFoundError as e:
        metrics.survey_submissions.labels(outcome="not_found").inc()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.args[0])
    except TransactionConflictError as e:
        metrics.survey_submissions.labels(outcome="conflict").inc()
        metrics.record_transaction("submit_responses", "conflict")
        logger.warning("submission conflict", user_id=user.id, version=body.version, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Responses changed concurrently. Please retry.",
        )
    except Exception as e:
        metrics.survey_submissions.labels(outcome="error").inc()
        metrics.record_error("scoring", e)
        logger.error("error saving responses", user_id=user.id, version=body.version, error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save responses.",
        )

    metrics.survey_submissions.labels(outcome="ok").inc()
    metrics.record_answers(accepted=len(answers) - skipped, skipped=skipped)
    if result.response_count:
        metrics.record_transaction("submit_responses", "committed")

    return {
        "message": "ok",
        "responseCount": result.response_count,
        "topicCount": result.topic_count,
        "skippedCount": skipped,
    }


@router.get("/topic-scores")
async def get_topic_scores(
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Caller's topic scores for one survey version ([] if none)"""
    try:
        scores = await service.get_topic_scores(user.id, version)
    except Exception as e:
        metrics.record_error("scoring", e)
        logger.error("error fetching topic scores", user_id=user.id, version=version, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch topic scores.")

    return [score.to_api() for score in scores]


@router.get("/pairwise/{other_user_id}")
async def get_pairwise(
    other_user_id: str,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Agreement between the caller and another user on shared topics"""
    try:
        result = await service.compare_users(user.id, other_user_id, version)
    except Exception as e:
        metrics.record_error("pairwise", e)
        logger.error(
            "error computing pairwise",
            user_id=user.id,
            other_user_id=other_user_id,
            version=version,
            error=str(e),
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to compute pairwise alignment.")

    metrics.pairwise_comparisons.inc()
    return result.to_dict()


@router.get("/surveys/{version}")
async def get_survey(
    version: str,
    service: CommonGroundService = Depends(get_service),
):
    """Typed survey tree: topics -> questions -> options"""
    try:
        survey = service.get_survey(version)
    except SurveyNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.args[0])
    except SurveyDefinitionError as e:
        metrics.record_error("survey", e)
        logger.error("survey definition invalid", version=version, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load survey.")

    return survey.to_dict()
