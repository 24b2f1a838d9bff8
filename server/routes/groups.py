"""Common Ground groups API

Endpoints:
- Create a group (caller becomes owner)
- Join a group with its code
- Group read models: topic scores, category vectors, clusters,
  compatible members and answer distributions per category
- Pairwise comparison with another member
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from commonground.service import CommonGroundService
from config import get_logger
from exceptions import (
    AlreadyMemberError,
    GroupNotFoundError,
    GroupProvisioningError,
    InvalidGroupCodeError,
    SurveyNotFoundError,
    TransactionConflictError,
)
from server.dependencies import get_current_user, get_service
from server.metrics import metrics
from server.models.requests import CreateGroupRequest, JoinGroupRequest
from userland.auth import User

logger = get_logger(__name__).bind(component="groups_api")

router = APIRouter(prefix="/api/common-ground/groups", tags=["groups"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    body: CreateGroupRequest,
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Create a group with the caller as owner.

    Returns {groupId, groupCode}. On failure after the group record was
    written, the group is left without members until the orphan sweep.
    """
    try:
        group_id, group_code = await service.create_group(
            owner_user_id=user.id,
            owner_alias=user.name,
            nickname=body.nickname,
            version=body.version,
        )
    except GroupProvisioningError as e:
        outcome = "orphaned" if e.orphaned else "failed"
        metrics.record_group_operation("create", outcome)
        logger.error("group provisioning failed", user_id=user.id, group_id=e.group_id, orphaned=e.orphaned)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create group. Please try again.",
        )

    metrics.record_group_operation("create", "success")
    return {"groupId": group_id, "groupCode": group_code}


@router.post("/{group_id}/join")
async def join_group(
    group_id: str,
    body: JoinGroupRequest,
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Join a group by presenting its code"""
    try:
        await service.join_group(group_id, user.id, body.group_code, alias=body.alias or user.name)
    except GroupNotFoundError as e:
        metrics.record_group_operation("join", "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.args[0])
    except InvalidGroupCodeError as e:
        metrics.record_group_operation("join", "invalid_code")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.args[0])
    except AlreadyMemberError as e:
        metrics.record_group_operation("join", "already_member")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.args[0])
    except TransactionConflictError:
        metrics.record_group_operation("join", "conflict")
        metrics.record_transaction("join_group", "conflict")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Group is busy. Please try again.",
        )
    except Exception as e:
        metrics.record_error("groups", e)
        logger.error("error joining group", group_id=group_id, user_id=user.id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join group.")

    metrics.record_group_operation("join", "success")
    metrics.record_transaction("join_group", "committed")
    return {"message": "Successfully joined group."}


def _read_error(e: Exception, group_id: str, what: str) -> HTTPException:
    """Map a group read failure to an HTTP error"""
    if isinstance(e, GroupNotFoundError):
        return HTTPException(status_code=404, detail=e.args[0])
    if isinstance(e, SurveyNotFoundError):
        return HTTPException(status_code=404, detail=e.args[0])
    metrics.record_error("groups", e)
    logger.error(f"error fetching group {what}", group_id=group_id, error=str(e), exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to fetch group {what}.")


@router.get("/{group_id}/topic-scores")
async def get_group_topic_scores(
    group_id: str,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Per-topic spread and agreement across the group's members"""
    try:
        return await service.group_topic_scores(group_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "topic scores")


@router.get("/{group_id}/category-vectors")
async def get_category_vectors(
    group_id: str,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    try:
        return await service.category_vectors(group_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "category vectors")


@router.get("/{group_id}/clusters")
async def get_clusters(
    group_id: str,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """2D opinion map and k-means clusters of the group's members"""
    try:
        return await service.group_clusters(group_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "clusters")


@router.get("/{group_id}/category/{category_id}/compatibles")
async def get_compatibles(
    group_id: str,
    category_id: int,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Largest set of members close to one another on a category"""
    try:
        return await service.category_compatibles(group_id, category_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "compatibles")


@router.get("/{group_id}/category/{category_id}/responses")
async def get_category_responses(
    group_id: str,
    category_id: int,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Option counts per question of a category across the group"""
    try:
        return await service.category_responses(group_id, category_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "responses")


@router.get("/{group_id}/pairwise/{other_user_id}")
async def get_group_pairwise(
    group_id: str,
    other_user_id: str,
    version: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    service: CommonGroundService = Depends(get_service),
):
    """Pairwise comparison between the caller and another user"""
    try:
        result = await service.compare_users(user.id, other_user_id, version)
    except Exception as e:
        raise _read_error(e, group_id, "pairwise")

    metrics.pairwise_comparisons.inc()
    return result.to_dict()
