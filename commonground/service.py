"""Common Ground service - orchestrates validation, aggregation and reads

One instance per process, shared by the HTTP handlers. Holds no per-request
state; every mutation runs inside one store transaction.
"""

import asyncio
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from commonground.aggregator import AggregationResult, TopicMergeMode, aggregate_answers
from commonground.clustering import build_category_vectors, compute_group_clusters
from commonground.groups import GroupManager
from commonground.pairwise import PairwiseResult, compute_pairwise
from commonground.scoring import find_compatibles, group_topic_scores
from commonground.survey import SurveyDefinition, SurveyProvider, topic_id_for
from commonground.validator import Answer, validate_answers
from config import Config, config, get_logger
from database.db import Database
from database.models import GroupMember, TopicScoreUser, utcnow
from exceptions import GroupNotFoundError, ValidationError

logger = get_logger(__name__).bind(component="commonground_service")


class CommonGroundService:
    """Survey scoring, pairwise comparison and group operations

    Usage:
        service = CommonGroundService(db, SurveyProvider(config.SURVEY_DIR))
        result = await service.submit_responses("u1", "v1", [Answer("q1", "q1-0")])
        pairwise = await service.compare_users("u1", "u2", "v1")
    """

    def __init__(
        self,
        db: Database,
        surveys: SurveyProvider,
        merge_mode: TopicMergeMode = TopicMergeMode.MERGED,
        safe_tolerance: float = config.SAFE_TOLERANCE,
        groups: Optional[GroupManager] = None,
    ):
        self.db = db
        self.surveys = surveys
        self.merge_mode = merge_mode
        self.safe_tolerance = safe_tolerance
        self.groups = groups or GroupManager(db)

    @classmethod
    def from_config(cls, db: Database, cfg: Config = config) -> "CommonGroundService":
        return cls(
            db,
            SurveyProvider(cfg.SURVEY_DIR),
            merge_mode=TopicMergeMode(cfg.TOPIC_MERGE_MODE),
            safe_tolerance=cfg.SAFE_TOLERANCE,
            groups=GroupManager(db, join_max_retries=cfg.JOIN_MAX_RETRIES),
        )

    # ========== Surveys ==========

    def get_survey(self, version: str) -> SurveyDefinition:
        return self.surveys.get(version)

    # ========== Scoring ==========

    async def submit_responses(
        self, user_id: str, version: str, answers: Sequence[Answer]
    ) -> Tuple[AggregationResult, int]:
        """Validate, aggregate and persist one submission atomically

        Returns:
            (AggregationResult, skipped answer count)

        Raises:
            ValidationError: Empty batch
            SurveyNotFoundError: Unknown survey version
            TransactionConflictError: Concurrent submission by the same user
        """
        if not answers:
            raise ValidationError("Invalid request body.", field="answers")

        survey = self.surveys.get(version)
        validated = validate_answers(survey, answers)
        skipped = len(answers) - len(validated)

        if not validated:
            logger.info("submission had no valid answers", user_id=user_id, version=version, skipped=skipped)
            return AggregationResult(), skipped

        scores = self.db.scores
        async with scores.transaction() as txn:
            existing = None
            if self.merge_mode is TopicMergeMode.MERGED:
                # Concurrent writers to the same topic both upsert its score, so
                # reading it here makes the later commit conflict. The response
                # query alone cannot see a response another writer is adding.
                for topic_id in sorted({answer.topic_id for answer in validated}):
                    await scores.get_topic_score(user_id, version, topic_id, txn=txn)
                existing = await scores.get_responses(user_id, version, txn=txn)

            result = aggregate_answers(
                user_id,
                version,
                validated,
                mode=self.merge_mode,
                existing=existing,
            )
            await scores.save_submission(result.responses, result.topic_scores, txn=txn)

        logger.info(
            "responses saved",
            user_id=user_id,
            version=version,
            responses=result.response_count,
            topics=result.topic_count,
            skipped=skipped,
        )
        return result, skipped

    async def get_topic_scores(self, user_id: str, version: str) -> List[TopicScoreUser]:
        return await self.db.scores.get_topic_scores(user_id, version)

    async def compare_users(self, user_id: str, other_user_id: str, version: str) -> PairwiseResult:
        """Pairwise alignment between two users (plain reads, no transaction)"""
        scores_a, scores_b = await asyncio.gather(
            self.db.scores.get_topic_score_map(user_id, version),
            self.db.scores.get_topic_score_map(other_user_id, version),
        )
        return compute_pairwise(scores_a, scores_b, tolerance=self.safe_tolerance)

    # ========== Groups ==========

    async def create_group(
        self,
        owner_user_id: str,
        owner_alias: Optional[str] = None,
        nickname: Optional[str] = None,
        version: Optional[str] = None,
    ) -> Tuple[str, str]:
        return await self.groups.create_group(owner_user_id, owner_alias, nickname, version)

    async def join_group(
        self, group_id: str, user_id: str, presented_code: str, alias: Optional[str] = None
    ) -> GroupMember:
        return await self.groups.join_group(group_id, user_id, presented_code, alias)

    async def _require_members(self, group_id: str) -> List[GroupMember]:
        group = await self.db.groups.get_group(group_id)
        if group is None:
            raise GroupNotFoundError("Group not found.", group_id=group_id)
        return await self.db.groups.get_members(group_id)

    async def _member_scores(self, group_id: str, version: str) -> Dict[str, Dict[str, float]]:
        """userId -> {topicId -> meanScore} for every member, in membership order"""
        members = await self._require_members(group_id)
        maps = await asyncio.gather(
            *[self.db.scores.get_topic_score_map(member.user_id, version) for member in members]
        )
        return {member.user_id: scores for member, scores in zip(members, maps)}

    async def group_topic_scores(self, group_id: str, version: str) -> List[Dict[str, Any]]:
        scores_by_user = await self._member_scores(group_id, version)
        updated_at = utcnow().isoformat()
        return [
            {"id": f"{version}:{summary['topicId']}", "version": version, **summary, "updatedAt": updated_at}
            for summary in group_topic_scores(scores_by_user, tolerance=self.safe_tolerance)
        ]

    async def _category_vectors(self, group_id: str, version: str) -> Dict[str, List[float]]:
        survey = self.surveys.get(version)
        scores_by_user = await self._member_scores(group_id, version)
        category_topics = [topic_id_for(category_id) for category_id in survey.category_ids]
        return build_category_vectors(scores_by_user, category_topics)

    async def category_vectors(self, group_id: str, version: str) -> List[Dict[str, Any]]:
        vectors = await self._category_vectors(group_id, version)
        updated_at = utcnow().isoformat()
        return [
            {"id": f"{version}:{user_id}", "version": version, "userId": user_id, "scores": vector, "updatedAt": updated_at}
            for user_id, vector in vectors.items()
        ]

    async def group_clusters(self, group_id: str, version: str) -> Dict[str, Any]:
        vectors = await self._category_vectors(group_id, version)
        snapshot = compute_group_clusters(vectors)
        snapshot["version"] = version
        snapshot["updatedAt"] = utcnow().isoformat()
        return snapshot

    async def category_compatibles(self, group_id: str, category_id: int, version: str) -> Dict[str, Any]:
        scores_by_user = await self._member_scores(group_id, version)
        topic_id = topic_id_for(category_id)
        return find_compatibles({
            user_id: scores.get(topic_id) for user_id, scores in scores_by_user.items()
        })

    async def category_responses(self, group_id: str, category_id: int, version: str) -> List[Dict[str, Any]]:
        """Per-question option counts across the group's stored responses"""
        survey = self.surveys.get(version)
        members = await self._require_members(group_id)

        topic = survey.topic_for_category(category_id)
        if topic is None:
            return []

        responses = await asyncio.gather(
            *[self.db.scores.get_responses(member.user_id, version, topic_id=topic.id) for member in members]
        )
        counts = Counter(
            (response.question_id, response.option_id)
            for member_responses in responses
            for response in member_responses
        )

        return [
            {
                "questionId": question.id,
                "prompt": question.prompt,
                "counts": [
                    {"optionId": option.id, "label": option.label, "count": counts[(question.id, option.id)]}
                    for option in question.options
                ],
            }
            for question in topic.questions
        ]
