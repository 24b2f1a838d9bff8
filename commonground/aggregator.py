"""Topic score aggregation

Reduces one user's validated answers for one survey version into:
- one SurveyResponse per answered question (upsert key version:questionId)
- one TopicScoreUser per topic touched by the batch (upsert key version:topicId)

Topic means are always recomputed from per-question scores, never averaged
incrementally. Topics not touched by the batch are left alone.

Merge modes for a touched topic:
    MERGED  mean over every stored response of that topic, with the batch
            overriding stored answers to the same questions (default)
    BATCH   mean over the batch's answers only
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from commonground.validator import ValidatedAnswer
from config import get_logger
from database.models import SurveyResponse, TopicScoreUser, utcnow

logger = get_logger(__name__).bind(component="topic_aggregator")


class TopicMergeMode(str, Enum):
    MERGED = "merged"
    BATCH = "batch"


@dataclass
class AggregationResult:
    """Records to persist atomically for one submission"""

    responses: List[SurveyResponse] = field(default_factory=list)
    topic_scores: List[TopicScoreUser] = field(default_factory=list)

    @property
    def response_count(self) -> int:
        return len(self.responses)

    @property
    def topic_count(self) -> int:
        return len(self.topic_scores)


def dedupe_answers(validated: Iterable[ValidatedAnswer]) -> List[ValidatedAnswer]:
    """One answer per question; a later answer to the same question replaces an earlier one"""
    latest: "OrderedDict[str, ValidatedAnswer]" = OrderedDict()
    for answer in validated:
        latest[answer.question_id] = answer
    return list(latest.values())


def aggregate_answers(
    user_id: str,
    version: str,
    validated: Iterable[ValidatedAnswer],
    now: Optional[datetime] = None,
    mode: TopicMergeMode = TopicMergeMode.MERGED,
    existing: Optional[Iterable[SurveyResponse]] = None,
) -> AggregationResult:
    """Build the response and topic score records for one submission

    Args:
        user_id: Submitting user
        version: Survey version the answers belong to
        validated: Output of validate_answers()
        now: Timestamp for answeredAt/updatedAt (defaults to current UTC time)
        mode: How touched topics combine with stored responses
        existing: User's stored responses for this version (MERGED mode)

    Returns:
        AggregationResult with topic scores ordered by topic id
    """
    now = now or utcnow()
    answers = dedupe_answers(validated)

    responses = [
        SurveyResponse(
            user_id=user_id,
            version=version,
            question_id=answer.question_id,
            option_id=answer.option_id,
            topic_id=answer.topic_id,
            score=answer.score,
            answered_at=now,
        )
        for answer in answers
    ]

    # topic id -> {question id -> score}
    scores_by_topic: Dict[str, Dict[str, int]] = {}
    for response in responses:
        scores_by_topic.setdefault(response.topic_id, {})[response.question_id] = response.score

    if mode is TopicMergeMode.MERGED and existing is not None:
        for stored in existing:
            if stored.version != version:
                continue
            topic_scores = scores_by_topic.get(stored.topic_id)
            # Only topics touched by this batch are recomputed
            if topic_scores is None:
                continue
            topic_scores.setdefault(stored.question_id, stored.score)

    topic_records = []
    for topic_id in sorted(scores_by_topic):
        scores = list(scores_by_topic[topic_id].values())
        topic_records.append(
            TopicScoreUser(
                user_id=user_id,
                version=version,
                topic_id=topic_id,
                mean_score=sum(scores) / len(scores),
                answered_count=len(scores),
                updated_at=now,
            )
        )

    logger.debug(
        "aggregated answers",
        user_id=user_id,
        version=version,
        mode=mode.value,
        responses=len(responses),
        topics=len(topic_records),
    )

    return AggregationResult(responses=responses, topic_scores=topic_records)
