"""
Score Repository - Survey responses and per-topic user scores

Both record types live under the user's ancestor key and are keyed by
"{version}:{id}", so a resubmission upserts over the previous record.
"""

from typing import Dict, Iterable, List, Optional

from database.id_generation import (
    RESPONSE_KIND,
    TOPIC_SCORE_KIND,
    response_key,
    topic_score_key,
    user_key,
)
from database.models import SurveyResponse, TopicScoreUser
from database.repositories.base import BaseRepository
from database.store import StoreTransaction, Upsert


class ScoreRepository(BaseRepository):
    """Responses and topic scores for one user at a time"""

    # ========== Reads ==========

    async def get_responses(
        self,
        user_id: str,
        version: str,
        topic_id: Optional[str] = None,
        txn: Optional[StoreTransaction] = None,
    ) -> List[SurveyResponse]:
        """Get a user's stored responses for a survey version

        Args:
            user_id: User identifier
            version: Survey version
            topic_id: Restrict to one topic
            txn: Read inside this transaction (records a commit precondition)

        Returns:
            Responses ordered by key, [] if none
        """
        filters = {"version": version}
        if topic_id is not None:
            filters["topicId"] = topic_id
        entities = await self._query(RESPONSE_KIND, user_key(user_id), filters, txn=txn)
        return [SurveyResponse.from_entity(entity) for entity in entities]

    async def get_topic_scores(
        self,
        user_id: str,
        version: str,
        txn: Optional[StoreTransaction] = None,
    ) -> List[TopicScoreUser]:
        """Get all topic scores of a user for a survey version, [] if none"""
        entities = await self._query(
            TOPIC_SCORE_KIND, user_key(user_id), {"version": version}, txn=txn
        )
        return [TopicScoreUser.from_entity(entity) for entity in entities]

    async def get_topic_score(
        self,
        user_id: str,
        version: str,
        topic_id: str,
        txn: Optional[StoreTransaction] = None,
    ) -> Optional[TopicScoreUser]:
        entity = await self._get(topic_score_key(user_id, version, topic_id), txn=txn)
        return TopicScoreUser.from_entity(entity) if entity else None

    async def get_topic_score_map(self, user_id: str, version: str) -> Dict[str, float]:
        """topicId -> meanScore for one user (plain read)"""
        scores = await self.get_topic_scores(user_id, version)
        return {score.topic_id: score.mean_score for score in scores}

    # ========== Writes ==========

    @staticmethod
    def response_write(response: SurveyResponse) -> Upsert:
        key = response_key(response.user_id, response.version, response.question_id)
        return Upsert(key, response.to_data())

    @staticmethod
    def topic_score_write(score: TopicScoreUser) -> Upsert:
        key = topic_score_key(score.user_id, score.version, score.topic_id)
        return Upsert(key, score.to_data())

    async def save_submission(
        self,
        responses: Iterable[SurveyResponse],
        topic_scores: Iterable[TopicScoreUser],
        txn: Optional[StoreTransaction] = None,
    ) -> None:
        """Stage responses and topic scores as one atomic unit

        With txn, the writes join the caller's transaction and are committed
        by the caller. Without one, they are committed here.
        """
        async with self._ensure_txn(txn) as t:
            t.stage(*[self.response_write(r) for r in responses])
            t.stage(*[self.topic_score_write(s) for s in topic_scores])
