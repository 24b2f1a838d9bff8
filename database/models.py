"""
Database Models for Common Ground

Pydantic models for the persisted entities. Field names are snake_case in
Python and camelCase in the stored JSON documents (and the API), so
to_data()/from_entity() are the only conversion points.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from database.store import Entity


MemberRole = Literal["owner", "member"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredModel(BaseModel):
    """Base for entity payloads stored as camelCase JSON"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_data(self) -> Dict[str, Any]:
        """JSON-safe payload for the store (camelCase, ISO timestamps)"""
        return self.model_dump(mode="json", by_alias=True, exclude=self._key_fields())

    @classmethod
    def _key_fields(cls) -> set:
        return set()


class SurveyResponse(StoredModel):
    """One answered question. Key: User/{userId}/Response/{version}:{questionId}"""

    user_id: str
    version: str
    question_id: str
    option_id: str
    topic_id: str
    score: int
    answered_at: datetime

    @classmethod
    def _key_fields(cls) -> set:
        return {"user_id"}

    @classmethod
    def from_entity(cls, entity: Entity) -> "SurveyResponse":
        user_id = entity.key.path[0][1]
        return cls.model_validate({**entity.data, "userId": user_id})


class TopicScoreUser(StoredModel):
    """Mean score for one topic. Key: User/{userId}/TopicScoreUser/{version}:{topicId}"""

    user_id: str
    version: str
    topic_id: str
    mean_score: float
    answered_count: int
    updated_at: datetime

    @classmethod
    def _key_fields(cls) -> set:
        return {"user_id"}

    @classmethod
    def from_entity(cls, entity: Entity) -> "TopicScoreUser":
        user_id = entity.key.path[0][1]
        return cls.model_validate({**entity.data, "userId": user_id})

    def to_api(self) -> Dict[str, Any]:
        return {
            "topicId": self.topic_id,
            "meanScore": self.mean_score,
            "answeredCount": self.answered_count,
            "updatedAt": self.updated_at.isoformat(),
        }


class Group(StoredModel):
    """Discussion group. Key: Group/{groupId} (id assigned by the store)"""

    id: Optional[str] = None
    owner_user_id: str
    nickname: str
    version: str
    group_code: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def _key_fields(cls) -> set:
        return {"id"}

    @classmethod
    def from_entity(cls, entity: Entity) -> "Group":
        return cls.model_validate({**entity.data, "id": entity.key.name})


class GroupMember(StoredModel):
    """Membership. Key: Group/{groupId}/GroupMember/{userId}"""

    group_id: str
    user_id: str
    role: MemberRole
    alias: str
    joined_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def _key_fields(cls) -> set:
        return {"group_id", "user_id"}

    @classmethod
    def from_entity(cls, entity: Entity) -> "GroupMember":
        return cls.model_validate({
            **entity.data,
            "groupId": entity.key.path[0][1],
            "userId": entity.key.name,
        })
