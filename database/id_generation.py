"""
ID Generation - Deterministic entity keys and join codes

Single source of truth for entity key construction. No component builds
key paths by hand.

Key Patterns:
- Response:        User/{userId}/Response/{version}:{questionId}
- TopicScoreUser:  User/{userId}/TopicScoreUser/{version}:{topicId}
- Group:           Group/{groupId}         (id assigned by the store)
- GroupMember:     Group/{groupId}/GroupMember/{userId}

Design Philosophy:
- Keys are deterministic: same (user, version, id) always produces the same key
- Resubmission overwrites through the same key (idempotent upsert)
- Versions are part of the key, so scores of different survey versions never mix
"""

import secrets
from typing import Optional

from database.store import EntityKey

USER_KIND = "User"
RESPONSE_KIND = "Response"
TOPIC_SCORE_KIND = "TopicScoreUser"
GROUP_KIND = "Group"
MEMBER_KIND = "GroupMember"

# No 0/O, 1/I/L: codes are read aloud and typed by hand
GROUP_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
GROUP_CODE_LENGTH = 8


def versioned_id(version: str, entity_id: str) -> str:
    """Composite "{version}:{id}" name used for per-version user records

    Examples:
        >>> versioned_id("v1", "q3")
        'v1:q3'
    """
    if not version or not entity_id:
        raise ValueError("version and id are required")
    return f"{version}:{entity_id}"


def user_key(user_id: str) -> EntityKey:
    return EntityKey.of(USER_KIND, user_id)


def response_key(user_id: str, version: str, question_id: str) -> EntityKey:
    return user_key(user_id).child(RESPONSE_KIND, versioned_id(version, question_id))


def topic_score_key(user_id: str, version: str, topic_id: str) -> EntityKey:
    return user_key(user_id).child(TOPIC_SCORE_KIND, versioned_id(version, topic_id))


def group_key(group_id: Optional[str] = None) -> EntityKey:
    """Group key; without an id the key is incomplete and the store assigns one"""
    return EntityKey.of(GROUP_KIND, group_id)


def member_key(group_id: str, user_id: str) -> EntityKey:
    return group_key(group_id).child(MEMBER_KIND, user_id)


def generate_group_code(length: int = GROUP_CODE_LENGTH) -> str:
    """Random human-shareable join code

    31^8 (~8.5e11) combinations; uniqueness comes from generation alone.

    Examples:
        >>> len(generate_group_code())
        8
    """
    return "".join(secrets.choice(GROUP_CODE_ALPHABET) for _ in range(length))
