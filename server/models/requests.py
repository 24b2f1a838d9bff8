"""
Pydantic request models for API validation

Bodies use camelCase field names (questionId, groupCode) like the responses.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

VERSION_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

MAX_NICKNAME_LENGTH = 100
MAX_ANSWERS = 500


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_version(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not VERSION_PATTERN.match(v):
        raise ValueError("Invalid survey version")
    return v


class AnswerIn(CamelModel):
    question_id: str = Field(min_length=1)
    option_id: str = Field(min_length=1)


class SubmitResponsesRequest(CamelModel):
    version: str
    answers: List[AnswerIn] = Field(min_length=1, max_length=MAX_ANSWERS)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        return _check_version(v)


class CreateGroupRequest(CamelModel):
    nickname: Optional[str] = None
    version: Optional[str] = None

    @field_validator("nickname")
    @classmethod
    def validate_nickname(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) > MAX_NICKNAME_LENGTH:
            raise ValueError(f"Nickname too long (max {MAX_NICKNAME_LENGTH} characters)")
        return v or None

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: Optional[str]) -> Optional[str]:
        return _check_version(v)


class JoinGroupRequest(CamelModel):
    group_code: str = Field(min_length=1)
    alias: Optional[str] = None

    @field_validator("group_code")
    @classmethod
    def validate_group_code(cls, v: str) -> str:
        return v.strip()
