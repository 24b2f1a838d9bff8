"""Survey definitions: file parsing and versioned lookup

A survey file (commonGround_survey_{version}.json) looks like:

    {
      "version": "v1",
      "meta": {"categories": {"1": "Economy", "2": "Environment"}},
      "questions": [
        {"id": "q1", "category_id": 1, "prompt": "...",
         "options": [{"label": "Strongly agree", "score": 100}, ...]}
      ]
    }

It is parsed once into an immutable tree (SurveyDefinition -> Topic ->
Question -> Option). Each category with questions becomes a topic
"cat-{categoryId}"; option ids are "{questionId}-{index}". Malformed files
raise SurveyDefinitionError at load, never while scoring.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from commonground.constants import MAX_OPTION_SCORE, MIN_OPTION_SCORE
from config import get_logger
from exceptions import SurveyDefinitionError, SurveyNotFoundError

logger = get_logger(__name__).bind(component="survey")

SURVEY_FILE_TEMPLATE = "commonGround_survey_{version}.json"

# Versions become part of a file name and of entity keys
VERSION_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


# --- Raw file models (validation only) ---


class RawOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str
    score: int = Field(ge=MIN_OPTION_SCORE, le=MAX_OPTION_SCORE)


class RawQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    category_id: int
    prompt: str
    options: List[RawOption] = Field(min_length=1)


class RawMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    categories: Dict[int, str] = Field(default_factory=dict)


class RawSurvey(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str
    meta: RawMeta = Field(default_factory=RawMeta)
    questions: List[RawQuestion]


# --- Typed survey tree ---


def topic_id_for(category_id: int) -> str:
    return f"cat-{category_id}"


def option_id_for(question_id: str, index: int) -> str:
    return f"{question_id}-{index}"


@dataclass(frozen=True)
class Option:
    id: str
    question_id: str
    label: str
    score: int


@dataclass(frozen=True)
class Question:
    id: str
    topic_id: str
    category_id: int
    prompt: str
    options: Tuple[Option, ...]

    def option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


@dataclass(frozen=True)
class Topic:
    id: str
    category_id: int
    name: str
    questions: Tuple[Question, ...]


class SurveyDefinition:
    """Immutable, versioned survey

    Lookups by question id and topic id are precomputed at construction.
    """

    def __init__(self, version: str, categories: Dict[int, str], topics: Tuple[Topic, ...]):
        self.version = version
        self.categories = dict(sorted(categories.items()))
        self.topics = topics
        self._topics_by_id = {topic.id: topic for topic in topics}
        self._questions = {
            question.id: question for topic in topics for question in topic.questions
        }

    def question(self, question_id: str) -> Optional[Question]:
        return self._questions.get(question_id)

    def topic(self, topic_id: str) -> Optional[Topic]:
        return self._topics_by_id.get(topic_id)

    def topic_for_category(self, category_id: int) -> Optional[Topic]:
        return self._topics_by_id.get(topic_id_for(category_id))

    @property
    def questions(self) -> List[Question]:
        return list(self._questions.values())

    @property
    def category_ids(self) -> List[int]:
        """Every category id declared or referenced, ascending"""
        ids = set(self.categories) | {topic.category_id for topic in self.topics}
        return sorted(ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "topics": [
                {
                    "id": topic.id,
                    "name": topic.name,
                    "categoryId": topic.category_id,
                    "questions": [
                        {
                            "id": question.id,
                            "topicId": question.topic_id,
                            "prompt": question.prompt,
                            "options": [
                                {"id": option.id, "label": option.label, "score": option.score}
                                for option in question.options
                            ],
                        }
                        for question in topic.questions
                    ],
                }
                for topic in self.topics
            ],
        }


def parse_survey(document: Dict[str, Any], source: Optional[str] = None) -> SurveyDefinition:
    """Parse a raw survey document into a SurveyDefinition

    Args:
        document: Decoded JSON survey file
        source: File path (for error context)

    Raises:
        SurveyDefinitionError: Document shape, score range or duplicate ids
    """
    try:
        raw = RawSurvey.model_validate(document)
    except PydanticValidationError as e:
        version = document.get("version") if isinstance(document, dict) else None
        raise SurveyDefinitionError(
            f"Invalid survey document: {e.error_count()} error(s): {e.errors()[0]['msg']}",
            version=str(version) if version else None,
            source=source,
        )

    if not VERSION_PATTERN.match(raw.version):
        raise SurveyDefinitionError(f"Invalid survey version: {raw.version!r}", source=source)

    questions_by_category: Dict[int, List[Question]] = {}
    seen_ids = set()
    for raw_question in raw.questions:
        if raw_question.id in seen_ids:
            raise SurveyDefinitionError(
                f"Duplicate question id: {raw_question.id}", version=raw.version, source=source
            )
        seen_ids.add(raw_question.id)

        options = tuple(
            Option(
                id=option_id_for(raw_question.id, index),
                question_id=raw_question.id,
                label=raw_option.label,
                score=raw_option.score,
            )
            for index, raw_option in enumerate(raw_question.options)
        )
        question = Question(
            id=raw_question.id,
            topic_id=topic_id_for(raw_question.category_id),
            category_id=raw_question.category_id,
            prompt=raw_question.prompt,
            options=options,
        )
        questions_by_category.setdefault(raw_question.category_id, []).append(question)

    topics = tuple(
        Topic(
            id=topic_id_for(category_id),
            category_id=category_id,
            name=raw.meta.categories.get(category_id, f"Category {category_id}"),
            questions=tuple(questions),
        )
        for category_id, questions in sorted(questions_by_category.items())
    )

    return SurveyDefinition(raw.version, raw.meta.categories, topics)


class SurveyProvider:
    """Loads survey files from a directory and caches them by version

    Usage:
        provider = SurveyProvider("/srv/surveys")
        survey = provider.get("v1")     # SurveyNotFoundError if missing
    """

    def __init__(self, survey_dir: Union[str, Path]):
        self.survey_dir = Path(survey_dir)
        self._cache: Dict[str, SurveyDefinition] = {}

    def register(self, survey: SurveyDefinition) -> None:
        """Add an already-parsed survey (no file needed)"""
        self._cache[survey.version] = survey

    def path_for(self, version: str) -> Path:
        return self.survey_dir / SURVEY_FILE_TEMPLATE.format(version=version)

    def get(self, version: str) -> SurveyDefinition:
        """Get a survey by version

        Raises:
            SurveyNotFoundError: Unknown or malformed version string
            SurveyDefinitionError: File exists but does not parse
        """
        cached = self._cache.get(version)
        if cached is not None:
            return cached

        if not version or not VERSION_PATTERN.match(version):
            raise SurveyNotFoundError(version)

        path = self.path_for(version)
        if not path.is_file():
            logger.warning("survey file not found", version=version, path=str(path))
            raise SurveyNotFoundError(version)

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SurveyDefinitionError(f"Survey file is not valid JSON: {e}", version=version, source=str(path))

        survey = parse_survey(document, source=str(path))
        if survey.version != version:
            raise SurveyDefinitionError(
                f"Survey file declares version {survey.version}", version=version, source=str(path)
            )

        self._cache[version] = survey
        logger.info(
            "survey loaded",
            version=version,
            topics=len(survey.topics),
            questions=len(survey.questions),
        )
        return survey
