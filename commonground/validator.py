"""Answer validation against a survey definition

Unknown questions and options are skipped with a warning; a partially
completed survey still scores the answers that resolve.
"""

from dataclasses import dataclass
from typing import Iterable, List

from commonground.survey import Option, Question, SurveyDefinition
from config import get_logger

logger = get_logger(__name__).bind(component="answer_validator")


@dataclass(frozen=True)
class Answer:
    question_id: str
    option_id: str


@dataclass(frozen=True)
class ValidatedAnswer:
    """An answer resolved to its question and option"""

    question: Question
    option: Option

    @property
    def question_id(self) -> str:
        return self.question.id

    @property
    def option_id(self) -> str:
        return self.option.id

    @property
    def topic_id(self) -> str:
        return self.question.topic_id

    @property
    def score(self) -> int:
        return self.option.score


def validate_answers(survey: SurveyDefinition, answers: Iterable[Answer]) -> List[ValidatedAnswer]:
    """Resolve answers against the survey, dropping the ones that do not resolve

    Args:
        survey: Survey the answers were given for
        answers: Raw (question id, option id) pairs

    Returns:
        Resolved answers in input order
    """
    validated: List[ValidatedAnswer] = []
    skipped = 0

    for answer in answers:
        question = survey.question(answer.question_id)
        if question is None:
            logger.warning(
                "answer skipped: unknown question",
                version=survey.version,
                question_id=answer.question_id,
            )
            skipped += 1
            continue

        option = question.option(answer.option_id)
        if option is None:
            logger.warning(
                "answer skipped: unknown option",
                version=survey.version,
                question_id=answer.question_id,
                option_id=answer.option_id,
            )
            skipped += 1
            continue

        validated.append(ValidatedAnswer(question=question, option=option))

    if skipped:
        logger.info("answers validated", version=survey.version, valid=len(validated), skipped=skipped)

    return validated
