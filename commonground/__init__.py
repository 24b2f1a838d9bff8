"""Common Ground: survey scoring, pairwise alignment and groups"""

from commonground.aggregator import AggregationResult, TopicMergeMode, aggregate_answers
from commonground.constants import SAFE_TOLERANCE
from commonground.groups import GroupManager
from commonground.pairwise import PairwiseResult, compute_pairwise
from commonground.service import CommonGroundService
from commonground.survey import SurveyDefinition, SurveyProvider, parse_survey
from commonground.validator import Answer, ValidatedAnswer, validate_answers

__all__ = [
    "AggregationResult",
    "Answer",
    "CommonGroundService",
    "GroupManager",
    "PairwiseResult",
    "SAFE_TOLERANCE",
    "SurveyDefinition",
    "SurveyProvider",
    "TopicMergeMode",
    "ValidatedAnswer",
    "aggregate_answers",
    "compute_pairwise",
    "parse_survey",
    "validate_answers",
]
