"""
Tests for topic score aggregation

Topic means are recomputed from per-question scores; resubmitting the same
batch yields the same records; untouched topics are left alone.
"""

from datetime import datetime, timezone

import pytest

from commonground.aggregator import TopicMergeMode, aggregate_answers, dedupe_answers
from commonground.validator import Answer, validate_answers

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _validated(survey, *pairs):
    return validate_answers(survey, [Answer(q, o) for q, o in pairs])


class TestAggregateAnswers:
    def test_mean_per_topic(self, survey):
        validated = _validated(survey, ("q1", "q1-0"), ("q2", "q2-2"), ("q3", "q3-1"))

        result = aggregate_answers("u1", "t1", validated, now=NOW)

        scores = {s.topic_id: (s.mean_score, s.answered_count) for s in result.topic_scores}
        assert scores == {"cat-1": (0.0, 2), "cat-2": (20.0, 1)}
        assert result.response_count == 3
        assert result.topic_count == 2

    def test_topic_scores_ordered_by_topic_id(self, survey):
        validated = _validated(survey, ("q4", "q4-0"), ("q1", "q1-0"))
        result = aggregate_answers("u1", "t1", validated, now=NOW)
        assert [s.topic_id for s in result.topic_scores] == ["cat-1", "cat-3"]

    def test_same_batch_is_idempotent(self, survey):
        validated = _validated(survey, ("q1", "q1-0"), ("q2", "q2-1"))

        first = aggregate_answers("u1", "t1", validated, now=NOW)
        second = aggregate_answers("u1", "t1", validated, now=NOW, existing=first.responses)

        assert [s.model_dump() for s in second.topic_scores] == [s.model_dump() for s in first.topic_scores]
        assert [r.model_dump() for r in second.responses] == [r.model_dump() for r in first.responses]

    def test_later_duplicate_answer_wins(self, survey):
        validated = _validated(survey, ("q1", "q1-0"), ("q1", "q1-2"))

        result = aggregate_answers("u1", "t1", validated, now=NOW)

        assert [r.option_id for r in result.responses] == ["q1-2"]
        assert result.topic_scores[0].mean_score == -100.0
        assert result.topic_scores[0].answered_count == 1

    def test_records_carry_user_version_and_time(self, survey):
        result = aggregate_answers("u1", "t1", _validated(survey, ("q3", "q3-0")), now=NOW)

        response = result.responses[0]
        assert (response.user_id, response.version, response.topic_id, response.score) == ("u1", "t1", "cat-2", 80)
        assert response.answered_at == NOW
        assert result.topic_scores[0].updated_at == NOW

    def test_empty_input_produces_nothing(self):
        result = aggregate_answers("u1", "t1", [], now=NOW)
        assert result.response_count == 0
        assert result.topic_count == 0


class TestMergeModes:
    @pytest.fixture
    def stored(self, survey):
        return aggregate_answers("u1", "t1", _validated(survey, ("q1", "q1-0"), ("q3", "q3-0")), now=NOW).responses

    def test_merged_combines_stored_answers_of_touched_topic(self, survey, stored):
        validated = _validated(survey, ("q2", "q2-2"))

        result = aggregate_answers("u1", "t1", validated, now=NOW, mode=TopicMergeMode.MERGED, existing=stored)

        assert len(result.topic_scores) == 1
        score = result.topic_scores[0]
        assert score.topic_id == "cat-1"
        assert score.mean_score == 0.0
        assert score.answered_count == 2

    def test_merged_batch_overrides_stored_answer(self, survey, stored):
        validated = _validated(survey, ("q1", "q1-2"))

        result = aggregate_answers("u1", "t1", validated, now=NOW, mode=TopicMergeMode.MERGED, existing=stored)

        assert result.topic_scores[0].mean_score == -100.0
        assert result.topic_scores[0].answered_count == 1

    def test_merged_leaves_untouched_topics_alone(self, survey, stored):
        validated = _validated(survey, ("q2", "q2-0"))
        result = aggregate_answers("u1", "t1", validated, now=NOW, existing=stored)
        assert [s.topic_id for s in result.topic_scores] == ["cat-1"]

    def test_merged_ignores_other_versions(self, survey, stored):
        other_version = [r.model_copy(update={"version": "t0"}) for r in stored]
        result = aggregate_answers("u1", "t1", _validated(survey, ("q2", "q2-2")), now=NOW, existing=other_version)
        assert result.topic_scores[0].mean_score == -100.0

    def test_batch_mode_ignores_stored_answers(self, survey, stored):
        validated = _validated(survey, ("q2", "q2-2"))

        result = aggregate_answers("u1", "t1", validated, now=NOW, mode=TopicMergeMode.BATCH, existing=stored)

        assert result.topic_scores[0].mean_score == -100.0
        assert result.topic_scores[0].answered_count == 1


class TestDedupeAnswers:
    def test_keeps_first_position_with_last_value(self, survey):
        validated = _validated(survey, ("q1", "q1-0"), ("q2", "q2-0"), ("q1", "q1-1"))
        deduped = dedupe_answers(validated)
        assert [(v.question_id, v.option_id) for v in deduped] == [("q1", "q1-1"), ("q2", "q2-0")]
