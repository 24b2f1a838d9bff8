"""
Tests for answer validation against a survey definition

Unknown questions and options are skipped; the remaining answers resolve
to their question, option, topic and score.
"""

from commonground.validator import Answer, validate_answers


class TestValidateAnswers:
    def test_valid_answers_resolve(self, survey):
        validated = validate_answers(survey, [Answer("q1", "q1-0"), Answer("q3", "q3-2")])

        assert [(v.question_id, v.option_id, v.topic_id, v.score) for v in validated] == [
            ("q1", "q1-0", "cat-1", 100),
            ("q3", "q3-2", "cat-2", -40),
        ]

    def test_unknown_question_skipped(self, survey):
        validated = validate_answers(survey, [Answer("q99", "q99-0"), Answer("q2", "q2-1")])
        assert [v.question_id for v in validated] == ["q2"]

    def test_option_from_other_question_skipped(self, survey):
        validated = validate_answers(survey, [Answer("q1", "q3-0")])
        assert validated == []

    def test_out_of_range_option_index_skipped(self, survey):
        validated = validate_answers(survey, [Answer("q4", "q4-2")])
        assert validated == []

    def test_input_order_kept(self, survey):
        answers = [Answer("q4", "q4-1"), Answer("q1", "q1-2"), Answer("q2", "q2-0")]
        assert [v.question_id for v in validate_answers(survey, answers)] == ["q4", "q1", "q2"]

    def test_empty_input(self, survey):
        assert validate_answers(survey, []) == []
