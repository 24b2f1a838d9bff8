"""
Tests for group-level scoring: dispersion labels, agreement and compatibility
"""

import pytest

from commonground.scoring import (
    agreement_pct,
    classify_topic,
    find_compatibles,
    group_topic_scores,
    is_hot,
    is_safe,
    score_dispersion,
)


class TestTopicLabels:
    @pytest.mark.parametrize(
        "scores,label",
        [
            ([-10, 0, 15], "safe"),
            ([-10, 0, 16], "hot"),
            ([-100, -100, -100], "safe"),
            ([-100, 100], "hot"),
            ([-60, 40], "hot"),
            ([-10, 5, 8], "safe"),
        ],
    )
    def test_classify(self, scores, label):
        assert classify_topic(scores) == label

    def test_single_score_is_safe(self):
        assert score_dispersion([42]) == 0.0
        assert is_safe([42])

    def test_strongly_divided(self):
        assert is_hot([-60, 40])
        assert not is_hot([-50, 40])

    def test_custom_tolerance(self):
        assert classify_topic([0, 30], tolerance=30) == "safe"
        assert classify_topic([0, 31], tolerance=30) == "hot"


class TestAgreementPct:
    def test_all_within_band(self):
        assert agreement_pct([10, 20, 30]) == 1.0

    def test_outlier_excluded(self):
        assert agreement_pct([0, 10, 20, 100]) == 0.75

    def test_no_scores(self):
        assert agreement_pct([]) == 0.0


class TestGroupTopicScores:
    def test_summary_per_topic(self):
        summaries = group_topic_scores({
            "u1": {"cat-1": -10, "cat-2": 50},
            "u2": {"cat-1": 15},
        })

        assert [s["topicId"] for s in summaries] == ["cat-1", "cat-2"]
        first = summaries[0]
        assert first["values"] == [{"userId": "u1", "score": -10}, {"userId": "u2", "score": 15}]
        assert (first["min"], first["max"], first["range"]) == (-10, 15, 25)
        assert first["label"] == "safe"
        assert summaries[1]["range"] == 0

    def test_no_members(self):
        assert group_topic_scores({}) == []


class TestFindCompatibles:
    def test_largest_set_around_a_pivot(self):
        result = find_compatibles({"a": 0, "b": 20, "c": 40, "d": -90})

        assert result["compatibleUserIds"] == ["b", "a", "c"]
        assert result["size"] == 3
        assert result["totalMembers"] == 4

    def test_members_without_scores_ignored(self):
        result = find_compatibles({"a": 10, "b": None, "c": 90})

        assert result["totalMembers"] == 2
        assert result["size"] == 1
        assert result["compatibleUserIds"] == ["a"]

    def test_empty(self):
        assert find_compatibles({}) == {"compatibleUserIds": [], "size": 0, "totalMembers": 0}
