"""
Tests for pairwise alignment between two users
"""

from commonground.constants import SAFE_TOLERANCE
from commonground.pairwise import compute_pairwise


class TestComputePairwise:
    def test_half_agreement_with_tight_tolerance(self):
        result = compute_pairwise({"t1": 50, "t2": -80}, {"t1": 55, "t2": 80}, tolerance=10)

        assert result.pairwise_pct == 0.5
        assert result.shared_topics == 2
        assert result.agreed_count == 1
        assert result.safe_topics == ["t1"]
        assert result.hot_topics == ["t2"]

    def test_disjoint_topics_score_zero(self):
        result = compute_pairwise({"t1": 10}, {"t2": 10})

        assert result.pairwise_pct == 0.0
        assert result.shared_topics == 0
        assert result.safe_topics == []

    def test_empty_users_score_zero(self):
        assert compute_pairwise({}, {}).pairwise_pct == 0.0

    def test_difference_equal_to_tolerance_agrees(self):
        result = compute_pairwise({"t1": 0}, {"t1": SAFE_TOLERANCE})
        assert result.pairwise_pct == 1.0

    def test_only_shared_topics_count(self):
        result = compute_pairwise({"t1": 0, "t2": 100, "t3": 0}, {"t1": 5, "t3": -90, "t4": 0})

        assert result.shared_topics == 2
        assert result.safe_topics == ["t1"]
        assert result.hot_topics == ["t3"]

    def test_symmetric(self):
        a = {"t1": 30, "t2": -20, "t3": 90}
        b = {"t1": 40, "t2": 60, "t3": 70}
        assert compute_pairwise(a, b).to_dict() == compute_pairwise(b, a).to_dict()

    def test_to_dict_uses_api_field_names(self):
        data = compute_pairwise({"t1": 0}, {"t1": 0}).to_dict()
        assert data == {
            "pairwisePct": 1.0,
            "sharedTopics": 1,
            "agreedCount": 1,
            "safeTopics": ["t1"],
            "hotTopics": [],
        }
