"""Pairwise alignment between two users

Compares two users' topic scores for one survey version. Only topics both
users answered count; each shared topic is safe (scores within the
tolerance) or hot. Pure and read-only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from commonground.constants import SAFE_TOLERANCE


@dataclass
class PairwiseResult:
    pairwise_pct: float
    shared_topics: int
    agreed_count: int
    safe_topics: List[str] = field(default_factory=list)
    hot_topics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pairwisePct": self.pairwise_pct,
            "sharedTopics": self.shared_topics,
            "agreedCount": self.agreed_count,
            "safeTopics": list(self.safe_topics),
            "hotTopics": list(self.hot_topics),
        }


def compute_pairwise(
    scores_a: Mapping[str, float],
    scores_b: Mapping[str, float],
    tolerance: float = SAFE_TOLERANCE,
) -> PairwiseResult:
    """Compare two topicId -> meanScore maps

    Args:
        scores_a: First user's scores
        scores_b: Second user's scores
        tolerance: Largest absolute difference still counted as agreement

    Returns:
        PairwiseResult; pairwise_pct is 0 when no topics are shared

    Examples:
        >>> compute_pairwise({"t1": 50, "t2": -80}, {"t1": 55, "t2": 80}, tolerance=10).pairwise_pct
        0.5
    """
    shared = sorted(set(scores_a) & set(scores_b))

    safe_topics: List[str] = []
    hot_topics: List[str] = []
    for topic_id in shared:
        if abs(scores_a[topic_id] - scores_b[topic_id]) <= tolerance:
            safe_topics.append(topic_id)
        else:
            hot_topics.append(topic_id)

    agreed = len(safe_topics)
    pct = agreed / len(shared) if shared else 0.0

    return PairwiseResult(
        pairwise_pct=pct,
        shared_topics=len(shared),
        agreed_count=agreed,
        safe_topics=safe_topics,
        hot_topics=hot_topics,
    )
