"""Group-level scoring: dispersion, topic labels, agreement and compatibility"""

from typing import Dict, List, Literal, Mapping, Optional, Sequence

import numpy as np

from commonground.constants import (
    COMPATIBILITY_THRESHOLD,
    GROUP_AGREEMENT_BAND,
    HOT_THRESHOLD,
    SAFE_TOLERANCE,
)

TopicLabel = Literal["safe", "hot"]


def score_dispersion(scores: Sequence[float]) -> float:
    """Spread of a topic's scores (max - min); 0 with fewer than two scores"""
    if len(scores) < 2:
        return 0.0
    return float(max(scores) - min(scores))


def is_safe(scores: Sequence[float], tolerance: float = SAFE_TOLERANCE) -> bool:
    return score_dispersion(scores) <= tolerance


def is_hot(scores: Sequence[float]) -> bool:
    return score_dispersion(scores) >= HOT_THRESHOLD


def classify_topic(scores: Sequence[float], tolerance: float = SAFE_TOLERANCE) -> TopicLabel:
    """Binary label: safe when the dispersion is within tolerance, otherwise hot"""
    return "safe" if is_safe(scores, tolerance) else "hot"


def agreement_pct(scores: Sequence[float], band: float = GROUP_AGREEMENT_BAND) -> float:
    """Share of scores within band of the median, 0 for no scores"""
    if not scores:
        return 0.0
    values = np.asarray(scores, dtype=float)
    median = float(np.median(values))
    agreed = int(np.sum(np.abs(values - median) <= band))
    return agreed / len(values)


def group_topic_scores(
    scores_by_user: Mapping[str, Mapping[str, float]],
    tolerance: float = SAFE_TOLERANCE,
) -> List[Dict]:
    """Per-topic summary of the members' mean scores

    Args:
        scores_by_user: userId -> {topicId -> meanScore}

    Returns:
        One entry per topic any member answered, ordered by topic id:
        {topicId, values: [{userId, score}], min, max, range, label, agreementPct}
    """
    by_topic: Dict[str, List[Dict]] = {}
    for user_id, topic_scores in scores_by_user.items():
        for topic_id, score in topic_scores.items():
            by_topic.setdefault(topic_id, []).append({"userId": user_id, "score": score})

    summaries = []
    for topic_id in sorted(by_topic):
        values = by_topic[topic_id]
        scores = [value["score"] for value in values]
        low, high = min(scores), max(scores)
        summaries.append({
            "topicId": topic_id,
            "values": values,
            "min": low,
            "max": high,
            "range": high - low,
            "label": classify_topic(scores, tolerance),
            "agreementPct": agreement_pct(scores),
        })
    return summaries


def find_compatibles(
    scores: Mapping[str, Optional[float]],
    threshold: float = COMPATIBILITY_THRESHOLD,
) -> Dict:
    """Largest set of members within threshold of a single pivot member

    Members without a score are ignored. Every member is tried as pivot;
    the first pivot (in input order) reaching the largest set wins.

    Returns:
        {compatibleUserIds, size, totalMembers}
    """
    valid = [(user_id, score) for user_id, score in scores.items() if score is not None]

    best: List[str] = []
    for pivot_id, pivot_score in valid:
        subset = [pivot_id] + [
            user_id
            for user_id, score in valid
            if user_id != pivot_id and abs(pivot_score - score) <= threshold
        ]
        if len(subset) > len(best):
            best = subset

    return {
        "compatibleUserIds": best,
        "size": len(best),
        "totalMembers": len(valid),
    }
