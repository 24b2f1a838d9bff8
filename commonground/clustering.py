"""Opinion clustering for groups

Places group members by their category score vectors.
Uses PCA for the 2D map and k-means for clustering.

Algorithm:
1. Build category vectors (members x categories), 0 where unanswered
2. PCA to 2D for visualization
3. K-means: one cluster below 5 members, otherwise min(3, n)
"""

from typing import Any, Dict, List, Mapping, Sequence

import numpy as np
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA

from config import get_logger

logger = get_logger(__name__).bind(component="group_clustering")

MIN_MEMBERS_FOR_SPLIT = 5
MAX_CLUSTERS = 3


def build_category_vector(
    topic_scores: Mapping[str, float],
    category_topics: Sequence[str],
) -> List[float]:
    """Fixed-length vector of one member's scores

    Args:
        topic_scores: topicId -> meanScore
        category_topics: Topic id for each vector slot, in category id order

    Returns:
        One value per slot, 0.0 where the member has no score
    """
    return [float(topic_scores.get(topic_id, 0.0)) for topic_id in category_topics]


def build_category_vectors(
    scores_by_user: Mapping[str, Mapping[str, float]],
    category_topics: Sequence[str],
) -> Dict[str, List[float]]:
    """userId -> category vector, skipping members with no scores at all"""
    return {
        user_id: build_category_vector(scores, category_topics)
        for user_id, scores in scores_by_user.items()
        if scores
    }


def compute_group_clusters(vectors: Mapping[str, Sequence[float]]) -> Dict[str, Any]:
    """Compute opinion clusters from category vectors.

    Args:
        vectors: userId -> category vector (all the same length)

    Returns:
        Dict with clustering results:
            - pca2d: [{userId, x, y}] for each member
            - clusters: [{id: "cluster1", centroid: [...], members: [userId]}]
        Both lists are empty when there are no vectors.
    """
    if not vectors:
        return {"pca2d": [], "clusters": []}

    user_ids = list(vectors.keys())
    matrix = np.asarray([vectors[user_id] for user_id in user_ids], dtype=float)

    positions = _compute_pca(matrix)

    k = _determine_k(len(user_ids))
    labels, centroids = _compute_kmeans(matrix, k)

    clusters = [
        {"id": f"cluster{i + 1}", "centroid": centroids[i].tolist(), "members": []}
        for i in range(k)
    ]
    for i, label in enumerate(labels):
        clusters[int(label)]["members"].append(user_ids[i])

    logger.info("computed group clusters", n_members=len(user_ids), n_categories=matrix.shape[1], k=k)

    return {
        "pca2d": [
            {"userId": user_id, "x": float(positions[i, 0]), "y": float(positions[i, 1])}
            for i, user_id in enumerate(user_ids)
        ],
        "clusters": clusters,
    }


def _compute_pca(matrix: np.ndarray) -> np.ndarray:
    """Project category vectors to 2D using PCA.

    Args:
        matrix: Category vectors (n_members, n_categories)

    Returns:
        2D positions (n_members, 2)
    """
    n_rows, n_cols = matrix.shape

    # Single member, single category, or identical members: nothing to separate
    if n_rows < 2 or n_cols < 1 or np.allclose(matrix, matrix[0]):
        return np.zeros((n_rows, 2))

    pca = PCA(n_components=min(2, n_rows, n_cols))
    positions = pca.fit_transform(matrix)

    # Pad to 2D if only 1 component
    if positions.shape[1] == 1:
        positions = np.hstack([positions, np.zeros((positions.shape[0], 1))])

    return positions


def _determine_k(n_members: int) -> int:
    """Number of clusters.

    Examples:
        - 4 members -> 1
        - 5 members -> 3
    """
    if n_members < MIN_MEMBERS_FOR_SPLIT:
        return 1
    return min(MAX_CLUSTERS, n_members)


def _compute_kmeans(matrix: np.ndarray, k: int):
    """Run k-means on the category vectors.

    Returns:
        (labels, centroids) with labels in 0..k-1 and centroids (k, n_categories)
    """
    if k == 1:
        return np.zeros(matrix.shape[0], dtype=int), matrix.mean(axis=0, keepdims=True)

    # Fewer distinct points than clusters: k-means cannot fill every cluster
    k_fit = min(k, np.unique(matrix, axis=0).shape[0])

    kmeans = KMeans(
        n_clusters=k_fit,
        n_init=10,        # Number of random initializations
        max_iter=100,     # Max iterations per run
        random_state=42,  # Reproducibility
    )
    labels = kmeans.fit_predict(matrix)

    centroids = np.zeros((k, matrix.shape[1]))
    centroids[:k_fit] = kmeans.cluster_centers_
    return labels, centroids
