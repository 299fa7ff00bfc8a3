"""
Cluster quality measurements.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from sklearn.metrics import silhouette_score
from sklearn.metrics.pairwise import cosine_similarity

from models.entities import Article, TopicCluster

logger = logging.getLogger(__name__)


@dataclass
class CoherenceMetrics:
    silhouette: Optional[float]
    avg_intra_similarity: float
    avg_inter_centroid_similarity: float
    per_cluster_similarity: Dict[str, float] = field(default_factory=dict)

    @property
    def grade(self) -> str:
        score = self.silhouette
        if score is None:
            return "N/A - too few clusters to score"
        if score >= 0.71:
            return "Excellent - strong cluster structure"
        if score >= 0.51:
            return "Good - reasonable cluster structure"
        if score >= 0.26:
            return "Fair - weak cluster structure"
        if score >= 0.0:
            return "Poor - no substantial cluster structure"
        return "Very poor - forced clustering"


def cluster_coherence(clusters: List[TopicCluster], articles: Dict[str, Article]) -> CoherenceMetrics:
    """
    Measure how tight and how separated the clusters are.

    Args:
        clusters: Output of TopicClusterer.cluster
        articles: Article id -> Article with embeddings
    """
    vectors = []
    labels = []
    per_cluster = {}
    centroids = []
    for index, cluster in enumerate(clusters):
        member_vectors = np.array([articles[i].embedding for i in cluster.article_ids], dtype=float)
        centroid = member_vectors.mean(axis=0)
        centroids.append(centroid)
        per_cluster[cluster.label] = float(cosine_similarity(member_vectors, centroid[None, :]).mean())
        vectors.extend(member_vectors)
        labels.extend([index] * len(member_vectors))

    if not vectors:
        return CoherenceMetrics(silhouette=None, avg_intra_similarity=0.0, avg_inter_centroid_similarity=0.0)

    silhouette = None
    if 2 <= len(clusters) <= len(vectors) - 1:
        silhouette = float(silhouette_score(np.array(vectors), np.array(labels), metric='cosine'))

    inter = 0.0
    if len(centroids) > 1:
        similarities = cosine_similarity(np.array(centroids))
        upper = similarities[np.triu_indices(len(centroids), k=1)]
        inter = float(upper.mean())

    metrics = CoherenceMetrics(
        silhouette=silhouette,
        avg_intra_similarity=float(np.mean(list(per_cluster.values()))),
        avg_inter_centroid_similarity=inter,
        per_cluster_similarity=per_cluster,
    )
    logger.info(f"Cluster coherence: silhouette={silhouette} ({metrics.grade})")
    return metrics
