"""
Topic clustering of embedded articles.

Wraps the seeded k-means in the article domain: picks K, turns assignments
into TopicClusters, and labels each cluster from its most central article.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from sklearn.metrics.pairwise import cosine_distances

from clustering.kmeans import kmeans
from common.config import get_env_int
from common.errors import ConfigurationError
from common.performance import track_performance
from models.entities import Article, TopicCluster
from summarization.text_processing import truncate

logger = logging.getLogger(__name__)

LABEL_MAX_CHARS = 80
KEYWORD_COUNT = 5

STOPWORDS = {
    'this', 'that', 'with', 'from', 'what', 'when', 'where', 'which', 'about', 'have', 'will',
    'your', 'their', 'there', 'they', 'these', 'those', 'some', 'were', 'after', 'before',
    'could', 'should', 'would', 'into', 'over', 'than', 'then', 'them', 'been', 'more', 'most',
    'also', 'just', 'like', 'said', 'says', 'year', 'years', 'news', 'today', 'week', 'new',
}


@dataclass
class ClusteringConfig:
    """Cluster count policy and k-means settings, with environment overrides."""
    target_size: int = 5
    min_k: int = 3
    max_k: int = 15
    max_iterations: int = 100
    seed: Optional[int] = 42

    @classmethod
    def from_env(cls) -> "ClusteringConfig":
        return cls(
            target_size=get_env_int('CLUSTER_TARGET_SIZE', 5),
            min_k=get_env_int('CLUSTER_MIN_K', 3),
            max_k=get_env_int('CLUSTER_MAX_K', 15),
            max_iterations=get_env_int('CLUSTER_MAX_ITERATIONS', 100),
            seed=get_env_int('CLUSTER_SEED', 42),
        )

    def validate(self) -> None:
        if self.target_size < 1:
            raise ConfigurationError("CLUSTER_TARGET_SIZE must be at least 1")
        if not 1 <= self.min_k <= self.max_k:
            raise ConfigurationError("Cluster bounds must satisfy 1 <= min_k <= max_k")


def select_k(n: int, config: Optional[ClusteringConfig] = None) -> int:
    """About `target_size` articles per cluster, clamped to [min_k, max_k] and then to n."""
    config = config or ClusteringConfig()
    if n <= 0:
        return 0
    k = int(n / config.target_size + 0.5)
    k = max(config.min_k, min(config.max_k, k))
    return min(k, n)


def extract_keywords(articles: List[Article], count: int = KEYWORD_COUNT) -> List[str]:
    """Most frequent words of 4+ letters across titles and the opening of each body."""
    counts = Counter()
    for article in articles:
        text = f"{article.title} {article.cleaned_text[:200]}".lower()
        for word in re.findall(r"[a-z][a-z0-9\-]{3,}", text):
            if word not in STOPWORDS:
                counts[word] += 1
    return [word for word, _ in counts.most_common(count)]


class TopicClusterer:
    """Partitions embedded articles into K topic clusters."""

    def __init__(self, config: Optional[ClusteringConfig] = None):
        self.config = config or ClusteringConfig()

    @track_performance(name="cluster")
    def cluster(self, articles: List[Article], k: Optional[int] = None) -> List[TopicCluster]:
        """
        Cluster articles by their embeddings.

        Args:
            articles: Articles that all carry an embedding of the same length
            k: Cluster count; chosen by `select_k` when omitted

        Returns:
            Clusters ordered largest first; every article appears in exactly one

        Raises:
            ValueError: if an article lacks an embedding or dimensions differ
        """
        if not articles:
            return []

        missing = [a.id for a in articles if a.embedding is None]
        if missing:
            raise ValueError(f"{len(missing)} articles have no embedding")
        dimensions = {len(a.embedding) for a in articles}
        if len(dimensions) != 1:
            raise ValueError(f"Embeddings have mixed dimensions: {sorted(dimensions)}")

        vectors = np.array([a.embedding for a in articles], dtype=float)
        k = select_k(len(articles), self.config) if k is None else min(max(1, k), len(articles))
        result = kmeans(vectors, k, max_iterations=self.config.max_iterations, seed=self.config.seed)
        logger.info(f"Clustered {len(articles)} articles into {result.k} clusters "
                    f"in {result.iterations} iterations (converged={result.converged})")

        clusters = []
        for index in range(result.k):
            member_positions = np.where(result.assignments == index)[0]
            members = [articles[i] for i in member_positions]
            centroid = result.centroids[index]

            distances = cosine_distances(vectors[member_positions], centroid[None, :]).ravel()
            representative = members[int(np.argmin(distances))]

            themes = Counter(a.theme_name for a in members if a.theme_name)
            clusters.append(TopicCluster(
                label=truncate(representative.title, LABEL_MAX_CHARS) or f"Topic {index + 1}",
                article_ids=[a.id for a in members],
                keywords=extract_keywords(members),
                theme_name=themes.most_common(1)[0][0] if themes else None,
                representative_id=representative.id,
                centroid=centroid.tolist(),
            ))

        clusters.sort(key=lambda c: -len(c.article_ids))
        self._dedupe_labels(clusters)

        by_id: Dict[str, Article] = {a.id: a for a in articles}
        for cluster in clusters:
            for article_id in cluster.article_ids:
                by_id[article_id].cluster_label = cluster.label
        return clusters

    @staticmethod
    def _dedupe_labels(clusters: List[TopicCluster]) -> None:
        seen = Counter()
        for cluster in clusters:
            seen[cluster.label] += 1
            if seen[cluster.label] > 1:
                cluster.label = f"{cluster.label} ({seen[cluster.label]})"
