"""
Seeded k-means over cosine distance.

Pure functions of the input vectors, K and the seed: the same inputs always
produce the same partition.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.metrics.pairwise import cosine_distances

logger = logging.getLogger(__name__)


@dataclass
class KMeansResult:
    assignments: np.ndarray  # cluster index per input vector
    centroids: np.ndarray
    iterations: int
    converged: bool

    @property
    def k(self) -> int:
        return len(self.centroids)


def _distances(vectors: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    return np.clip(cosine_distances(vectors, centroids), 0.0, None)


def kmeans_plus_plus(vectors: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    Choose k distinct seed indices.

    Each new seed is drawn with probability proportional to the squared
    distance to its nearest already-chosen seed. When every remaining point
    sits on a chosen seed, an unchosen index is drawn uniformly instead.
    """
    n = len(vectors)
    chosen = [int(rng.integers(n))]
    closest = _distances(vectors, vectors[chosen[0]][None, :]).ravel()

    while len(chosen) < k:
        weights = closest ** 2
        weights[chosen] = 0.0
        total = weights.sum()
        if total <= 0:
            remaining = [i for i in range(n) if i not in chosen]
            index = int(rng.choice(remaining))
        else:
            index = int(rng.choice(n, p=weights / total))
        chosen.append(index)
        closest = np.minimum(closest, _distances(vectors, vectors[index][None, :]).ravel())

    return np.array(chosen)


def assign(vectors: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Nearest centroid per vector; np.argmin keeps the lowest index on ties."""
    return np.argmin(_distances(vectors, centroids), axis=1)


def reseed_empty(vectors: np.ndarray, labels: np.ndarray, centroids: np.ndarray, k: int):
    """
    Give every empty cluster one point.

    The point moved is the one furthest from its own centroid among clusters
    that have more than one member. Requires len(vectors) >= k.
    """
    labels = labels.copy()
    centroids = centroids.copy()
    n = len(vectors)
    for cluster in range(k):
        if np.any(labels == cluster):
            continue
        sizes = np.bincount(labels, minlength=k)
        own_distance = _distances(vectors, centroids)[np.arange(n), labels]
        candidates = np.where(sizes[labels] > 1)[0]
        index = int(candidates[np.argmax(own_distance[candidates])])
        logger.debug(f"Re-seeding empty cluster {cluster} with point {index}")
        labels[index] = cluster
        centroids[cluster] = vectors[index]
    return labels, centroids


def recompute_centroids(vectors: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    return np.vstack([vectors[labels == cluster].mean(axis=0) for cluster in range(k)])


def kmeans(vectors, k: int, max_iterations: int = 100, seed: Optional[int] = None) -> KMeansResult:
    """
    Partition vectors into k non-empty clusters.

    Args:
        vectors: (N, D) array-like
        k: Requested cluster count; clamped to N
        max_iterations: Iteration cap
        seed: Seed for the k-means++ draws

    Returns:
        KMeansResult with one assignment per vector

    Raises:
        ValueError: for empty input or k < 1
    """
    vectors = np.asarray(vectors, dtype=float)
    if vectors.ndim != 2 or len(vectors) == 0:
        raise ValueError("kmeans needs a non-empty 2-D array of vectors")
    if k < 1:
        raise ValueError("k must be at least 1")

    n = len(vectors)
    k = min(k, n)
    rng = np.random.default_rng(seed)
    centroids = vectors[kmeans_plus_plus(vectors, k, rng)].copy()

    labels = None
    converged = False
    iterations = 0
    for iterations in range(1, max(1, max_iterations) + 1):
        new_labels = assign(vectors, centroids)
        new_labels, centroids = reseed_empty(vectors, new_labels, centroids, k)
        if labels is not None and np.array_equal(new_labels, labels):
            converged = True
            break
        labels = new_labels
        centroids = recompute_centroids(vectors, labels, k)

    if not converged:
        logger.debug(f"kmeans hit the iteration cap ({max_iterations}) without converging")

    return KMeansResult(
        assignments=labels,
        centroids=recompute_centroids(vectors, labels, k),
        iterations=iterations,
        converged=converged,
    )
