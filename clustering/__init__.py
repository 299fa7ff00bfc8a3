"""Topic clustering of article embeddings."""

from clustering.base import ClusteringConfig, TopicClusterer, select_k
from clustering.kmeans import kmeans, KMeansResult

__all__ = ['ClusteringConfig', 'TopicClusterer', 'select_k', 'kmeans', 'KMeansResult']
