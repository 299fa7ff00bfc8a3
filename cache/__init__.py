"""Content cache: key/TTL storage for fetched bodies, summaries and scores."""

from cache.base import CacheInterface
from cache.memory_cache import MemoryCache
from cache.tiered_cache import TieredCache
from cache.content_cache import ContentCache

__all__ = ['CacheInterface', 'MemoryCache', 'TieredCache', 'ContentCache']
