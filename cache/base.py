"""
Cache interface for fetched content and generated summaries.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple


class CacheInterface(ABC):
    """
    Abstract base class for cache implementations.

    Entries carry the time they were written. Freshness is decided by the
    caller on every lookup through `max_age`, so the same entry can be fresh
    for one consumer and stale for another. A stale entry is reported as not
    found but is left in place; entries only disappear through `clear()`.
    """

    @abstractmethod
    def get(self, key: str, max_age: Optional[float] = None) -> Tuple[Optional[Any], bool]:
        """
        Get a value from the cache.

        Args:
            key: Cache key
            max_age: Maximum entry age in seconds; None accepts any age

        Returns:
            (value, found). Absent and expired keys both return (None, False).
        """

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """
        Store a value, overwriting any previous entry (last write wins).

        Args:
            key: Cache key
            value: Value to store
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
