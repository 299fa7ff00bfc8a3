"""
Persistence interface used by every pipeline stage.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from models.entities import Article, CandidateItem, Citation, Digest, Source, Theme


class Store(ABC):
    """
    Abstract store for the pipeline's entities.

    Implementations must be safe to call from multiple worker threads.
    """

    @abstractmethod
    def ping(self) -> None:
        """Verify the store is reachable. Raises ConfigurationError if not."""

    # Sources

    @abstractmethod
    def add_source(self, source: Source) -> Source:
        """Insert a source, or return the existing one with the same URL."""

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[Source]:
        pass

    @abstractmethod
    def get_source_by_url(self, url: str) -> Optional[Source]:
        pass

    @abstractmethod
    def list_sources(self, active_only: bool = False) -> List[Source]:
        pass

    @abstractmethod
    def set_source_active(self, source_id: str, active: bool) -> bool:
        pass

    @abstractmethod
    def delete_source(self, source_id: str) -> bool:
        pass

    @abstractmethod
    def record_fetch_success(self, source_id: str, last_modified: Optional[str],
                             etag: Optional[str], fetched_at: datetime,
                             title: str = "", description: str = "") -> None:
        """
        Store new validators and reset the error count to zero.

        A non-empty feed title or description fills in the source's own
        only where that is still empty.
        """

    @abstractmethod
    def record_fetch_error(self, source_id: str, error: str) -> None:
        """Increment the error count and remember the error message."""

    # Candidate items

    @abstractmethod
    def add_candidate_items(self, items: Iterable[CandidateItem]) -> Tuple[int, int]:
        """Insert items, skipping links already known for the source. Returns (created, duplicates)."""

    @abstractmethod
    def get_candidate_item(self, item_id: str) -> Optional[CandidateItem]:
        pass

    @abstractmethod
    def list_candidate_items(self, status: Optional[str] = None, source_id: Optional[str] = None,
                             since: Optional[datetime] = None, until: Optional[datetime] = None,
                             limit: Optional[int] = None) -> List[CandidateItem]:
        pass

    @abstractmethod
    def set_item_status(self, item_id: str, status: str) -> bool:
        """
        Move an item to a new status.

        A processed item never changes status again; returns False when the
        transition is refused or the item does not exist.
        """

    @abstractmethod
    def item_stats(self) -> Dict[str, object]:
        pass

    # Articles

    @abstractmethod
    def save_article(self, article: Article) -> None:
        pass

    @abstractmethod
    def get_article(self, article_id: str) -> Optional[Article]:
        pass

    @abstractmethod
    def list_articles(self, since: Optional[datetime] = None, until: Optional[datetime] = None,
                      theme_id: Optional[str] = None, limit: Optional[int] = None) -> List[Article]:
        pass

    @abstractmethod
    def update_article_embedding(self, article_id: str, embedding: List[float], embedding_hash: str) -> None:
        pass

    @abstractmethod
    def update_cluster_labels(self, labels: Dict[str, str]) -> None:
        """Set cluster labels for many articles at once (article id -> label)."""

    # Themes

    @abstractmethod
    def add_theme(self, theme: Theme) -> Theme:
        pass

    @abstractmethod
    def list_themes(self, enabled_only: bool = True) -> List[Theme]:
        pass

    @abstractmethod
    def get_theme_by_name(self, name: str) -> Optional[Theme]:
        pass

    @abstractmethod
    def set_theme_enabled(self, theme_id: str, enabled: bool) -> bool:
        pass

    # Digests

    @abstractmethod
    def save_digest(self, digest: Digest) -> None:
        """Persist a digest together with its citations. Digests are immutable once stored."""

    @abstractmethod
    def get_digest(self, digest_id: str) -> Optional[Digest]:
        pass

    @abstractmethod
    def list_digests(self, since: Optional[datetime] = None, until: Optional[datetime] = None,
                     limit: Optional[int] = None) -> List[Digest]:
        pass

    @abstractmethod
    def list_citations(self, digest_id: str) -> List[Citation]:
        pass
