"""
Fetch service interface: conditional feed retrieval and article bodies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class FetchStatus(Enum):
    """Outcome of a conditional feed fetch."""
    OK = "ok"
    NOT_MODIFIED = "not_modified"


@dataclass
class Validators:
    """Conditional-request tokens, round-tripped verbatim between passes."""
    last_modified: Optional[str] = None
    etag: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not (self.last_modified or self.etag)


@dataclass
class FeedEntry:
    """One raw item from a feed, before it becomes a CandidateItem."""
    link: str
    title: str = ""
    description: str = ""
    published: Optional[datetime] = None
    guid: Optional[str] = None


@dataclass
class FetchResult:
    status: FetchStatus
    entries: List[FeedEntry] = field(default_factory=list)
    validators: Validators = field(default_factory=Validators)
    feed_title: str = ""
    feed_description: str = ""

    @property
    def not_modified(self) -> bool:
        return self.status is FetchStatus.NOT_MODIFIED


class Fetcher(ABC):
    """Capability interface for anything that can retrieve feeds and pages."""

    @abstractmethod
    def fetch(self, url: str, validators: Optional[Validators] = None) -> FetchResult:
        """
        Conditionally fetch and parse a feed.

        Args:
            url: Feed URL
            validators: Tokens from the previous successful fetch

        Returns:
            FetchResult with entries, or status NOT_MODIFIED

        Raises:
            FetchError: on network, HTTP or parse failure
        """

    @abstractmethod
    def fetch_article_body(self, url: str) -> str:
        """
        Fetch a page and return its cleaned main text.

        Raises:
            FetchError: when the page cannot be retrieved or has no usable text
        """
