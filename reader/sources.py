"""
Operator-facing management of sources, manual submissions and themes.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urlparse, urlunparse

from models.entities import (
    CandidateItem, Source, Theme, MANUAL_SOURCE_ID, MANUAL_SOURCE_URL, utcnow,
)
from storage.base import Store

logger = logging.getLogger(__name__)

DEFAULT_THEMES = [
    Theme(
        name="GenAI",
        description="Large language models, AI research, developer tools and applications",
        keywords=["LLM", "large language model", "GPT", "Claude", "Gemini", "Llama", "OpenAI", "Anthropic",
                  "AI agent", "fine-tuning", "embeddings", "machine learning", "artificial intelligence",
                  "prompt engineering", "benchmark", "model training"],
    ),
    Theme(
        name="Technology",
        description="Software development, cloud infrastructure, programming and general technology news",
        keywords=["software engineering", "programming", "cloud", "Kubernetes", "database", "open source",
                  "Python", "Rust", "JavaScript", "API", "security", "vulnerability", "infrastructure"],
    ),
    Theme(
        name="Gaming",
        description="Video games, game development, esports and entertainment technology",
        keywords=["video games", "gaming", "game development", "PlayStation", "Xbox", "Nintendo", "Steam",
                  "esports", "Unreal Engine", "Unity", "console", "GPU"],
    ),
    Theme(
        name="Business",
        description="Company strategy, funding, acquisitions, markets and regulation",
        keywords=["funding", "acquisition", "IPO", "revenue", "earnings", "valuation", "startup",
                  "layoffs", "antitrust", "regulation", "investment", "market share"],
    ),
    Theme(
        name="Science",
        description="Research results, space, climate, health and energy",
        keywords=["research", "study", "scientists", "NASA", "climate", "energy", "physics", "biology",
                  "medicine", "space", "telescope", "vaccine"],
    ),
]


def normalize_url(url: str) -> str:
    """Lower-case scheme and host, drop fragments and trailing slashes."""
    url = (url or "").strip()
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute URL: {url!r}")
    path = parsed.path.rstrip('/') or ''
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, ''))


class SourceManager:
    """Registration and housekeeping for sources, manual URLs and themes."""

    def __init__(self, store: Store):
        self.store = store

    def add_source(self, url: str, title: str = "", description: str = "") -> Source:
        normalized = normalize_url(url)
        source = self.store.add_source(Source(url=normalized, title=title, description=description))
        logger.info(f"Registered source {normalized}")
        return source

    def remove_source(self, url_or_id: str) -> bool:
        source = self._resolve(url_or_id)
        if not source:
            return False
        return self.store.delete_source(source.id)

    def set_active(self, url_or_id: str, active: bool) -> bool:
        source = self._resolve(url_or_id)
        if not source:
            return False
        return self.store.set_source_active(source.id, active)

    def list_sources(self, active_only: bool = False) -> List[Source]:
        return [s for s in self.store.list_sources(active_only=active_only) if s.id != MANUAL_SOURCE_ID]

    def _resolve(self, url_or_id: str) -> Optional[Source]:
        source = self.store.get_source(url_or_id)
        if source:
            return source
        try:
            return self.store.get_source_by_url(normalize_url(url_or_id))
        except ValueError:
            return None

    def _manual_source(self) -> Source:
        source = self.store.get_source(MANUAL_SOURCE_ID)
        if source:
            return source
        # Inactive so the aggregator never tries to fetch it
        return self.store.add_source(Source(
            id=MANUAL_SOURCE_ID, url=MANUAL_SOURCE_URL, title="Manual submissions", active=False,
        ))

    def submit_manual_url(self, url: str, title: str = "") -> Optional[CandidateItem]:
        """
        Queue an ad-hoc URL for classification.

        Returns:
            The new CandidateItem, or None if the URL was already submitted
        """
        normalized = normalize_url(url)
        source = self._manual_source()
        item = CandidateItem(source_id=source.id, link=normalized, title=title or normalized,
                             published=utcnow())
        created, _ = self.store.add_candidate_items([item])
        if not created:
            logger.info(f"Manual URL already queued: {normalized}")
            return None
        logger.info(f"Queued manual URL {normalized}")
        return item

    def feed_stats(self) -> Dict[str, object]:
        stats = self.store.item_stats()
        sources = self.list_sources()
        stats['sources'] = len(sources)
        stats['active_sources'] = sum(1 for s in sources if s.active)
        stats['failing_sources'] = sum(1 for s in sources if s.error_count > 0)
        return stats

    def add_theme(self, name: str, description: str = "", keywords: Optional[List[str]] = None) -> Theme:
        return self.store.add_theme(Theme(name=name, description=description, keywords=list(keywords or [])))

    def seed_default_themes(self) -> int:
        """Install the default themes that are not already present. Returns how many were added."""
        added = 0
        for theme in DEFAULT_THEMES:
            if self.store.get_theme_by_name(theme.name) is None:
                self.store.add_theme(Theme(name=theme.name, description=theme.description,
                                           keywords=list(theme.keywords)))
                added += 1
        return added
