"""
Typed helpers over a cache backend for the pipeline's three kinds of entry.

- article bodies, keyed by URL
- article summaries, keyed by URL plus a fingerprint of the article text, so
  a changed article invalidates its summary without any explicit delete
- theme scores, keyed by text fingerprint plus a fingerprint of the theme set
"""

import hashlib
import json
import logging
from typing import Iterable, List, Optional

from cache.base import CacheInterface
from cache.memory_cache import MemoryCache
from common.config import CacheConfig
from models.entities import ArticleSummary, Theme, ThemeMatch

logger = logging.getLogger(__name__)

ARTICLE_TTL = 24 * 3600
SUMMARY_TTL = 7 * 24 * 3600


def theme_set_fingerprint(themes: Iterable[Theme]) -> str:
    payload = sorted(
        [theme.id, theme.name.lower(), theme.description, sorted(k.lower() for k in theme.keywords)]
        for theme in themes
    )
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode('utf-8')).hexdigest()[:32]


class ContentCache:
    """Article bodies, summaries and theme scores over one CacheInterface."""

    def __init__(self, backend: Optional[CacheInterface] = None,
                 article_ttl: float = ARTICLE_TTL, summary_ttl: float = SUMMARY_TTL,
                 score_ttl: Optional[float] = SUMMARY_TTL):
        self.backend = backend if backend is not None else MemoryCache()
        self.article_ttl = article_ttl
        self.summary_ttl = summary_ttl
        self.score_ttl = score_ttl

    @classmethod
    def from_config(cls, config: CacheConfig) -> "ContentCache":
        from cache.tiered_cache import TieredCache
        return cls(TieredCache(disk_path=config.cache_dir),
                   article_ttl=config.article_ttl, summary_ttl=config.summary_ttl)

    @staticmethod
    def article_key(url: str) -> str:
        return f"article:{url}"

    @staticmethod
    def summary_key(url: str, content_hash: str) -> str:
        return f"summary:{url}:{content_hash}"

    @staticmethod
    def score_key(content_hash: str, themes: Iterable[Theme]) -> str:
        return f"scores:{content_hash}:{theme_set_fingerprint(themes)}"

    def get_article_body(self, url: str) -> Optional[str]:
        value, found = self.backend.get(self.article_key(url), self.article_ttl)
        return value if found else None

    def put_article_body(self, url: str, text: str) -> None:
        self.backend.put(self.article_key(url), text)

    def get_summary(self, url: str, content_hash: str) -> Optional[ArticleSummary]:
        value, found = self.backend.get(self.summary_key(url, content_hash), self.summary_ttl)
        return value if found else None

    def put_summary(self, url: str, content_hash: str, summary: ArticleSummary) -> None:
        self.backend.put(self.summary_key(url, content_hash), summary)

    def get_theme_scores(self, content_hash: str, themes: List[Theme]) -> Optional[List[ThemeMatch]]:
        value, found = self.backend.get(self.score_key(content_hash, themes), self.score_ttl)
        return value if found else None

    def put_theme_scores(self, content_hash: str, themes: List[Theme], scores: List[ThemeMatch]) -> None:
        self.backend.put(self.score_key(content_hash, themes), scores)

    def clear(self) -> None:
        self.backend.clear()
        logger.info("Content cache cleared")

    def get_stats(self):
        return self.backend.get_stats()
