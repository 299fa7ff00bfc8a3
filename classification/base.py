"""
Classifier interface and best-match selection.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from cache.content_cache import ContentCache
from models.entities import Article, Theme, ThemeMatch, content_fingerprint

logger = logging.getLogger(__name__)


def best_match(scores: List[ThemeMatch], min_relevance: float) -> Optional[ThemeMatch]:
    """
    Pick the highest-scoring theme, or None if it falls below `min_relevance`.

    Ties go to the theme listed first. Acceptance depends only on the best
    score, so lowering the threshold can only turn a miss into a match.
    """
    best = None
    for match in scores:
        if best is None or match.relevance_score > best.relevance_score:
            best = match
    if best is None or best.relevance_score < min_relevance:
        return None
    return best


class Classifier(ABC):
    """
    Scores articles against themes.

    Subclasses implement `score_themes`. When a ContentCache is supplied the
    full score list is cached per article text and theme set, so classifying
    the same text twice yields the same scores.
    """

    name = "classifier"

    def __init__(self, cache: Optional[ContentCache] = None):
        self.cache = cache

    @abstractmethod
    def score_themes(self, article: Article, themes: List[Theme]) -> List[ThemeMatch]:
        """Return one ThemeMatch per theme, in the order given, scores in [0, 1]."""

    def scores_for(self, article: Article, themes: List[Theme]) -> List[ThemeMatch]:
        if not themes:
            return []
        key = f"{self.name}:{content_fingerprint(article.title + chr(10) + article.cleaned_text)}"
        if self.cache is not None:
            cached = self.cache.get_theme_scores(key, themes)
            if cached is not None:
                return cached

        scores = [
            ThemeMatch(
                theme_id=m.theme_id,
                theme_name=m.theme_name,
                relevance_score=min(1.0, max(0.0, float(m.relevance_score))),
                reasoning=m.reasoning,
                reader_intent=m.reader_intent,
            )
            for m in self.score_themes(article, themes)
        ]
        if self.cache is not None:
            self.cache.put_theme_scores(key, themes, scores)
        return scores

    def classify(self, article: Article, themes: List[Theme], min_relevance: float = 0.4) -> Optional[ThemeMatch]:
        """
        Return the best-matching enabled theme for an article, or None.

        Args:
            article: Article with title and cleaned text
            themes: Candidate themes; disabled ones are ignored
            min_relevance: Minimum score for a match
        """
        enabled = [theme for theme in themes if theme.enabled]
        return best_match(self.scores_for(article, enabled), min_relevance)
