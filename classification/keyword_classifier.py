"""
Deterministic keyword-based theme scoring.
"""

import math
import re
from typing import Dict, List

from classification.base import Classifier
from models.entities import Article, Theme, ThemeMatch

TITLE_WEIGHT = 0.4
CONTENT_WEIGHT = 0.6

# Matching this many distinct keywords counts as full coverage
COVERAGE_SATURATION = 4


class KeywordClassifier(Classifier):
    """
    Scores themes by keyword coverage and frequency.

    Text relevance = coverage * 0.7 + log-scaled frequency * 0.3, computed
    separately for the title and the body and blended 40/60.
    """

    name = "keyword"

    def __init__(self, cache=None):
        super().__init__(cache)
        self._patterns: Dict[str, re.Pattern] = {}

    def _pattern(self, keyword: str) -> re.Pattern:
        pattern = self._patterns.get(keyword)
        if pattern is None:
            pattern = re.compile(r'(?<!\w)' + re.escape(keyword.lower()) + r'(?!\w)')
            self._patterns[keyword] = pattern
        return pattern

    def text_relevance(self, text: str, keywords: List[str]) -> float:
        if not text or not keywords:
            return 0.0
        text = text.lower()

        matched = 0
        total = 0
        for keyword in keywords:
            count = len(self._pattern(keyword).findall(text))
            if count:
                matched += 1
                total += count
        if not matched:
            return 0.0

        coverage = min(1.0, matched / min(len(keywords), COVERAGE_SATURATION))
        frequency = min(1.0, math.log(total + 1) / math.log(len(keywords) * 3 + 1))
        return min(1.0, coverage * 0.7 + frequency * 0.3)

    @staticmethod
    def theme_keywords(theme: Theme) -> List[str]:
        keywords = [k.strip() for k in theme.keywords if k and k.strip()]
        return keywords or [w for w in re.split(r'\W+', theme.name) if len(w) > 2]

    def score_themes(self, article: Article, themes: List[Theme]) -> List[ThemeMatch]:
        scores = []
        for theme in themes:
            keywords = self.theme_keywords(theme)
            title_score = self.text_relevance(article.title, keywords)
            content_score = self.text_relevance(f"{article.title}\n{article.cleaned_text}", keywords)
            score = title_score * TITLE_WEIGHT + content_score * CONTENT_WEIGHT

            if score >= 0.6:
                reasoning = f"Strong keyword match for {theme.name}"
            elif score > 0:
                reasoning = f"Partial keyword match for {theme.name}"
            else:
                reasoning = f"No {theme.name} keywords found"
            scores.append(ThemeMatch(theme_id=theme.id, theme_name=theme.name,
                                     relevance_score=round(score, 4), reasoning=reasoning))
        return scores
