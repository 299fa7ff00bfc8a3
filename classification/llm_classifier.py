"""
Theme classification through the text-generation service.
"""

import logging
from typing import Dict, List, Optional

from classification.base import Classifier
from common.errors import GenerationError
from models.entities import Article, Theme, ThemeMatch
from summarization.base import Generator, GenerationOptions
from summarization.text_processing import truncate

logger = logging.getLogger(__name__)

READER_INTENTS = ("skim", "read", "deep_dive")
MAX_ARTICLE_CHARS = 2000

CLASSIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "classifications": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "theme_name": {"type": "string"},
                    "relevance_score": {"type": "number", "minimum": 0, "maximum": 1},
                    "reasoning": {"type": "string"},
                },
                "required": ["theme_name", "relevance_score", "reasoning"],
            },
        },
        "reader_intent": {"type": "string", "enum": list(READER_INTENTS)},
    },
    "required": ["classifications", "reader_intent"],
}


def build_classification_prompt(article: Article, themes: List[Theme]) -> str:
    theme_lines = []
    for theme in themes:
        line = f"- {theme.name}: {theme.description}"
        if theme.keywords:
            line += f" (keywords: {', '.join(theme.keywords[:15])})"
        theme_lines.append(line)

    return (
        "You are classifying a news article against a fixed set of themes.\n\n"
        "THEMES:\n" + "\n".join(theme_lines) + "\n\n"
        f"ARTICLE TITLE: {article.title}\n"
        f"ARTICLE URL: {article.url}\n"
        f"ARTICLE TEXT:\n{truncate(article.cleaned_text, MAX_ARTICLE_CHARS)}\n\n"
        "For every theme, give a relevance_score between 0.0 and 1.0:\n"
        "- 0.8-1.0: the article is primarily about this theme\n"
        "- 0.5-0.7: the theme is a significant part of the article\n"
        "- 0.2-0.4: the theme is mentioned in passing\n"
        "- 0.0-0.1: unrelated\n"
        "Keep reasoning to one sentence. Use theme names exactly as listed.\n"
        "Also set reader_intent: 'skim' for brief news, 'read' for a standard article, "
        "'deep_dive' for long-form analysis."
    )


class LLMClassifier(Classifier):
    """Scores all themes for an article in one structured generation call."""

    name = "llm"

    def __init__(self, generator: Generator, cache=None, model: Optional[str] = None):
        super().__init__(cache)
        self.generator = generator
        self.model = model

    def score_themes(self, article: Article, themes: List[Theme]) -> List[ThemeMatch]:
        payload = self.generator.generate_structured(
            build_classification_prompt(article, themes),
            CLASSIFICATION_SCHEMA,
            GenerationOptions(task="classification", model=self.model, temperature=0.0),
        )
        classifications = payload.get("classifications")
        if not isinstance(classifications, list):
            raise GenerationError("Classification response has no classifications list")

        intent = payload.get("reader_intent")
        if intent not in READER_INTENTS:
            intent = None

        by_name: Dict[str, dict] = {}
        for entry in classifications:
            if isinstance(entry, dict) and entry.get("theme_name"):
                by_name[str(entry["theme_name"]).strip().lower()] = entry

        scores = []
        for theme in themes:
            entry = by_name.get(theme.name.lower())
            if entry is None:
                scores.append(ThemeMatch(theme_id=theme.id, theme_name=theme.name, relevance_score=0.0,
                                         reasoning="Not scored by model", reader_intent=intent))
                continue
            try:
                score = float(entry.get("relevance_score", 0.0))
            except (TypeError, ValueError):
                score = 0.0
            scores.append(ThemeMatch(theme_id=theme.id, theme_name=theme.name, relevance_score=score,
                                     reasoning=str(entry.get("reasoning") or ""), reader_intent=intent))
        return scores
